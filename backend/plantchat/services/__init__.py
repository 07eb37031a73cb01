"""Service layer for plantchat."""

from .access_control import AccessControl
from .base import BaseService
from .chat_store import ChatStore, SqlAlchemyChatStore
from .conversation_service import ConversationService

__all__ = [
    "AccessControl",
    "BaseService",
    "ChatStore",
    "ConversationService",
    "SqlAlchemyChatStore",
]
