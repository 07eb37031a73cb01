"""FastAPI dependencies for authentication and service lookup."""

from .auth import get_current_identity, require_consumer
from .services import get_chat_gateway, get_conversation_service, get_event_router

__all__ = [
    "get_chat_gateway",
    "get_conversation_service",
    "get_current_identity",
    "get_event_router",
    "require_consumer",
]
