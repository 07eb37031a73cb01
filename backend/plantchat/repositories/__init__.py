"""Repositories over the plantchat SQLAlchemy models."""

from .base_repository import BaseRepository
from .conversation_repository import ConversationRepository
from .message_repository import MessageRepository
from .notification_repository import NotificationRepository
from .participant_repository import ParticipantRepository, PlantRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "MessageRepository",
    "NotificationRepository",
    "ParticipantRepository",
    "PlantRepository",
]
