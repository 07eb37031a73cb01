# backend/plantchat/core/enums.py
"""
Core enums for the plantchat backend.

Identity tags drive both access checks and room addressing, so every
place that needs "consumer", "owner" or "admin" uses these values.
"""

from enum import Enum


class IdentityType(str, Enum):
    """The three kinds of authenticated callers."""

    CONSUMER = "consumer"
    OWNER = "owner"
    ADMIN = "admin"

    @property
    def is_participant(self) -> bool:
        """Consumers and owners take part in conversations; admins only observe."""
        return self is not IdentityType.ADMIN

    def counterpart(self) -> "IdentityType":
        """The other side of a conversation."""
        if self is IdentityType.CONSUMER:
            return IdentityType.OWNER
        if self is IdentityType.OWNER:
            return IdentityType.CONSUMER
        raise ValueError("Admins have no conversation counterpart")


class InboundAction(str, Enum):
    """Actions a client may send over the live channel."""

    JOIN_CONVERSATION = "join_conversation"
    LEAVE_CONVERSATION = "leave_conversation"
    SEND_MESSAGE = "send_message"
    TYPING = "typing"
    MARK_READ = "mark_read"
    MARK_DELIVERED = "mark_delivered"
    HEARTBEAT = "heartbeat"
