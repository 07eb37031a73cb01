# backend/plantchat/models/message.py
"""
Message model for the chat system.

delivered_at and read_at are independent and each is written at most once.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Message(Base):
    """A single message sent by one participant of a conversation."""

    __tablename__ = "messages"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    conversation_id = Column(
        String(26), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender_type = Column(String(16), nullable=False)  # consumer | owner
    sender_id = Column(String(26), nullable=False)
    content = Column(Text, nullable=False)
    sent_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")

    __table_args__ = (
        Index("idx_messages_conversation_sent", "conversation_id", "sent_at"),
        Index("idx_messages_unread", "conversation_id", "sender_type", "read_at"),
    )

    def __repr__(self) -> str:
        return f"<Message {self.id} from {self.sender_type}:{self.sender_id}>"
