# backend/plantchat/models/conversation.py
"""
Conversation model for consumer/owner messaging about a plant.

Each consumer has exactly one conversation per plant; the owner side is
fixed by the plant at creation time.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Conversation(Base):
    """
    Conversation between a consumer and the owner of a plant.

    Attributes:
        id: ULID primary key
        consumer_id: Foreign key to the consumer
        owner_id: Foreign key to the plant's owner
        plant_id: Foreign key to the plant being discussed
        created_at: When the conversation was created
        last_message_at: When the most recent message was sent
    """

    __tablename__ = "conversations"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    consumer_id = Column(String(26), ForeignKey("consumers.id", ondelete="CASCADE"), nullable=False)
    owner_id = Column(String(26), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    plant_id = Column(String(26), ForeignKey("plants.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    last_message_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    consumer = relationship("Consumer", back_populates="conversations")
    owner = relationship("Owner", back_populates="conversations")
    plant = relationship("Plant")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.sent_at",
    )

    __table_args__ = (
        UniqueConstraint("consumer_id", "plant_id", name="uq_conversation_consumer_plant"),
        Index("idx_conversations_owner_last_message", "owner_id", "last_message_at"),
    )

    def __repr__(self) -> str:
        return f"<Conversation {self.id}: consumer={self.consumer_id} plant={self.plant_id}>"
