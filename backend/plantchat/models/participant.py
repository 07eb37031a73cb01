# backend/plantchat/models/participant.py
"""
Participant models for the chat system.

Consumers and owners are created by the marketplace's account flows; the chat
core only reads their names and their read-receipt preference.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Consumer(Base):
    """A marketplace consumer who starts conversations about plants."""

    __tablename__ = "consumers"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    display_name = Column(String(100), nullable=False)
    # Allow others to see when I've read their messages
    read_receipts_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    conversations = relationship("Conversation", back_populates="consumer")

    def __repr__(self) -> str:
        return f"<Consumer {self.id} {self.display_name}>"


class Owner(Base):
    """A plant owner who answers consumers."""

    __tablename__ = "owners"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    read_receipts_enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    plants = relationship("Plant", back_populates="owner")
    conversations = relationship("Conversation", back_populates="owner")

    def __repr__(self) -> str:
        return f"<Owner {self.id} {self.name}>"
