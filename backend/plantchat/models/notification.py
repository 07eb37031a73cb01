# backend/plantchat/models/notification.py
"""In-app notification records created when a participant receives a message."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Index, String

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    recipient_type = Column(String(16), nullable=False)
    recipient_id = Column(String(26), nullable=False)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(String(1000), nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (Index("idx_notifications_recipient", "recipient_type", "recipient_id"),)
