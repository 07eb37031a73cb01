# backend/plantchat/models/plant.py
"""Plant model, the subject every conversation is about."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from ..core.ulid_helper import generate_ulid
from ..database import Base


class Plant(Base):
    __tablename__ = "plants"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    owner_id = Column(String(26), ForeignKey("owners.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    address = Column(String(500), nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    owner = relationship("Owner", back_populates="plants")

    def __repr__(self) -> str:
        return f"<Plant {self.id} {self.name}>"
