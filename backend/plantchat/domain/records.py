"""Value objects for authenticated callers and stored chat data."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from plantchat.core.enums import IdentityType


@dataclass(frozen=True)
class Identity:
    """An authenticated caller: consumer, owner or admin."""

    type: IdentityType
    id: str

    @property
    def key(self) -> str:
        return f"{self.type.value}:{self.id}"

    @property
    def is_admin(self) -> bool:
        return self.type is IdentityType.ADMIN

    @classmethod
    def consumer(cls, consumer_id: str) -> "Identity":
        return cls(IdentityType.CONSUMER, consumer_id)

    @classmethod
    def owner(cls, owner_id: str) -> "Identity":
        return cls(IdentityType.OWNER, owner_id)

    @classmethod
    def admin(cls, admin_id: str) -> "Identity":
        return cls(IdentityType.ADMIN, admin_id)


@dataclass(frozen=True)
class ConversationRecord:
    id: str
    consumer_id: str
    owner_id: str
    plant_id: str
    created_at: datetime
    last_message_at: Optional[datetime] = None

    @property
    def consumer(self) -> Identity:
        return Identity.consumer(self.consumer_id)

    @property
    def owner(self) -> Identity:
        return Identity.owner(self.owner_id)

    def participant(self, identity_type: IdentityType) -> Identity:
        """The participant on the given side of the conversation."""
        if identity_type is IdentityType.CONSUMER:
            return self.consumer
        if identity_type is IdentityType.OWNER:
            return self.owner
        raise ValueError("Admins are not conversation participants")

    def has_participant(self, actor_id: str, actor_type: IdentityType) -> bool:
        if actor_type is IdentityType.CONSUMER:
            return self.consumer_id == actor_id
        if actor_type is IdentityType.OWNER:
            return self.owner_id == actor_id
        return False


@dataclass(frozen=True)
class MessageRecord:
    id: str
    conversation_id: str
    sender_type: IdentityType
    sender_id: str
    content: str
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    @property
    def sender(self) -> Identity:
        return Identity(self.sender_type, self.sender_id)

    @property
    def recipient_type(self) -> IdentityType:
        return self.sender_type.counterpart()


@dataclass(frozen=True)
class PlantRecord:
    id: str
    owner_id: str
    name: str
    address: Optional[str] = None
    owner_name: Optional[str] = None


@dataclass(frozen=True)
class ParticipantProfile:
    """Public-facing name and privacy preference of a consumer or owner."""

    identity: Identity
    name: str
    display_name: str
    read_receipts_enabled: bool = True


@dataclass(frozen=True)
class ConversationOverview:
    """A conversation with the plant and counterpart it is shown with in listings."""

    conversation: ConversationRecord
    plant: PlantRecord
    other_party_name: str
