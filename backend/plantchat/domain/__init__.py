"""Plain value objects passed between the store, the services and the realtime layer."""

from .records import (
    ConversationOverview,
    ConversationRecord,
    Identity,
    MessageRecord,
    ParticipantProfile,
    PlantRecord,
)

__all__ = [
    "ConversationOverview",
    "ConversationRecord",
    "Identity",
    "MessageRecord",
    "ParticipantProfile",
    "PlantRecord",
]
