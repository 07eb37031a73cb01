# backend/plantchat/realtime/events.py
"""
Realtime event names, addressing and payload builders.

Every frame sent to a client has this structure:
{
    "event": str,   # Event name, e.g. "message:new"
    "data": dict    # Event-specific payload (camelCase keys)
}

Services never touch sockets. They return OutboundEvent values describing
who should receive what, and the router delivers them.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from ..core.enums import IdentityType
from ..domain import ConversationRecord, Identity, MessageRecord


class ChatEvent(str, Enum):
    """Valid outbound event names."""

    MESSAGE_NEW = "message:new"
    CHAT_MESSAGE = "chat:message"
    MESSAGES_READ = "messages:read"
    CONVERSATION_UPDATED = "conversation:updated"
    CHAT_UPDATED = "chat:updated"
    CHAT_READ = "chat:read"
    MESSAGE_DELIVERED = "message:delivered"
    CHAT_DELIVERED = "chat:delivered"
    CHAT_CREATED = "chat:created"
    USER_TYPING = "user_typing"
    VERIFICATION_CREATED = "verification:created"
    VERIFICATION_UPDATED = "verification:updated"
    PLANT_VERIFIED = "plant:verified"
    PLANT_CREATED = "plant:created"
    PLANT_UPDATED = "plant:updated"
    PLANT_DELETED = "plant:deleted"
    DATA_REFRESH = "data:refresh"
    # Connection-level frames
    CONNECTED = "connected"
    HEARTBEAT = "heartbeat"
    ACK = "ack"
    ERROR = "error"


class Audience(str, Enum):
    USER = "user"
    ROLE = "role"
    ALL = "all"
    CONVERSATION = "conversation"


@dataclass(frozen=True)
class OutboundEvent:
    """One event addressed to one audience."""

    audience: Audience
    event: ChatEvent
    payload: Dict[str, Any] = field(default_factory=dict)
    identity: Optional[Identity] = None
    role: Optional[IdentityType] = None
    conversation_id: Optional[str] = None
    exclude_connection: Optional[str] = None

    @classmethod
    def to_user(cls, identity: Identity, event: ChatEvent, payload: Dict[str, Any]) -> "OutboundEvent":
        return cls(Audience.USER, event, payload, identity=identity)

    @classmethod
    def to_role(cls, role: IdentityType, event: ChatEvent, payload: Dict[str, Any]) -> "OutboundEvent":
        return cls(Audience.ROLE, event, payload, role=role)

    @classmethod
    def to_all(cls, event: ChatEvent, payload: Dict[str, Any]) -> "OutboundEvent":
        return cls(Audience.ALL, event, payload)

    @classmethod
    def to_conversation(
        cls,
        conversation_id: str,
        event: ChatEvent,
        payload: Dict[str, Any],
        exclude_connection: Optional[str] = None,
    ) -> "OutboundEvent":
        return cls(
            Audience.CONVERSATION,
            event,
            payload,
            conversation_id=conversation_id,
            exclude_connection=exclude_connection,
        )


def build_frame(event: ChatEvent, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Wrap a payload into the wire frame."""
    return {"event": event.value, "data": payload}


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_message(message: MessageRecord, read_at: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Message payload.

    read_at is passed explicitly so callers decide visibility; the stored
    value is never leaked by default.
    """
    return {
        "id": message.id,
        "conversationId": message.conversation_id,
        "senderType": message.sender_type.value,
        "senderId": message.sender_id,
        "content": message.content,
        "sentAt": _iso(message.sent_at),
        "deliveredAt": _iso(message.delivered_at),
        "readAt": _iso(read_at),
    }


def serialize_conversation(conversation: ConversationRecord) -> Dict[str, Any]:
    return {
        "id": conversation.id,
        "consumerId": conversation.consumer_id,
        "ownerId": conversation.owner_id,
        "plantId": conversation.plant_id,
        "createdAt": _iso(conversation.created_at),
        "lastMessageAt": _iso(conversation.last_message_at),
    }


def build_new_message_events(
    message: MessageRecord, conversation: ConversationRecord
) -> List[OutboundEvent]:
    """message:new to both participants plus chat:message for admins."""
    body = serialize_message(message, message.read_at)
    participant_payload = {"message": body, "conversationId": conversation.id}
    return [
        OutboundEvent.to_user(conversation.consumer, ChatEvent.MESSAGE_NEW, participant_payload),
        OutboundEvent.to_user(conversation.owner, ChatEvent.MESSAGE_NEW, participant_payload),
        OutboundEvent.to_role(
            IdentityType.ADMIN,
            ChatEvent.CHAT_MESSAGE,
            {
                "message": body,
                "conversationId": conversation.id,
                "consumerId": conversation.consumer_id,
                "ownerId": conversation.owner_id,
            },
        ),
    ]


def build_conversation_updated_events(conversation: ConversationRecord) -> List[OutboundEvent]:
    """Low-detail badge refresh for both parties, mirrored to admins."""
    payload = serialize_conversation(conversation)
    return [
        OutboundEvent.to_user(conversation.consumer, ChatEvent.CONVERSATION_UPDATED, payload),
        OutboundEvent.to_user(conversation.owner, ChatEvent.CONVERSATION_UPDATED, payload),
        OutboundEvent.to_role(IdentityType.ADMIN, ChatEvent.CHAT_UPDATED, payload),
    ]


def build_read_events(
    conversation: ConversationRecord,
    reader_type: IdentityType,
    message_ids: Sequence[str],
    read_at: datetime,
    notify_sender: bool,
) -> List[OutboundEvent]:
    """
    Events for messages the reader has just read.

    The admin detail event is always produced; the sender only hears about
    it when notify_sender is set.
    """
    events: List[OutboundEvent] = []
    if notify_sender:
        sender = conversation.participant(reader_type.counterpart())
        events.append(
            OutboundEvent.to_user(
                sender,
                ChatEvent.MESSAGES_READ,
                {
                    "conversationId": conversation.id,
                    "messageIds": list(message_ids),
                    "readAt": read_at.isoformat(),
                },
            )
        )
    events.append(
        OutboundEvent.to_role(
            IdentityType.ADMIN,
            ChatEvent.CHAT_READ,
            {
                "conversationId": conversation.id,
                "messageIds": list(message_ids),
                "readAt": read_at.isoformat(),
                "consumerId": conversation.consumer_id,
                "ownerId": conversation.owner_id,
                "readBy": reader_type.value,
            },
        )
    )
    events.extend(build_conversation_updated_events(conversation))
    return events


def build_delivery_events(
    conversation: ConversationRecord, message: MessageRecord, delivered_at: datetime
) -> List[OutboundEvent]:
    payload = {
        "conversationId": conversation.id,
        "messageId": message.id,
        "deliveredAt": delivered_at.isoformat(),
    }
    return [
        OutboundEvent.to_user(message.sender, ChatEvent.MESSAGE_DELIVERED, payload),
        OutboundEvent.to_role(
            IdentityType.ADMIN,
            ChatEvent.CHAT_DELIVERED,
            {
                **payload,
                "consumerId": conversation.consumer_id,
                "ownerId": conversation.owner_id,
                "deliveredTo": message.recipient_type.value,
            },
        ),
    ]


def build_conversation_created_event(
    conversation: ConversationRecord, plant_name: str, owner_name: Optional[str]
) -> OutboundEvent:
    return OutboundEvent.to_role(
        IdentityType.ADMIN,
        ChatEvent.CHAT_CREATED,
        {
            "id": conversation.id,
            "consumerId": conversation.consumer_id,
            "ownerId": conversation.owner_id,
            "plantId": conversation.plant_id,
            "plantName": plant_name,
            "ownerName": owner_name,
        },
    )


def build_typing_event(
    conversation_id: str, identity: Identity, is_typing: bool, connection_id: Optional[str]
) -> OutboundEvent:
    return OutboundEvent.to_conversation(
        conversation_id,
        ChatEvent.USER_TYPING,
        {
            "conversationId": conversation_id,
            "userId": identity.id,
            "userType": identity.type.value,
            "isTyping": is_typing,
        },
        exclude_connection=connection_id,
    )
