# backend/plantchat/services/conversation_service.py
"""
Conversation Service for consumer/owner chat.

Orchestrates access checks, persistence through the ChatStore, read-receipt
privacy and event production. Every mutating operation returns a result
carrying the OutboundEvents it produced; callers (REST routes, the WebSocket
gateway) hand those to the EventRouter after the operation succeeds.

Delivery and notification are never gated by read-receipt preferences.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
import logging
from typing import Any, List, Optional, Tuple

from ..core.config import settings
from ..core.constants import (
    NEW_MESSAGE_NOTIFICATION_BODY,
    NEW_MESSAGE_NOTIFICATION_TITLE,
    NEW_MESSAGE_NOTIFICATION_TYPE,
)
from ..core.enums import IdentityType
from ..core.exceptions import (
    ConflictException,
    ForbiddenException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..domain import ConversationRecord, Identity, MessageRecord, PlantRecord
from ..realtime.events import (
    OutboundEvent,
    build_conversation_created_event,
    build_delivery_events,
    build_new_message_events,
    build_read_events,
    build_typing_event,
)
from .access_control import AccessControl
from .base import BaseService
from .chat_store import ChatStore
from .read_receipt_policy import read_event_visible_to_sender, visible_read_at

logger = logging.getLogger(__name__)

UNKNOWN_PARTY_NAME = "Unknown"


@dataclass
class ConversationView:
    """A conversation as seen by one participant."""

    id: str
    plant_id: str
    plant_name: str
    plant_address: Optional[str]
    other_party_name: str
    created_at: datetime
    unread_count: int = 0
    last_message_at: Optional[datetime] = None
    last_message: Optional[MessageRecord] = None


@dataclass
class GetOrCreateResult:
    conversation: ConversationView
    created: bool
    events: List[OutboundEvent] = field(default_factory=list)


@dataclass
class SendMessageResult:
    """Created message plus the events that announce it."""

    message: MessageRecord
    conversation: ConversationRecord
    events: List[OutboundEvent] = field(default_factory=list)


@dataclass
class MessagePage:
    messages: List[MessageRecord]
    has_more: bool
    conversation: ConversationView


@dataclass
class MarkReadResult:
    """Result of marking a conversation read, with notification context."""

    message_ids: List[str]
    read_at: Optional[datetime]
    sender_notified: bool
    events: List[OutboundEvent] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.message_ids)


@dataclass
class AcknowledgementResult:
    """Outcome of a per-message delivered/read acknowledgement."""

    message: MessageRecord
    changed: bool
    events: List[OutboundEvent] = field(default_factory=list)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ConversationService(BaseService):
    """
    Service for conversations and their messages.

    Handles get-or-create, sending, paging, read/delivery state and typing
    relays with access control on every call.
    """

    def __init__(self, store: ChatStore, access: Optional[AccessControl] = None):
        super().__init__()
        self.store = store
        self.access = access or AccessControl(store)

    # Conversations

    @BaseService.measure_operation("get_or_create_conversation")
    async def get_or_create_conversation(self, consumer_id: str, plant_id: str) -> GetOrCreateResult:
        """
        Return the consumer's conversation about a plant, creating it on first contact.

        A creation race with another request is resolved by re-reading the
        row the other request wrote; only a real first creation is announced.
        """
        plant = await self.store.get_plant(plant_id)
        if plant is None:
            raise NotFoundException("Plant not found", details={"plant_id": plant_id})
        consumer = Identity(IdentityType.CONSUMER, consumer_id)
        if await self.store.get_participant_profile(consumer) is None:
            raise NotFoundException("Consumer not found", details={"consumer_id": consumer_id})

        created = False
        conversation = await self.store.find_conversation(consumer_id, plant_id)
        if conversation is None:
            try:
                conversation = await self.store.create_conversation(
                    consumer_id, plant.owner_id, plant_id
                )
                created = True
            except ConflictException:
                conversation = await self.store.find_conversation(consumer_id, plant_id)
                if conversation is None:
                    raise RepositoryException(
                        f"Conversation for consumer {consumer_id} and plant {plant_id} "
                        "conflicted but could not be re-read"
                    )
                self.logger.info(
                    f"[CHAT] Lost creation race for consumer={consumer_id} plant={plant_id}; reusing {conversation.id}"
                )

        events: List[OutboundEvent] = []
        if created:
            self.logger.info(f"[CHAT] Conversation {conversation.id} created for plant {plant_id}")
            events.append(build_conversation_created_event(conversation, plant.name, plant.owner_name))

        unread = await self.store.count_unread(conversation.id, IdentityType.OWNER)
        view = ConversationView(
            id=conversation.id,
            plant_id=plant.id,
            plant_name=plant.name,
            plant_address=plant.address,
            other_party_name=plant.owner_name or UNKNOWN_PARTY_NAME,
            created_at=conversation.created_at,
            unread_count=unread,
            last_message_at=conversation.last_message_at,
        )
        return GetOrCreateResult(conversation=view, created=created, events=events)

    @BaseService.measure_operation("list_conversations")
    async def list_conversations(self, identity: Identity) -> List[ConversationView]:
        """A participant's conversations, most recently active first."""
        self._require_participant(identity)
        views: List[ConversationView] = []
        for overview in await self.store.list_conversations_for(identity):
            conversation = overview.conversation
            last_message = await self.store.get_last_message(conversation.id)
            unread = await self.store.count_unread(conversation.id, identity.type.counterpart())
            views.append(
                ConversationView(
                    id=conversation.id,
                    plant_id=overview.plant.id,
                    plant_name=overview.plant.name,
                    plant_address=overview.plant.address,
                    other_party_name=overview.other_party_name,
                    created_at=conversation.created_at,
                    unread_count=unread,
                    last_message_at=conversation.last_message_at,
                    last_message=last_message,
                )
            )
        return views

    @BaseService.measure_operation("get_unread_total")
    async def get_unread_total(self, identity: Identity) -> int:
        self._require_participant(identity)
        return await self.store.count_unread_for(identity)

    # Messages

    @BaseService.measure_operation("send_message")
    async def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        sender_type: IdentityType,
        content: Any,
    ) -> SendMessageResult:
        """
        Append a message and announce it to both participants and admins.

        The counterpart's notification is best effort: if it cannot be
        written the message still stands.
        """
        conversation = await self.access.ensure_access(conversation_id, sender_id, sender_type)
        text = self._validate_content(content)

        message = await self.store.append_message(conversation.id, sender_type, sender_id, text)
        await self.store.update_conversation_last_message_at(conversation.id, message.sent_at)
        conversation = replace(conversation, last_message_at=message.sent_at)

        recipient = conversation.participant(sender_type.counterpart())
        try:
            await self.store.create_notification(
                recipient,
                NEW_MESSAGE_NOTIFICATION_TYPE,
                NEW_MESSAGE_NOTIFICATION_TITLE,
                NEW_MESSAGE_NOTIFICATION_BODY,
            )
        except Exception as e:
            self.logger.error(
                f"[CHAT] Notification for {recipient.key} on message {message.id} failed: {str(e)}"
            )

        return SendMessageResult(
            message=message,
            conversation=conversation,
            events=build_new_message_events(message, conversation),
        )

    @BaseService.measure_operation("list_messages")
    async def list_messages(
        self,
        conversation_id: str,
        actor_id: str,
        actor_type: IdentityType,
        page: int = 1,
        limit: Optional[int] = None,
        before: Optional[str] = None,
    ) -> MessagePage:
        """
        One page of history, oldest first.

        ``before`` (a message id) selects messages strictly older than that
        message and takes priority over ``page``. read_at is hidden on the
        actor's own messages when the counterpart has read receipts off.
        """
        conversation = await self.access.ensure_access(conversation_id, actor_id, actor_type)
        page = max(1, int(page or 1))
        limit = self._clamp_limit(limit)

        rows = await self.store.list_messages(
            conversation.id,
            before_message_id=before,
            offset=(page - 1) * limit,
            limit=limit + 1,
        )
        has_more = len(rows) > limit
        rows = rows[:limit]

        counterpart = conversation.participant(actor_type.counterpart())
        profile = await self.store.get_participant_profile(counterpart)
        counterpart_receipts = profile.read_receipts_enabled if profile else True
        if profile is None:
            other_party_name = UNKNOWN_PARTY_NAME
        elif actor_type is IdentityType.CONSUMER:
            other_party_name = profile.name
        else:
            # Owners only ever see the consumer's display name
            other_party_name = profile.display_name

        messages = [
            replace(row, read_at=visible_read_at(row, actor_type, counterpart_receipts))
            for row in reversed(rows)
        ]

        plant = await self.store.get_plant(conversation.plant_id)
        view = self._conversation_view(conversation, plant, other_party_name)
        return MessagePage(messages=messages, has_more=has_more, conversation=view)

    @BaseService.measure_operation("mark_as_read")
    async def mark_as_read(
        self, conversation_id: str, reader_id: str, reader_type: IdentityType
    ) -> MarkReadResult:
        """
        Mark every unread message from the counterpart as read.

        read_at is always persisted. The sender is told only if the reader's
        own preference allows it; admins and the badge refresh always fire.
        """
        conversation = await self.access.ensure_access(conversation_id, reader_id, reader_type)
        reader = Identity(reader_type, reader_id)

        unread_ids = await self.store.list_unread_message_ids(
            conversation.id, reader_type.counterpart()
        )
        if not unread_ids:
            self.logger.debug(f"[CHAT] markAsRead: nothing unread in {conversation.id} for {reader.key}")
            return MarkReadResult(message_ids=[], read_at=None, sender_notified=False)

        read_at = _now()
        updated = await self.store.mark_messages_read(unread_ids, read_at)
        if updated == 0:
            # A concurrent call marked them first and already announced it
            return MarkReadResult(message_ids=[], read_at=None, sender_notified=False)

        receipts_enabled = await self.store.get_read_receipts_enabled(reader)
        notify_sender = read_event_visible_to_sender(receipts_enabled)
        self.logger.info(
            f"[CHAT] {reader.key} read {updated} message(s) in {conversation.id} "
            f"(sender notified: {notify_sender})"
        )
        return MarkReadResult(
            message_ids=list(unread_ids),
            read_at=read_at,
            sender_notified=notify_sender,
            events=build_read_events(conversation, reader_type, unread_ids, read_at, notify_sender),
        )

    @BaseService.measure_operation("mark_message_as_delivered")
    async def mark_message_as_delivered(self, message_id: str) -> bool:
        """Set delivered_at if unset. Returns False when it was already set."""
        return await self.store.set_message_delivered(message_id, _now())

    @BaseService.measure_operation("mark_message_as_read")
    async def mark_message_as_read(self, message_id: str) -> bool:
        """Set read_at if unset. Returns False when it was already set."""
        return await self.store.set_message_read(message_id, _now())

    @BaseService.measure_operation("acknowledge_delivery")
    async def acknowledge_delivery(
        self, conversation_id: str, message_id: str, actor: Identity
    ) -> AcknowledgementResult:
        conversation, message = await self._load_received_message(conversation_id, message_id, actor)
        delivered_at = _now()
        if not await self.store.set_message_delivered(message.id, delivered_at):
            return AcknowledgementResult(message=message, changed=False)

        message = replace(message, delivered_at=delivered_at)
        return AcknowledgementResult(
            message=message,
            changed=True,
            events=build_delivery_events(conversation, message, delivered_at),
        )

    @BaseService.measure_operation("acknowledge_read")
    async def acknowledge_read(
        self, conversation_id: str, message_id: str, actor: Identity
    ) -> AcknowledgementResult:
        conversation, message = await self._load_received_message(conversation_id, message_id, actor)
        read_at = _now()
        if not await self.store.set_message_read(message.id, read_at):
            return AcknowledgementResult(message=message, changed=False)

        message = replace(message, read_at=read_at)
        notify_sender = read_event_visible_to_sender(
            await self.store.get_read_receipts_enabled(actor)
        )
        return AcknowledgementResult(
            message=message,
            changed=True,
            events=build_read_events(conversation, actor.type, [message.id], read_at, notify_sender),
        )

    # Presence

    @BaseService.measure_operation("relay_typing")
    async def relay_typing(
        self,
        conversation_id: str,
        identity: Identity,
        is_typing: bool,
        connection_id: Optional[str] = None,
    ) -> List[OutboundEvent]:
        """Typing indicator for the conversation room, minus the typing connection."""
        await self.access.ensure_access(conversation_id, identity.id, identity.type)
        return [build_typing_event(conversation_id, identity, bool(is_typing), connection_id)]

    # Helpers

    async def _load_received_message(
        self, conversation_id: str, message_id: str, actor: Identity
    ) -> Tuple[ConversationRecord, MessageRecord]:
        conversation = await self.access.ensure_access(conversation_id, actor.id, actor.type)
        message = await self.store.find_message_by_id(message_id)
        if message is None or message.conversation_id != conversation.id:
            raise NotFoundException("Message not found", details={"message_id": message_id})
        if message.recipient_type is not actor.type:
            raise ForbiddenException("Only the recipient can acknowledge a message")
        return conversation, message

    def _validate_content(self, content: Any) -> str:
        if not isinstance(content, str):
            raise ValidationException("Message content must be a string")
        text = content.strip()
        if not text:
            raise ValidationException("Message content cannot be empty")
        if len(text) > settings.message_max_length:
            raise ValidationException(
                f"Message cannot exceed {settings.message_max_length} characters",
                details={"max_length": settings.message_max_length},
            )
        return text

    def _clamp_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return settings.messages_default_limit
        return max(1, min(int(limit), settings.messages_max_limit))

    def _require_participant(self, identity: Identity) -> None:
        if not identity.type.is_participant:
            raise ForbiddenException("Only consumers and owners have conversations")

    def _conversation_view(
        self,
        conversation: ConversationRecord,
        plant: Optional[PlantRecord],
        other_party_name: str,
    ) -> ConversationView:
        return ConversationView(
            id=conversation.id,
            plant_id=conversation.plant_id,
            plant_name=plant.name if plant else "",
            plant_address=plant.address if plant else None,
            other_party_name=other_party_name,
            created_at=conversation.created_at,
            last_message_at=conversation.last_message_at,
        )
