"""
Integration tests for ConversationService over the SQLAlchemy store.

Events produced by the service are dispatched through a real EventRouter
into a RecordingTransport so fan-out can be asserted per connection.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from plantchat.core.enums import IdentityType
from plantchat.core.exceptions import ForbiddenException, NotFoundException, ValidationException
from plantchat.domain import Identity
from plantchat.models import Conversation, Message, Notification, Owner

pytestmark = pytest.mark.integration


@pytest.fixture
def online(registry, transport, world):
    """Consumer, owner, a stranger and an admin each with one live connection."""
    transport.connect(registry, world.consumer, "consumer-conn")
    transport.connect(registry, world.owner, "owner-conn")
    transport.connect(registry, world.other_consumer, "stranger-conn")
    transport.connect(registry, Identity.admin("admin-1"), "admin-conn")
    return transport


async def _open_conversation(service, router, world) -> str:
    result = await service.get_or_create_conversation(world.consumer_id, world.plant_id)
    await router.dispatch(result.events)
    return result.conversation.id


def _disable_receipts(db, owner_id: str) -> None:
    db.query(Owner).filter(Owner.id == owner_id).update({Owner.read_receipts_enabled: False})
    db.commit()


class TestGetOrCreateConversation:
    @pytest.mark.asyncio
    async def test_first_call_creates_and_announces_to_admins(self, service, router, online, world):
        result = await service.get_or_create_conversation(world.consumer_id, world.plant_id)
        await router.dispatch(result.events)

        assert result.created is True
        assert result.conversation.plant_name == "Monstera Deliciosa"
        assert result.conversation.other_party_name == "Rosa Green"
        assert result.conversation.unread_count == 0
        created = online.frames_named("admin-conn", "chat:created")
        assert len(created) == 1
        assert created[0]["plantId"] == world.plant_id
        assert created[0]["ownerId"] == world.owner_id
        assert online.events_for("consumer-conn") == []

    @pytest.mark.asyncio
    async def test_second_call_returns_existing_without_events(self, service, world):
        first = await service.get_or_create_conversation(world.consumer_id, world.plant_id)
        second = await service.get_or_create_conversation(world.consumer_id, world.plant_id)

        assert second.created is False
        assert second.events == []
        assert second.conversation.id == first.conversation.id

    @pytest.mark.asyncio
    async def test_concurrent_calls_yield_one_row(self, service, db, world):
        results = await asyncio.gather(
            service.get_or_create_conversation(world.consumer_id, world.plant_id),
            service.get_or_create_conversation(world.consumer_id, world.plant_id),
        )

        assert results[0].conversation.id == results[1].conversation.id
        assert sum(1 for result in results if result.created) == 1
        assert db.query(Conversation).filter(Conversation.consumer_id == world.consumer_id).count() == 1

    @pytest.mark.asyncio
    async def test_unknown_plant(self, service, world):
        with pytest.raises(NotFoundException):
            await service.get_or_create_conversation(world.consumer_id, "missing-plant")

    @pytest.mark.asyncio
    async def test_unknown_consumer_is_not_found(self, service, db, world):
        with pytest.raises(NotFoundException) as exc_info:
            await service.get_or_create_conversation("01GHOSTCONSUMER00000000000", world.plant_id)

        assert exc_info.value.details == {"consumer_id": "01GHOSTCONSUMER00000000000"}
        assert db.query(Conversation).count() == 0

    @pytest.mark.asyncio
    async def test_unread_count_reflects_owner_messages(self, service, world):
        conversation_id = (await service.get_or_create_conversation(world.consumer_id, world.plant_id)).conversation.id
        await service.send_message(conversation_id, world.owner_id, IdentityType.OWNER, "Yes, still here")
        await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Great")

        again = await service.get_or_create_conversation(world.consumer_id, world.plant_id)

        assert again.conversation.unread_count == 1


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_fans_out_to_both_participants_and_admins(self, service, router, online, world):
        conversation_id = await _open_conversation(service, router, world)
        online.reset()

        result = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "  Hi  ")
        await router.dispatch(result.events)

        assert result.message.content == "Hi"
        assert result.message.read_at is None
        assert service.get_metrics()["send_message"]["success_count"] >= 1
        assert result.message.delivered_at is None
        for connection_id in ("consumer-conn", "owner-conn"):
            frames = online.frames_named(connection_id, "message:new")
            assert len(frames) == 1
            assert frames[0]["conversationId"] == conversation_id
            assert frames[0]["message"]["id"] == result.message.id
        admin = online.frames_named("admin-conn", "chat:message")
        assert admin[0]["consumerId"] == world.consumer_id
        assert admin[0]["ownerId"] == world.owner_id
        assert online.events_for("stranger-conn") == []

    @pytest.mark.asyncio
    async def test_delivery_is_not_gated_by_read_receipts(self, service, router, online, db, world):
        _disable_receipts(db, world.owner_id)
        conversation_id = await _open_conversation(service, router, world)
        online.reset()

        result = await service.send_message(conversation_id, world.owner_id, IdentityType.OWNER, "Hello!")
        await router.dispatch(result.events)

        assert len(online.frames_named("consumer-conn", "message:new")) == 1
        assert len(online.frames_named("owner-conn", "message:new")) == 1

    @pytest.mark.asyncio
    async def test_updates_last_message_at_and_notifies_counterpart(self, service, router, db, world):
        conversation_id = await _open_conversation(service, router, world)

        result = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        db.expire_all()
        row = db.get(Conversation, conversation_id)
        assert row.last_message_at is not None
        assert result.conversation.last_message_at == result.message.sent_at
        notification = db.query(Notification).filter(Notification.recipient_id == world.owner_id).one()
        assert notification.recipient_type == "owner"
        assert notification.type == "NEW_MESSAGE"

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_the_send(self, service, router, store, world, monkeypatch):
        conversation_id = await _open_conversation(service, router, world)

        async def broken_notification(*args, **kwargs):
            raise RuntimeError("notifications table unavailable")

        monkeypatch.setattr(store, "create_notification", broken_notification)

        result = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        assert result.message.id
        assert any(event.event.value == "message:new" for event in result.events)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "    ", None, 42])
    async def test_rejects_invalid_content(self, service, router, world, content):
        conversation_id = await _open_conversation(service, router, world)
        with pytest.raises(ValidationException):
            await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, content)

    @pytest.mark.asyncio
    async def test_rejects_overlong_content(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        with pytest.raises(ValidationException):
            await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "x" * 5001)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "Hi"])
    async def test_stranger_is_forbidden_whatever_the_content(self, service, router, world, content):
        conversation_id = await _open_conversation(service, router, world)
        with pytest.raises(ForbiddenException):
            await service.send_message(conversation_id, world.other_consumer_id, IdentityType.CONSUMER, content)

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, service, world):
        with pytest.raises(NotFoundException):
            await service.send_message("nope", world.consumer_id, IdentityType.CONSUMER, "Hi")


class TestAccessControl:
    @pytest.mark.asyncio
    async def test_non_participant_consumer_is_forbidden_everywhere(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        stranger = world.other_consumer_id

        with pytest.raises(ForbiddenException):
            await service.send_message(conversation_id, stranger, IdentityType.CONSUMER, "Hi")
        with pytest.raises(ForbiddenException):
            await service.list_messages(conversation_id, stranger, IdentityType.CONSUMER)
        with pytest.raises(ForbiddenException):
            await service.mark_as_read(conversation_id, stranger, IdentityType.CONSUMER)

    @pytest.mark.asyncio
    async def test_other_owner_is_forbidden(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        with pytest.raises(ForbiddenException):
            await service.list_messages(conversation_id, world.other_owner_id, IdentityType.OWNER)

    @pytest.mark.asyncio
    async def test_type_must_match_not_just_id(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        with pytest.raises(ForbiddenException):
            await service.list_messages(conversation_id, world.consumer_id, IdentityType.OWNER)

    @pytest.mark.asyncio
    async def test_can_access_fails_closed(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)

        assert await service.access.can_access(conversation_id, world.owner_id, IdentityType.OWNER)
        assert not await service.access.can_access(conversation_id, "admin-1", IdentityType.ADMIN)
        assert not await service.access.can_access("missing", world.owner_id, IdentityType.OWNER)


class TestMarkAsRead:
    @pytest.mark.asyncio
    async def test_owner_reads_consumer_message(self, service, router, online, world):
        conversation_id = await _open_conversation(service, router, world)
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")
        online.reset()

        result = await service.mark_as_read(conversation_id, world.owner_id, IdentityType.OWNER)
        await router.dispatch(result.events)

        assert result.message_ids == [sent.message.id]
        assert result.count == 1
        assert result.sender_notified is True
        read = online.frames_named("consumer-conn", "messages:read")
        assert read == [
            {
                "conversationId": conversation_id,
                "messageIds": [sent.message.id],
                "readAt": result.read_at.isoformat(),
            }
        ]
        admin_read = online.frames_named("admin-conn", "chat:read")
        assert admin_read[0]["readBy"] == "owner"
        assert online.frames_named("owner-conn", "conversation:updated")
        assert online.frames_named("consumer-conn", "conversation:updated")
        assert online.frames_named("admin-conn", "chat:updated")

        stored = await service.store.find_message_by_id(sent.message.id)
        assert stored.read_at is not None

    @pytest.mark.asyncio
    async def test_reader_with_receipts_off_hides_read_from_sender(self, service, router, online, db, world):
        _disable_receipts(db, world.owner_id)
        conversation_id = await _open_conversation(service, router, world)
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")
        online.reset()

        result = await service.mark_as_read(conversation_id, world.owner_id, IdentityType.OWNER)
        await router.dispatch(result.events)

        assert result.sender_notified is False
        assert online.frames_named("consumer-conn", "messages:read") == []
        assert len(online.frames_named("admin-conn", "chat:read")) == 1

        as_sender = await service.list_messages(conversation_id, world.consumer_id, IdentityType.CONSUMER)
        as_reader = await service.list_messages(conversation_id, world.owner_id, IdentityType.OWNER)
        assert as_sender.messages[0].id == sent.message.id
        assert as_sender.messages[0].read_at is None
        assert as_reader.messages[0].read_at is not None

    @pytest.mark.asyncio
    async def test_nothing_unread_is_a_quiet_noop(self, service, router, online, world):
        conversation_id = await _open_conversation(service, router, world)
        await service.send_message(conversation_id, world.owner_id, IdentityType.OWNER, "Own message")
        online.reset()

        result = await service.mark_as_read(conversation_id, world.owner_id, IdentityType.OWNER)
        await router.dispatch(result.events)

        assert result.count == 0
        assert result.events == []
        assert result.read_at is None
        for connection_id in online.frames:
            assert online.frames[connection_id] == []

    @pytest.mark.asyncio
    async def test_second_call_is_idempotent(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        first = await service.mark_as_read(conversation_id, world.owner_id, IdentityType.OWNER)
        second = await service.mark_as_read(conversation_id, world.owner_id, IdentityType.OWNER)

        assert first.count == 1
        assert second.count == 0
        assert second.events == []


class TestListMessages:
    @pytest.fixture
    def conversation_with_history(self, db, world):
        conversation = Conversation(consumer_id=world.consumer_id, owner_id=world.owner_id, plant_id=world.plant_id)
        db.add(conversation)
        db.flush()
        start = datetime(2026, 4, 1, 8, 0, tzinfo=timezone.utc)
        messages = []
        for i in range(150):
            sender_type, sender_id = (
                (IdentityType.CONSUMER, world.consumer_id) if i % 2 == 0 else (IdentityType.OWNER, world.owner_id)
            )
            message = Message(
                conversation_id=conversation.id,
                sender_type=sender_type.value,
                sender_id=sender_id,
                content=f"message {i}",
                sent_at=start + timedelta(seconds=i),
            )
            db.add(message)
            messages.append(message)
        db.commit()
        return conversation.id, [message.id for message in messages]

    @pytest.mark.asyncio
    async def test_first_page_is_newest_fifty_in_ascending_order(self, service, world, conversation_with_history):
        conversation_id, ids = conversation_with_history

        page = await service.list_messages(conversation_id, world.consumer_id, IdentityType.CONSUMER, page=1, limit=50)

        assert page.has_more is True
        assert [message.id for message in page.messages] == ids[100:]
        sent = [message.sent_at for message in page.messages]
        assert sent == sorted(sent)

    @pytest.mark.asyncio
    async def test_before_cursor_returns_strictly_preceding_messages(self, service, world, conversation_with_history):
        conversation_id, ids = conversation_with_history

        page = await service.list_messages(
            conversation_id, world.owner_id, IdentityType.OWNER, limit=50, before=ids[100]
        )

        assert [message.id for message in page.messages] == ids[50:100]
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_last_page_has_no_more(self, service, world, conversation_with_history):
        conversation_id, ids = conversation_with_history

        page = await service.list_messages(conversation_id, world.consumer_id, IdentityType.CONSUMER, page=3, limit=50)

        assert [message.id for message in page.messages] == ids[:50]
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_limit_is_clamped(self, service, world, conversation_with_history):
        conversation_id, _ = conversation_with_history

        page = await service.list_messages(conversation_id, world.consumer_id, IdentityType.CONSUMER, limit=1000)

        assert len(page.messages) == 100

    @pytest.mark.asyncio
    async def test_unknown_cursor_falls_back_to_offset(self, service, world, conversation_with_history):
        conversation_id, ids = conversation_with_history

        page = await service.list_messages(
            conversation_id, world.consumer_id, IdentityType.CONSUMER, limit=10, before="not-a-message"
        )

        assert [message.id for message in page.messages] == ids[140:]

    @pytest.mark.asyncio
    async def test_conversation_header_names_the_other_party(self, service, world, conversation_with_history):
        conversation_id, _ = conversation_with_history

        as_consumer = await service.list_messages(conversation_id, world.consumer_id, IdentityType.CONSUMER, limit=1)
        as_owner = await service.list_messages(conversation_id, world.owner_id, IdentityType.OWNER, limit=1)

        assert as_consumer.conversation.other_party_name == "Rosa Green"
        assert as_owner.conversation.other_party_name == "Sam F."
        assert as_owner.conversation.plant_name == "Monstera Deliciosa"
        assert as_owner.conversation.plant_address == "12 Garden Row"


class TestAcknowledgements:
    @pytest.mark.asyncio
    async def test_delivery_ack_is_emitted_once(self, service, router, online, world):
        conversation_id = await _open_conversation(service, router, world)
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")
        online.reset()

        first = await service.acknowledge_delivery(conversation_id, sent.message.id, world.owner)
        await router.dispatch(first.events)
        second = await service.acknowledge_delivery(conversation_id, sent.message.id, world.owner)

        assert first.changed is True
        assert second.changed is False
        assert second.events == []
        delivered = online.frames_named("consumer-conn", "message:delivered")
        assert delivered[0]["messageId"] == sent.message.id
        assert online.frames_named("admin-conn", "chat:delivered")[0]["deliveredTo"] == "owner"

    @pytest.mark.asyncio
    async def test_read_ack_keeps_first_timestamp(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        first = await service.acknowledge_read(conversation_id, sent.message.id, world.owner)
        stored_first = (await service.store.find_message_by_id(sent.message.id)).read_at
        second = await service.acknowledge_read(conversation_id, sent.message.id, world.owner)
        stored_second = (await service.store.find_message_by_id(sent.message.id)).read_at

        assert first.changed is True
        assert second.changed is False
        assert stored_first == stored_second

    @pytest.mark.asyncio
    async def test_sender_cannot_acknowledge_own_message(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        with pytest.raises(ForbiddenException):
            await service.acknowledge_read(conversation_id, sent.message.id, world.consumer)

    @pytest.mark.asyncio
    async def test_message_from_another_conversation_is_not_found(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        other = await service.get_or_create_conversation(world.consumer_id, world.other_plant_id)
        sent = await service.send_message(other.conversation.id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        with pytest.raises(NotFoundException):
            await service.acknowledge_delivery(conversation_id, sent.message.id, world.owner)

    @pytest.mark.asyncio
    async def test_set_once_helpers(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        assert await service.mark_message_as_delivered(sent.message.id) is True
        assert await service.mark_message_as_delivered(sent.message.id) is False
        assert await service.mark_message_as_read(sent.message.id) is True
        assert await service.mark_message_as_read(sent.message.id) is False


class TestListingAndUnread:
    @pytest.mark.asyncio
    async def test_conversations_ordered_by_recent_activity(self, service, router, world):
        first = await service.get_or_create_conversation(world.consumer_id, world.plant_id)
        second = await service.get_or_create_conversation(world.consumer_id, world.other_plant_id)
        await service.send_message(second.conversation.id, world.other_owner_id, IdentityType.OWNER, "Hello")
        await service.send_message(first.conversation.id, world.owner_id, IdentityType.OWNER, "Hi there")

        views = await service.list_conversations(world.consumer)

        assert [view.id for view in views] == [first.conversation.id, second.conversation.id]
        assert views[0].last_message.content == "Hi there"
        assert views[0].unread_count == 1
        assert views[0].other_party_name == "Rosa Green"
        assert await service.get_unread_total(world.consumer) == 2
        assert await service.get_unread_total(world.owner) == 0

    @pytest.mark.asyncio
    async def test_owner_sees_consumer_display_name(self, service, world):
        await service.get_or_create_conversation(world.consumer_id, world.plant_id)

        views = await service.list_conversations(world.owner)

        assert [view.other_party_name for view in views] == ["Sam F."]

    @pytest.mark.asyncio
    async def test_admins_have_no_inbox(self, service):
        with pytest.raises(ForbiddenException):
            await service.list_conversations(Identity.admin("a1"))
        with pytest.raises(ForbiddenException):
            await service.get_unread_total(Identity.admin("a1"))


class TestTyping:
    @pytest.mark.asyncio
    async def test_typing_goes_to_room_minus_sender_connection(self, service, router, online, world):
        conversation_id = await _open_conversation(service, router, world)
        online.join("consumer-conn", f"conversation:{conversation_id}")
        online.join("owner-conn", f"conversation:{conversation_id}")
        online.reset()

        events = await service.relay_typing(conversation_id, world.consumer, True, "consumer-conn")
        await router.dispatch(events)

        assert online.frames_named("owner-conn", "user_typing") == [
            {
                "conversationId": conversation_id,
                "userId": world.consumer_id,
                "userType": "consumer",
                "isTyping": True,
            }
        ]
        assert online.events_for("consumer-conn") == []

    @pytest.mark.asyncio
    async def test_stranger_cannot_type(self, service, router, world):
        conversation_id = await _open_conversation(service, router, world)
        with pytest.raises(ForbiddenException):
            await service.relay_typing(conversation_id, world.other_consumer, True)
