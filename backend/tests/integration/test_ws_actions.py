"""Inbound WebSocket actions, exercised without a socket."""

import pytest
import pytest_asyncio

from plantchat.core.enums import IdentityType
from plantchat.realtime.actions import ActionContext, handle_action

pytestmark = pytest.mark.integration


@pytest_asyncio.fixture
async def conversation_id(service, world):
    result = await service.get_or_create_conversation(world.consumer_id, world.plant_id)
    return result.conversation.id


def _ctx(service, identity, connection_id="conn-1") -> ActionContext:
    return ActionContext(service=service, identity=identity, connection_id=connection_id)


class TestFrameValidation:
    @pytest.mark.asyncio
    async def test_unknown_action(self, service, world):
        outcome = await handle_action(_ctx(service, world.consumer), {"action": "dance", "data": {}})

        assert outcome.reply["event"] == "error"
        assert outcome.reply["data"]["code"] == "invalid_frame"
        assert outcome.reply["data"]["action"] == "dance"

    @pytest.mark.asyncio
    async def test_non_object_frame(self, service, world):
        outcome = await handle_action(_ctx(service, world.consumer), ["send_message"])

        assert outcome.reply["data"]["code"] == "invalid_frame"
        assert outcome.reply["data"]["action"] is None

    @pytest.mark.asyncio
    async def test_missing_conversation_id(self, service, world):
        outcome = await handle_action(
            _ctx(service, world.consumer), {"action": "send_message", "data": {"content": "Hi"}}
        )

        assert outcome.reply["data"]["code"] == "validation_error"
        assert "conversationId" in outcome.reply["data"]["message"]

    @pytest.mark.asyncio
    async def test_heartbeat_is_acknowledged(self, service, world):
        outcome = await handle_action(_ctx(service, world.owner), {"action": "heartbeat"})

        assert outcome.reply == {"event": "ack", "data": {"action": "heartbeat", "success": True}}


class TestConversationActions:
    @pytest.mark.asyncio
    async def test_join_requires_access(self, service, world, conversation_id):
        allowed = await handle_action(
            _ctx(service, world.owner), {"action": "join_conversation", "data": {"conversationId": conversation_id}}
        )
        denied = await handle_action(
            _ctx(service, world.other_consumer),
            {"action": "join_conversation", "data": {"conversationId": conversation_id}},
        )

        assert allowed.join_room == f"conversation:{conversation_id}"
        assert allowed.reply["data"]["success"] is True
        assert denied.join_room is None
        assert denied.reply["data"]["code"] == "ForbiddenException"

    @pytest.mark.asyncio
    async def test_leave(self, service, world, conversation_id):
        outcome = await handle_action(
            _ctx(service, world.owner), {"action": "leave_conversation", "data": {"conversationId": conversation_id}}
        )

        assert outcome.leave_room == f"conversation:{conversation_id}"

    @pytest.mark.asyncio
    async def test_send_message_returns_ack_and_events(self, service, world, conversation_id):
        outcome = await handle_action(
            _ctx(service, world.consumer),
            {"action": "send_message", "data": {"conversationId": conversation_id, "content": "Is it pet safe?"}},
        )

        message = outcome.reply["data"]["message"]
        assert outcome.reply["event"] == "ack"
        assert message["content"] == "Is it pet safe?"
        assert message["senderType"] == "consumer"
        assert [event.event.value for event in outcome.events] == ["message:new", "message:new", "chat:message"]

    @pytest.mark.asyncio
    async def test_send_empty_message_is_rejected(self, service, world, conversation_id):
        outcome = await handle_action(
            _ctx(service, world.consumer),
            {"action": "send_message", "data": {"conversationId": conversation_id, "content": "   "}},
        )

        assert outcome.reply["data"]["code"] == "ValidationException"
        assert outcome.events == []

    @pytest.mark.asyncio
    async def test_typing_excludes_the_typing_connection(self, service, world, conversation_id):
        outcome = await handle_action(
            _ctx(service, world.consumer, "phone"),
            {"action": "typing", "data": {"conversationId": conversation_id, "isTyping": False}},
        )

        assert len(outcome.events) == 1
        assert outcome.events[0].exclude_connection == "phone"
        assert outcome.events[0].payload["isTyping"] is False

    @pytest.mark.asyncio
    async def test_mark_read_whole_conversation(self, service, world, conversation_id):
        sent = await service.send_message(conversation_id, world.consumer_id, IdentityType.CONSUMER, "Hi")

        outcome = await handle_action(
            _ctx(service, world.owner), {"action": "mark_read", "data": {"conversationId": conversation_id}}
        )

        assert outcome.reply["data"]["count"] == 1
        assert outcome.reply["data"]["messageIds"] == [sent.message.id]

    @pytest.mark.asyncio
    async def test_mark_read_single_message(self, service, world, conversation_id):
        sent = await service.send_message(conversation_id, world.owner_id, IdentityType.OWNER, "Yes")

        outcome = await handle_action(
            _ctx(service, world.consumer),
            {"action": "mark_read", "data": {"conversationId": conversation_id, "messageId": sent.message.id}},
        )

        assert outcome.reply["data"]["changed"] is True
        assert "messages:read" in [event.event.value for event in outcome.events]

    @pytest.mark.asyncio
    async def test_mark_delivered(self, service, world, conversation_id):
        sent = await service.send_message(conversation_id, world.owner_id, IdentityType.OWNER, "Yes")
        frame = {"action": "mark_delivered", "data": {"conversationId": conversation_id, "messageId": sent.message.id}}

        first = await handle_action(_ctx(service, world.consumer), frame)
        second = await handle_action(_ctx(service, world.consumer), frame)

        assert first.reply["data"]["changed"] is True
        assert [event.event.value for event in first.events] == ["message:delivered", "chat:delivered"]
        assert second.reply["data"]["changed"] is False
        assert second.events == []

    @pytest.mark.asyncio
    async def test_unknown_conversation(self, service, world):
        outcome = await handle_action(
            _ctx(service, world.consumer), {"action": "mark_read", "data": {"conversationId": "missing"}}
        )

        assert outcome.reply["data"]["code"] == "NotFoundException"
