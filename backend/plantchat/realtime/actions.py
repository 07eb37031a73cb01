# backend/plantchat/realtime/actions.py
"""
Inbound WebSocket action handlers.

handle_action() turns one client frame into a reply frame for the caller,
the events to fan out, and any room membership change. It never touches a
socket, so the gateway decides how to deliver the outcome.
"""

from dataclasses import dataclass, field
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import ValidationError

from ..core.enums import InboundAction
from ..core.exceptions import DomainException, RepositoryException
from ..domain import Identity
from ..schemas.ws import (
    ConversationActionData,
    MarkDeliveredData,
    MarkReadData,
    SendMessageData,
    TypingData,
    WsInbound,
)
from ..services.conversation_service import ConversationService
from .events import ChatEvent, OutboundEvent, build_frame, serialize_message
from .registry import conversation_room

logger = logging.getLogger(__name__)


@dataclass
class ActionOutcome:
    reply: Dict[str, Any]
    events: List[OutboundEvent] = field(default_factory=list)
    join_room: Optional[str] = None
    leave_room: Optional[str] = None


@dataclass
class ActionContext:
    service: ConversationService
    identity: Identity
    connection_id: str


def ack(action: str, **data: Any) -> Dict[str, Any]:
    return build_frame(ChatEvent.ACK, {"action": action, "success": True, **data})


def error(action: Optional[str], code: str, message: str) -> Dict[str, Any]:
    return build_frame(ChatEvent.ERROR, {"action": action, "code": code, "message": message})


async def _join_conversation(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    params = ConversationActionData.model_validate(data)
    await ctx.service.access.ensure_access(params.conversation_id, ctx.identity.id, ctx.identity.type)
    return ActionOutcome(
        reply=ack(InboundAction.JOIN_CONVERSATION.value, conversationId=params.conversation_id),
        join_room=conversation_room(params.conversation_id),
    )


async def _leave_conversation(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    params = ConversationActionData.model_validate(data)
    return ActionOutcome(
        reply=ack(InboundAction.LEAVE_CONVERSATION.value, conversationId=params.conversation_id),
        leave_room=conversation_room(params.conversation_id),
    )


async def _send_message(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    params = SendMessageData.model_validate(data)
    result = await ctx.service.send_message(
        params.conversation_id, ctx.identity.id, ctx.identity.type, params.content
    )
    return ActionOutcome(
        reply=ack(
            InboundAction.SEND_MESSAGE.value,
            message=serialize_message(result.message, result.message.read_at),
        ),
        events=result.events,
    )


async def _typing(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    params = TypingData.model_validate(data)
    events = await ctx.service.relay_typing(
        params.conversation_id, ctx.identity, params.is_typing, ctx.connection_id
    )
    return ActionOutcome(reply=ack(InboundAction.TYPING.value), events=events)


async def _mark_read(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    params = MarkReadData.model_validate(data)
    if params.message_id:
        outcome = await ctx.service.acknowledge_read(params.conversation_id, params.message_id, ctx.identity)
        return ActionOutcome(
            reply=ack(
                InboundAction.MARK_READ.value,
                messageId=params.message_id,
                changed=outcome.changed,
            ),
            events=outcome.events,
        )

    result = await ctx.service.mark_as_read(params.conversation_id, ctx.identity.id, ctx.identity.type)
    return ActionOutcome(
        reply=ack(InboundAction.MARK_READ.value, count=result.count, messageIds=result.message_ids),
        events=result.events,
    )


async def _mark_delivered(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    params = MarkDeliveredData.model_validate(data)
    outcome = await ctx.service.acknowledge_delivery(params.conversation_id, params.message_id, ctx.identity)
    return ActionOutcome(
        reply=ack(InboundAction.MARK_DELIVERED.value, messageId=params.message_id, changed=outcome.changed),
        events=outcome.events,
    )


async def _heartbeat(ctx: ActionContext, data: Dict[str, Any]) -> ActionOutcome:
    return ActionOutcome(reply=ack(InboundAction.HEARTBEAT.value))


_HANDLERS: Dict[InboundAction, Callable[[ActionContext, Dict[str, Any]], Awaitable[ActionOutcome]]] = {
    InboundAction.JOIN_CONVERSATION: _join_conversation,
    InboundAction.LEAVE_CONVERSATION: _leave_conversation,
    InboundAction.SEND_MESSAGE: _send_message,
    InboundAction.TYPING: _typing,
    InboundAction.MARK_READ: _mark_read,
    InboundAction.MARK_DELIVERED: _mark_delivered,
    InboundAction.HEARTBEAT: _heartbeat,
}


async def handle_action(ctx: ActionContext, raw: Any) -> ActionOutcome:
    """
    Run one inbound frame.

    Domain, validation and store errors become an ``error`` reply; the
    connection stays usable.
    """
    raw_action = raw.get("action") if isinstance(raw, dict) else None
    try:
        frame = WsInbound.model_validate(raw)
    except ValidationError:
        return ActionOutcome(
            reply=error(raw_action if isinstance(raw_action, str) else None, "invalid_frame", "Unknown or malformed action")
        )

    action = frame.action.value
    try:
        return await _HANDLERS[frame.action](ctx, frame.data)
    except ValidationError as e:
        return ActionOutcome(reply=error(action, "validation_error", _first_error(e)))
    except DomainException as e:
        logger.info(f"[WS] {action} from {ctx.identity.key} rejected: {e.code}")
        return ActionOutcome(reply=error(action, e.code, e.message))
    except RepositoryException as e:
        logger.error(f"[WS] {action} from {ctx.identity.key} hit a store error: {str(e)}")
        return ActionOutcome(reply=error(action, "store_unavailable", "The message store is unavailable, please retry"))


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid payload"
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg', 'invalid')}" if location else str(first.get("msg", "invalid"))
