# backend/plantchat/realtime/router.py
"""
Event fan-out router.

Resolves an audience (a user, a role, everyone, or a conversation room) to
transport rooms and emits one frame per event. Delivery is best effort: an
event for an identity with no live connection is dropped, not queued, and
transport errors never reach the caller.
"""

import logging
from typing import Any, Dict, Iterable, Optional

from ..core.enums import IdentityType
from ..domain import Identity
from ..monitoring.prometheus_metrics import prometheus_metrics
from .events import Audience, ChatEvent, OutboundEvent, build_frame
from .registry import ConnectionRegistry, conversation_room, role_room
from .transport import Transport

logger = logging.getLogger(__name__)


class EventRouter:
    def __init__(self, registry: ConnectionRegistry, transport: Transport):
        self.registry = registry
        self.transport = transport

    async def broadcast_to_user(self, identity: Identity, event: ChatEvent, payload: Dict[str, Any]) -> int:
        if not self.registry.is_connected(identity):
            logger.debug(f"[FANOUT] {event.value} for {identity.key} dropped: no live connection")
            prometheus_metrics.record_realtime_event(event.value, "dropped")
            return 0
        return await self._emit_room(self.registry.room_for(identity), event, payload)

    async def broadcast_to_role(self, role: IdentityType, event: ChatEvent, payload: Dict[str, Any]) -> int:
        return await self._emit_room(role_room(role), event, payload)

    async def broadcast_to_all(self, event: ChatEvent, payload: Dict[str, Any]) -> int:
        try:
            delivered = await self.transport.emit_to_all(build_frame(event, payload))
        except Exception as e:
            logger.error(f"[FANOUT] Broadcast of {event.value} failed: {str(e)}")
            prometheus_metrics.record_realtime_event(event.value, "failed")
            return 0
        prometheus_metrics.record_realtime_event(event.value, "emitted")
        return delivered

    async def broadcast_to_conversation(
        self,
        conversation_id: str,
        event: ChatEvent,
        payload: Dict[str, Any],
        exclude_connection: Optional[str] = None,
    ) -> int:
        return await self._emit_room(
            conversation_room(conversation_id), event, payload, exclude=exclude_connection
        )

    async def dispatch(self, events: Iterable[OutboundEvent]) -> None:
        """Deliver a batch of events in order."""
        for item in events:
            if item.audience is Audience.USER and item.identity is not None:
                await self.broadcast_to_user(item.identity, item.event, item.payload)
            elif item.audience is Audience.ROLE and item.role is not None:
                await self.broadcast_to_role(item.role, item.event, item.payload)
            elif item.audience is Audience.ALL:
                await self.broadcast_to_all(item.event, item.payload)
            elif item.audience is Audience.CONVERSATION and item.conversation_id:
                await self.broadcast_to_conversation(
                    item.conversation_id, item.event, item.payload, item.exclude_connection
                )
            else:
                logger.warning(f"[FANOUT] Unaddressable event {item.event.value} ({item.audience.value})")

    async def _emit_room(
        self,
        room: str,
        event: ChatEvent,
        payload: Dict[str, Any],
        exclude: Optional[str] = None,
    ) -> int:
        try:
            delivered = await self.transport.emit_to_room(room, build_frame(event, payload), exclude=exclude)
        except Exception as e:
            logger.error(f"[FANOUT] Emit of {event.value} to {room} failed: {str(e)}")
            prometheus_metrics.record_realtime_event(event.value, "failed")
            return 0
        logger.debug(f"[FANOUT] {event.value} -> {room} ({delivered} connections)")
        prometheus_metrics.record_realtime_event(event.value, "emitted" if delivered else "dropped")
        return delivered
