# backend/plantchat/realtime/publisher.py
"""
Publishing hooks for marketplace data changes.

Plant and verification mutations live outside this service; whatever
performs them calls these hooks so connected clients can refresh. Recipients
are derived here from the payload, never passed in by callers.
"""

import logging
from typing import Any, Dict, List

from ..core.constants import VERIFICATION_STATUS_APPROVED
from ..core.enums import IdentityType
from ..domain import Identity
from .events import ChatEvent, OutboundEvent
from .router import EventRouter

logger = logging.getLogger(__name__)


def build_verification_events(event: ChatEvent, request: Dict[str, Any]) -> List[OutboundEvent]:
    """Admins and the owning owner hear about every verification change."""
    events = [OutboundEvent.to_role(IdentityType.ADMIN, event, request)]
    owner_id = request.get("ownerId")
    if owner_id:
        events.append(OutboundEvent.to_user(Identity.owner(owner_id), event, request))
    else:
        logger.warning(f"[PUBLISHER] {event.value} without ownerId; owner not notified")
    return events


class SyncPublisher:
    def __init__(self, router: EventRouter):
        self.router = router

    async def notify_plant_created(self, plant: Dict[str, Any]) -> None:
        await self.router.broadcast_to_all(ChatEvent.PLANT_CREATED, plant)

    async def notify_plant_updated(self, plant: Dict[str, Any]) -> None:
        await self.router.broadcast_to_all(ChatEvent.PLANT_UPDATED, plant)

    async def notify_plant_deleted(self, plant_id: str) -> None:
        await self.router.broadcast_to_all(ChatEvent.PLANT_DELETED, {"id": plant_id})

    async def notify_verification_created(self, request: Dict[str, Any]) -> None:
        await self.router.dispatch(build_verification_events(ChatEvent.VERIFICATION_CREATED, request))

    async def notify_verification_updated(self, request: Dict[str, Any]) -> None:
        events = build_verification_events(ChatEvent.VERIFICATION_UPDATED, request)
        if request.get("status") == VERIFICATION_STATUS_APPROVED:
            events.append(
                OutboundEvent.to_role(
                    IdentityType.CONSUMER,
                    ChatEvent.PLANT_VERIFIED,
                    {"plantId": request.get("plantId")},
                )
            )
        await self.router.dispatch(events)

    async def notify_refresh(self, role: IdentityType, data_type: str) -> None:
        """Generic "re-fetch this" signal for one audience."""
        await self.router.broadcast_to_role(role, ChatEvent.DATA_REFRESH, {"type": data_type})
