# backend/plantchat/realtime/registry.py
"""
In-memory connection registry.

Tracks which live connections belong to which identity so the router can
address "every socket of consumer X". State is process-local; running more
than one worker needs an external pub/sub bridge.

All mutations happen from connect/disconnect handling on the event loop.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
import logging
from typing import Dict, List

from ..core.constants import CONVERSATION_ROOM_PREFIX, ROLE_ROOM_PREFIX
from ..core.enums import IdentityType
from ..domain import Identity

logger = logging.getLogger(__name__)


def role_room(role: IdentityType) -> str:
    return f"{ROLE_ROOM_PREFIX}:{role.value}"


def conversation_room(conversation_id: str) -> str:
    return f"{CONVERSATION_ROOM_PREFIX}:{conversation_id}"


@dataclass(frozen=True)
class ConnectionEntry:
    identity_key: str
    connection_id: str
    connected_at: datetime


class ConnectionRegistry:
    """identity key -> {connection id -> entry}"""

    def __init__(self) -> None:
        self._connections: Dict[str, Dict[str, ConnectionEntry]] = {}

    def register(self, identity: Identity, connection_id: str) -> ConnectionEntry:
        """Track a connection for an identity. Registering the same pair twice is a no-op."""
        entries = self._connections.setdefault(identity.key, {})
        entry = entries.get(connection_id)
        if entry is None:
            entry = ConnectionEntry(identity.key, connection_id, datetime.now(timezone.utc))
            entries[connection_id] = entry
            logger.info(
                f"[WS] Registered connection {connection_id} for {identity.key} "
                f"({len(entries)} active)"
            )
        return entry

    def unregister(self, identity: Identity, connection_id: str) -> None:
        entries = self._connections.get(identity.key)
        if not entries:
            return
        entries.pop(connection_id, None)
        if not entries:
            del self._connections[identity.key]
        logger.info(f"[WS] Unregistered connection {connection_id} for {identity.key}")

    def room_for(self, identity: Identity) -> str:
        return identity.key

    def is_connected(self, identity: Identity) -> bool:
        return bool(self._connections.get(identity.key))

    def connection_count(self, identity: Identity) -> int:
        return len(self._connections.get(identity.key, {}))

    def total_connections(self) -> int:
        return sum(len(entries) for entries in self._connections.values())

    def connected_identities(self) -> List[str]:
        return sorted(self._connections)

    def clear(self) -> None:
        self._connections.clear()
