# backend/plantchat/realtime/transport.py
"""
Room-addressed delivery over live connections.

Transport is what the router needs from a socket layer. WebSocketTransport
implements it over Starlette WebSockets: connections join named rooms and
frames are sent to every member of a room concurrently. A connection whose
send fails is dropped from every room.
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def join(self, connection_id: str, room: str) -> None:
        ...

    def leave(self, connection_id: str, room: str) -> None:
        ...

    async def emit_to_room(
        self, room: str, frame: Dict[str, Any], exclude: Optional[str] = None
    ) -> int:
        """Send to every member of the room; returns how many sends succeeded."""
        ...

    async def emit_to_all(self, frame: Dict[str, Any]) -> int:
        ...

    async def send(self, connection_id: str, frame: Dict[str, Any]) -> bool:
        ...


class WebSocketTransport:
    def __init__(self) -> None:
        self._sockets: Dict[str, WebSocket] = {}
        self._rooms: Dict[str, Set[str]] = {}
        self._memberships: Dict[str, Set[str]] = {}

    def add(self, connection_id: str, websocket: WebSocket) -> None:
        self._sockets[connection_id] = websocket
        self._memberships.setdefault(connection_id, set())

    def remove(self, connection_id: str) -> None:
        """Forget a connection and take it out of every room."""
        self._sockets.pop(connection_id, None)
        for room in self._memberships.pop(connection_id, set()):
            members = self._rooms.get(room)
            if members is None:
                continue
            members.discard(connection_id)
            if not members:
                del self._rooms[room]

    def join(self, connection_id: str, room: str) -> None:
        if connection_id not in self._sockets:
            return
        self._rooms.setdefault(room, set()).add(connection_id)
        self._memberships[connection_id].add(room)

    def leave(self, connection_id: str, room: str) -> None:
        members = self._rooms.get(room)
        if members is not None:
            members.discard(connection_id)
            if not members:
                del self._rooms[room]
        self._memberships.get(connection_id, set()).discard(room)

    def rooms_of(self, connection_id: str) -> Set[str]:
        return set(self._memberships.get(connection_id, set()))

    def room_size(self, room: str) -> int:
        return len(self._rooms.get(room, set()))

    def connection_count(self) -> int:
        return len(self._sockets)

    async def emit_to_room(
        self, room: str, frame: Dict[str, Any], exclude: Optional[str] = None
    ) -> int:
        targets = [cid for cid in self._rooms.get(room, set()) if cid != exclude]
        return await self._emit(targets, frame)

    async def emit_to_all(self, frame: Dict[str, Any]) -> int:
        return await self._emit(list(self._sockets), frame)

    async def send(self, connection_id: str, frame: Dict[str, Any]) -> bool:
        return await self._emit([connection_id], frame) == 1

    async def _emit(self, connection_ids: Iterable[str], frame: Dict[str, Any]) -> int:
        targets = [cid for cid in connection_ids if cid in self._sockets]
        if not targets:
            return 0

        results = await asyncio.gather(
            *[self._safe_send(cid, frame) for cid in targets],
            return_exceptions=True,
        )

        failed: List[str] = [cid for cid, ok in zip(targets, results) if ok is not True]
        for cid in failed:
            await self._drop(cid)
        return len(targets) - len(failed)

    async def _safe_send(self, connection_id: str, frame: Dict[str, Any]) -> bool:
        websocket = self._sockets.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(frame)
            return True
        except Exception as e:
            logger.warning(f"[WS] Send to {connection_id} failed: {e}")
            return False

    async def _drop(self, connection_id: str) -> None:
        websocket = self._sockets.get(connection_id)
        self.remove(connection_id)
        if websocket is None or websocket.client_state != WebSocketState.CONNECTED:
            return
        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"[WS] Close of dropped connection {connection_id} failed: {e}")
