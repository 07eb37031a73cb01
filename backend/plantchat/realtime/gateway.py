# backend/plantchat/realtime/gateway.py
"""
WebSocket connection lifecycle for the chat channel.

Handshake: the bearer token is verified before the socket is accepted; a bad
token closes it with 4001 and nothing else is sent. An accepted connection
joins its identity room and its role room, is tracked in the registry, and
gets a heartbeat task. Each inbound frame is handled by handle_action(); the
reply goes back to the caller and any events go through the router.
"""

import asyncio
from datetime import datetime, timezone
import json
import logging
from typing import Any, Dict

from fastapi import WebSocket, WebSocketDisconnect

from ..auth import authenticate_token, extract_bearer_token
from ..core.config import settings
from ..core.constants import WS_CLOSE_AUTH_FAILED
from ..core.exceptions import TransportAuthException
from ..core.ulid_helper import generate_ulid
from ..domain import Identity
from ..monitoring.prometheus_metrics import prometheus_metrics
from ..services.conversation_service import ConversationService
from .actions import ActionContext, error, handle_action
from .events import ChatEvent, build_frame
from .registry import ConnectionRegistry, role_room
from .router import EventRouter
from .transport import WebSocketTransport

logger = logging.getLogger(__name__)


class ChatGateway:
    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: WebSocketTransport,
        router: EventRouter,
        service: ConversationService,
    ):
        self.registry = registry
        self.transport = transport
        self.router = router
        self.service = service

    async def serve(self, websocket: WebSocket) -> None:
        """Run one chat connection until the client goes away."""
        token = extract_bearer_token(websocket.query_params, websocket.headers)
        try:
            authenticated = authenticate_token(token)
        except TransportAuthException as e:
            logger.info(f"[WS] Handshake rejected: {e.message}")
            await websocket.close(code=WS_CLOSE_AUTH_FAILED)
            return

        await websocket.accept()
        identity = authenticated.identity
        connection_id = generate_ulid()
        self._connect(identity, connection_id, websocket)

        heartbeat = asyncio.create_task(self._heartbeat(connection_id))
        try:
            await self.transport.send(
                connection_id,
                build_frame(
                    ChatEvent.CONNECTED,
                    {
                        "connectionId": connection_id,
                        "userId": identity.id,
                        "userType": identity.type.value,
                    },
                ),
            )
            await self._receive_loop(websocket, identity, connection_id)
        finally:
            heartbeat.cancel()
            self._disconnect(identity, connection_id)
            try:
                await heartbeat
            except asyncio.CancelledError:
                pass
            except Exception as exc:
                logger.debug(f"[WS] Heartbeat for {connection_id} failed after cancel: {exc}")

    def _connect(self, identity: Identity, connection_id: str, websocket: WebSocket) -> None:
        self.transport.add(connection_id, websocket)
        self.transport.join(connection_id, self.registry.room_for(identity))
        self.transport.join(connection_id, role_room(identity.type))
        self.registry.register(identity, connection_id)
        prometheus_metrics.websocket_connected()
        logger.info(
            f"[WS] {identity.key} connected ({connection_id}, "
            f"{self.registry.connection_count(identity)} open)"
        )

    def _disconnect(self, identity: Identity, connection_id: str) -> None:
        self.registry.unregister(identity, connection_id)
        self.transport.remove(connection_id)
        prometheus_metrics.websocket_disconnected()

    async def _receive_loop(self, websocket: WebSocket, identity: Identity, connection_id: str) -> None:
        ctx = ActionContext(service=self.service, identity=identity, connection_id=connection_id)
        while True:
            try:
                text = await websocket.receive_text()
            except WebSocketDisconnect:
                logger.info(f"[WS] {identity.key} disconnected ({connection_id})")
                return
            except RuntimeError as e:
                # Socket already closed by a failed send or the heartbeat
                logger.debug(f"[WS] Receive on closed connection {connection_id}: {e}")
                return

            if len(text.encode("utf-8")) > settings.ws_max_message_size:
                await self.transport.send(
                    connection_id, error(None, "message_too_large", "Frame exceeds the maximum size")
                )
                continue

            try:
                raw: Any = json.loads(text)
            except ValueError:
                await self.transport.send(connection_id, error(None, "invalid_json", "Frame is not valid JSON"))
                continue

            await self._handle(ctx, raw)

    async def _handle(self, ctx: ActionContext, raw: Any) -> None:
        try:
            outcome = await handle_action(ctx, raw)
        except Exception:
            logger.exception(f"[WS] Unhandled error for {ctx.identity.key}")
            action = raw.get("action") if isinstance(raw, dict) else None
            await self.transport.send(
                ctx.connection_id,
                error(action if isinstance(action, str) else None, "internal_error", "Internal Server Error"),
            )
            return

        if outcome.join_room:
            self.transport.join(ctx.connection_id, outcome.join_room)
        if outcome.leave_room:
            self.transport.leave(ctx.connection_id, outcome.leave_room)

        await self.transport.send(ctx.connection_id, outcome.reply)
        if outcome.events:
            await self.router.dispatch(outcome.events)

    async def _heartbeat(self, connection_id: str) -> None:
        while True:
            await asyncio.sleep(settings.ws_heartbeat_interval)
            frame: Dict[str, Any] = build_frame(
                ChatEvent.HEARTBEAT, {"ts": datetime.now(timezone.utc).isoformat()}
            )
            if not await self.transport.send(connection_id, frame):
                logger.info(f"[WS] Heartbeat to {connection_id} failed; connection dropped")
                return
