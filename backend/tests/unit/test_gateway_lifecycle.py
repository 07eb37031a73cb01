"""Connection setup and teardown in ChatGateway without a running server."""

import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect, WebSocketState

from plantchat.domain import Identity
from plantchat.realtime.gateway import ChatGateway
from plantchat.realtime.registry import ConnectionRegistry
from plantchat.realtime.router import EventRouter
from plantchat.realtime.transport import WebSocketTransport
from tests.helpers.auth import token_for


class ScriptedSocket:
    """Accepts, records outbound frames, then disconnects on first receive."""

    def __init__(self, token=None):
        self.query_params = {"token": token} if token else {}
        self.headers = {}
        self.accepted = False
        self.close_code = None
        self.sent = []
        self.client_state = WebSocketState.CONNECTING

    async def accept(self):
        self.accepted = True
        self.client_state = WebSocketState.CONNECTED

    async def close(self, code: int = 1000):
        self.close_code = code
        self.client_state = WebSocketState.DISCONNECTED

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_text(self):
        await asyncio.sleep(0)
        raise WebSocketDisconnect(code=1000)


@pytest.fixture
def gateway():
    registry = ConnectionRegistry()
    transport = WebSocketTransport()
    return ChatGateway(registry, transport, EventRouter(registry, transport), service=None)


class TestGatewayLifecycle:
    @pytest.mark.asyncio
    async def test_heartbeat_task_is_finished_when_serve_returns(self, gateway, monkeypatch):
        started = []

        async def idle_heartbeat(connection_id):
            started.append(asyncio.current_task())
            await asyncio.Event().wait()

        monkeypatch.setattr(gateway, "_heartbeat", idle_heartbeat)
        socket = ScriptedSocket(token_for(Identity.consumer("c1")))

        await gateway.serve(socket)

        assert len(started) == 1
        assert started[0].done()
        assert started[0].cancelled()

    @pytest.mark.asyncio
    async def test_disconnect_unregisters_and_leaves_rooms(self, gateway):
        consumer = Identity.consumer("c1")
        socket = ScriptedSocket(token_for(consumer))

        await gateway.serve(socket)

        assert socket.accepted
        assert socket.sent[0]["event"] == "connected"
        assert not gateway.registry.is_connected(consumer)
        assert gateway.transport.connection_count() == 0
        assert gateway.transport.room_size("type:consumer") == 0

    @pytest.mark.asyncio
    async def test_bad_token_is_closed_before_accept(self, gateway):
        socket = ScriptedSocket("garbage")

        await gateway.serve(socket)

        assert socket.accepted is False
        assert socket.close_code == 4001
        assert gateway.registry.total_connections() == 0
