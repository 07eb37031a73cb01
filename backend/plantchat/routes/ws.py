# backend/plantchat/routes/ws.py
"""Chat WebSocket endpoint."""

from fastapi import APIRouter, WebSocket

from ..api.dependencies.services import get_chat_gateway
from ..core.constants import WS_CHAT_PATH

router = APIRouter(tags=["realtime"])


@router.websocket(WS_CHAT_PATH)
async def chat_socket(websocket: WebSocket) -> None:
    """
    Live chat channel.

    Authenticate with ``?token=<jwt>`` or ``Authorization: Bearer <jwt>``.
    Frames are JSON ``{"action": ..., "data": {...}}``.
    """
    await get_chat_gateway(websocket).serve(websocket)
