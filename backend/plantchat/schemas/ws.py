# backend/plantchat/schemas/ws.py
"""WebSocket frame and action payload models."""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from ..core.enums import InboundAction
from .base import StrictModel


class WsInbound(BaseModel):
    """Client -> Server."""

    action: InboundAction
    data: Dict[str, Any] = Field(default_factory=dict)


class ConversationActionData(StrictModel):
    conversation_id: str = Field(..., min_length=1)


class SendMessageData(ConversationActionData):
    content: str


class TypingData(ConversationActionData):
    is_typing: bool = True


class MarkReadData(ConversationActionData):
    message_id: Optional[str] = None


class MarkDeliveredData(ConversationActionData):
    message_id: str = Field(..., min_length=1)
