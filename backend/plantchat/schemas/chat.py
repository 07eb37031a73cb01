# backend/plantchat/schemas/chat.py
"""
Request and response schemas for the conversation REST API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from ..domain import MessageRecord
from ..services.conversation_service import ConversationView, MessagePage
from .base import StandardizedModel, StrictModel


class SendMessageRequest(StrictModel):
    """Body of POST /conversations/{id}/messages."""

    content: str = Field(..., description="Message text; surrounding whitespace is trimmed")


class MessageResponse(StandardizedModel):
    id: str
    conversation_id: str
    sender_type: str
    sender_id: str
    content: str
    sent_at: datetime
    delivered_at: Optional[datetime] = None
    read_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, message: MessageRecord) -> "MessageResponse":
        return cls(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_type=message.sender_type.value,
            sender_id=message.sender_id,
            content=message.content,
            sent_at=message.sent_at,
            delivered_at=message.delivered_at,
            read_at=message.read_at,
        )


class LastMessagePreview(StandardizedModel):
    content: str
    sent_at: datetime
    sender_type: str


class ConversationInfo(StandardizedModel):
    """Conversation header shown above a message page."""

    id: str
    plant_id: str
    plant_name: str
    plant_address: Optional[str] = None
    other_party_name: str


class ConversationResponse(ConversationInfo):
    unread_count: int = 0
    created_at: datetime
    last_message_at: Optional[datetime] = None
    last_message: Optional[LastMessagePreview] = None

    @classmethod
    def from_view(cls, view: ConversationView) -> "ConversationResponse":
        preview = None
        if view.last_message is not None:
            preview = LastMessagePreview(
                content=view.last_message.content,
                sent_at=view.last_message.sent_at,
                sender_type=view.last_message.sender_type.value,
            )
        return cls(
            id=view.id,
            plant_id=view.plant_id,
            plant_name=view.plant_name,
            plant_address=view.plant_address,
            other_party_name=view.other_party_name,
            unread_count=view.unread_count,
            created_at=view.created_at,
            last_message_at=view.last_message_at,
            last_message=preview,
        )


class MessagesPageResponse(StandardizedModel):
    messages: List[MessageResponse]
    has_more: bool
    conversation: ConversationInfo

    @classmethod
    def from_page(cls, page: MessagePage) -> "MessagesPageResponse":
        view = page.conversation
        return cls(
            messages=[MessageResponse.from_record(message) for message in page.messages],
            has_more=page.has_more,
            conversation=ConversationInfo(
                id=view.id,
                plant_id=view.plant_id,
                plant_name=view.plant_name,
                plant_address=view.plant_address,
                other_party_name=view.other_party_name,
            ),
        )


class MarkReadResponse(StandardizedModel):
    success: bool = True
    count: int
    read_at: Optional[datetime] = None


class UnreadCountResponse(StandardizedModel):
    unread_count: int


class HealthResponse(StandardizedModel):
    status: str
    connections: int
    identities: int = 0
    operations: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
