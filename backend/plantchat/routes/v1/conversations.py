# backend/plantchat/routes/v1/conversations.py
"""
Conversations routes - API v1

Versioned conversation endpoints under /api/v1/conversations.
All business logic delegated to ConversationService; routes only
authenticate, translate schemas and hand produced events to the router.

Endpoints:
    GET /                               -> List the caller's conversations
    GET /unread-count                   -> Total unread messages for the caller
    POST /plant/{plant_id}              -> Get or create a conversation (consumers)
    GET /{conversation_id}/messages     -> Get messages with pagination
    POST /{conversation_id}/messages    -> Send a message
    POST /{conversation_id}/read        -> Mark the conversation as read
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ...api.dependencies.auth import get_current_identity, require_consumer
from ...api.dependencies.services import get_conversation_service, get_event_router
from ...auth import AuthenticatedIdentity
from ...core.config import settings
from ...realtime.router import EventRouter
from ...schemas.chat import (
    ConversationResponse,
    MarkReadResponse,
    MessageResponse,
    MessagesPageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from ...services.conversation_service import ConversationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["conversations"])


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    current: AuthenticatedIdentity = Depends(get_current_identity),
    service: ConversationService = Depends(get_conversation_service),
) -> List[ConversationResponse]:
    """List the caller's conversations, most recently active first."""
    views = await service.list_conversations(current.identity)
    return [ConversationResponse.from_view(view) for view in views]


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    current: AuthenticatedIdentity = Depends(get_current_identity),
    service: ConversationService = Depends(get_conversation_service),
) -> UnreadCountResponse:
    total = await service.get_unread_total(current.identity)
    return UnreadCountResponse(unread_count=total)


@router.post("/plant/{plant_id}", response_model=ConversationResponse)
async def get_or_create_conversation(
    plant_id: str,
    current: AuthenticatedIdentity = Depends(require_consumer),
    service: ConversationService = Depends(get_conversation_service),
    event_router: EventRouter = Depends(get_event_router),
) -> ConversationResponse:
    """Open the caller's conversation about a plant, creating it on first contact."""
    result = await service.get_or_create_conversation(current.id, plant_id)
    await event_router.dispatch(result.events)
    return ConversationResponse.from_view(result.conversation)


@router.get("/{conversation_id}/messages", response_model=MessagesPageResponse)
async def get_messages(
    conversation_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(settings.messages_default_limit, ge=1, le=settings.messages_max_limit),
    before: Optional[str] = Query(None, description="Return messages older than this message id"),
    current: AuthenticatedIdentity = Depends(get_current_identity),
    service: ConversationService = Depends(get_conversation_service),
) -> MessagesPageResponse:
    """Messages oldest-first, with read receipts filtered for the caller."""
    result = await service.list_messages(
        conversation_id, current.id, current.type, page=page, limit=limit, before=before
    )
    return MessagesPageResponse.from_page(result)


@router.post(
    "/{conversation_id}/messages",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    conversation_id: str,
    request: SendMessageRequest,
    current: AuthenticatedIdentity = Depends(get_current_identity),
    service: ConversationService = Depends(get_conversation_service),
    event_router: EventRouter = Depends(get_event_router),
) -> MessageResponse:
    result = await service.send_message(conversation_id, current.id, current.type, request.content)
    await event_router.dispatch(result.events)
    return MessageResponse.from_record(result.message)


@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_conversation_read(
    conversation_id: str,
    current: AuthenticatedIdentity = Depends(get_current_identity),
    service: ConversationService = Depends(get_conversation_service),
    event_router: EventRouter = Depends(get_event_router),
) -> MarkReadResponse:
    result = await service.mark_as_read(conversation_id, current.id, current.type)
    await event_router.dispatch(result.events)
    return MarkReadResponse(count=result.count, read_at=result.read_at)
