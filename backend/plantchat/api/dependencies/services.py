# backend/plantchat/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

The chat components are built once in the application lifespan and kept on
app.state; these functions hand them to routes.
"""

from fastapi import Request
from starlette.requests import HTTPConnection

from ...realtime.gateway import ChatGateway
from ...realtime.router import EventRouter
from ...services.conversation_service import ConversationService


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.conversation_service


def get_event_router(request: Request) -> EventRouter:
    return request.app.state.event_router


def get_chat_gateway(connection: HTTPConnection) -> ChatGateway:
    return connection.app.state.chat_gateway
