# backend/plantchat/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.orm import sessionmaker

from .core.config import is_running_tests, settings
from .core.constants import API_DESCRIPTION, API_TITLE, API_V1_PREFIX, API_VERSION, BRAND_NAME
from .database import SessionLocal, init_db
from .errors import register_error_handlers
from .monitoring.prometheus_metrics import prometheus_metrics
from .realtime.gateway import ChatGateway
from .realtime.publisher import SyncPublisher
from .realtime.registry import ConnectionRegistry
from .realtime.router import EventRouter
from .realtime.transport import WebSocketTransport
from .routes import ws as ws_routes
from .routes.v1 import conversations as conversations_v1
from .schemas.chat import HealthResponse
from .services.access_control import AccessControl
from .services.chat_store import SqlAlchemyChatStore
from .services.conversation_service import ConversationService

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def _build_chat_components(app: FastAPI, session_factory: sessionmaker) -> None:
    """Wire the chat core once per process and keep it on app.state."""
    registry = ConnectionRegistry()
    transport = WebSocketTransport()
    event_router = EventRouter(registry, transport)
    store = SqlAlchemyChatStore(session_factory)
    service = ConversationService(store, AccessControl(store))

    app.state.registry = registry
    app.state.transport = transport
    app.state.event_router = event_router
    app.state.chat_store = store
    app.state.conversation_service = service
    app.state.sync_publisher = SyncPublisher(event_router)
    app.state.chat_gateway = ChatGateway(registry, transport, event_router, service)


def create_app(session_factory: Optional[sessionmaker] = None) -> FastAPI:
    """Build the API; tests pass their own session factory."""
    factory = session_factory or SessionLocal

    @asynccontextmanager
    async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Handle application startup/shutdown without deprecated events."""
        logger.info(f"{BRAND_NAME} chat API starting up...")
        logger.info(f"Environment: {settings.environment}")
        if is_running_tests():
            logger.info("Running under pytest (test mode active)")

        init_db(factory.kw.get("bind"))
        _build_chat_components(app, factory)

        yield

        logger.info(f"{BRAND_NAME} chat API shutting down...")
        app.state.registry.clear()

    app = FastAPI(
        title=API_TITLE,
        description=API_DESCRIPTION,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )
    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "HEAD", "OPTIONS", "POST", "PUT", "PATCH", "DELETE"],
        allow_headers=["*"],
    )
    logger.info("CORS allow_origins=%s allow_credentials=%s", settings.allowed_origins, True)

    api_v1 = APIRouter(prefix=API_V1_PREFIX)
    api_v1.include_router(conversations_v1.router, prefix="/conversations")
    app.include_router(api_v1)
    app.include_router(ws_routes.router)

    @app.get("/health", response_model=HealthResponse, include_in_schema=False)
    async def health(request: Request) -> HealthResponse:
        registry = request.app.state.registry
        return HealthResponse(
            status="healthy",
            connections=registry.total_connections(),
            identities=len(registry.connected_identities()),
            operations=request.app.state.conversation_service.get_metrics(),
        )

    # Prometheus metrics - standard path for scraping
    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        return Response(
            content=prometheus_metrics.get_metrics(),
            media_type=prometheus_metrics.get_content_type(),
        )

    return app


app = create_app()
