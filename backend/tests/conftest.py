# backend/tests/conftest.py
"""
Pytest configuration for the chat backend.

Every test gets its own SQLite file under tmp_path; nothing touches the
database configured for development.
"""

import os
import sys

# Configure the environment BEFORE any plantchat imports
os.environ.setdefault("SECRET_KEY", "plantchat-test-secret-key")
os.environ["DATABASE_URL"] = "sqlite://"

backend_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, backend_dir)

from dataclasses import dataclass

import pytest
from sqlalchemy.orm import Session, sessionmaker

from plantchat.database import build_engine, build_session_factory, init_db
from plantchat.domain import Identity
from plantchat.models import Consumer, Owner, Plant
from plantchat.realtime.registry import ConnectionRegistry
from plantchat.realtime.router import EventRouter
from plantchat.services.access_control import AccessControl
from plantchat.services.chat_store import SqlAlchemyChatStore
from plantchat.services.conversation_service import ConversationService
from tests.helpers.transport import RecordingTransport


@dataclass
class ChatWorld:
    """Ids of the rows every chat test starts from."""

    owner_id: str
    consumer_id: str
    other_consumer_id: str
    other_owner_id: str
    plant_id: str
    other_plant_id: str

    @property
    def owner(self) -> Identity:
        return Identity.owner(self.owner_id)

    @property
    def consumer(self) -> Identity:
        return Identity.consumer(self.consumer_id)

    @property
    def other_consumer(self) -> Identity:
        return Identity.consumer(self.other_consumer_id)

    @property
    def other_owner(self) -> Identity:
        return Identity.owner(self.other_owner_id)


@pytest.fixture
def engine(tmp_path):
    test_engine = build_engine(f"sqlite:///{tmp_path / 'chat.db'}")
    init_db(test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> sessionmaker:
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session: Session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def world(db) -> ChatWorld:
    owner = Owner(email="rosa@example.com", name="Rosa Green")
    other_owner = Owner(email="basil@example.com", name="Basil Thorne")
    consumer = Consumer(email="sam@example.com", name="Sam Fern", display_name="Sam F.")
    other_consumer = Consumer(email="ivy@example.com", name="Ivy Moss", display_name="Ivy M.")
    db.add_all([owner, other_owner, consumer, other_consumer])
    db.flush()

    plant = Plant(owner_id=owner.id, name="Monstera Deliciosa", address="12 Garden Row")
    other_plant = Plant(owner_id=other_owner.id, name="Fiddle Leaf Fig")
    db.add_all([plant, other_plant])
    db.commit()

    return ChatWorld(
        owner_id=owner.id,
        consumer_id=consumer.id,
        other_consumer_id=other_consumer.id,
        other_owner_id=other_owner.id,
        plant_id=plant.id,
        other_plant_id=other_plant.id,
    )


@pytest.fixture
def store(session_factory) -> SqlAlchemyChatStore:
    return SqlAlchemyChatStore(session_factory)


@pytest.fixture
def service(store) -> ConversationService:
    return ConversationService(store, AccessControl(store))


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def router(registry, transport) -> EventRouter:
    return EventRouter(registry, transport)


@pytest.fixture
def app(session_factory, world):
    from plantchat.main import create_app

    return create_app(session_factory)


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient

    with TestClient(app) as test_client:
        yield test_client
