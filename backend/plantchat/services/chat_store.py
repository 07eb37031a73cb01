# backend/plantchat/services/chat_store.py
"""
Conversation/message store adapter.

ChatStore is the async persistence contract the conversation service depends
on. SqlAlchemyChatStore implements it over the repositories: each call opens
its own session, runs the blocking work through asyncio.to_thread() and
commits before returning plain domain records.

Set-once timestamps rely on conditional UPDATEs and conversation uniqueness
on the database constraint, so the store needs no in-process locking.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
import logging
from typing import Callable, List, Optional, Protocol, Sequence, TypeVar, runtime_checkable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.enums import IdentityType
from ..core.exceptions import DomainException, RepositoryException
from ..domain import (
    ConversationOverview,
    ConversationRecord,
    Identity,
    MessageRecord,
    ParticipantProfile,
    PlantRecord,
)
from ..models.conversation import Conversation
from ..models.message import Message
from ..models.participant import Consumer, Owner
from ..models.plant import Plant
from ..repositories import (
    ConversationRepository,
    MessageRepository,
    NotificationRepository,
    ParticipantRepository,
    PlantRepository,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ChatStore(Protocol):
    """Persistence operations used by the conversation service."""

    async def find_conversation(self, consumer_id: str, plant_id: str) -> Optional[ConversationRecord]:
        ...

    async def create_conversation(self, consumer_id: str, owner_id: str, plant_id: str) -> ConversationRecord:
        """Raises ConflictException when the (consumer, plant) pair already exists."""
        ...

    async def find_conversation_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        ...

    async def append_message(
        self, conversation_id: str, sender_type: IdentityType, sender_id: str, content: str
    ) -> MessageRecord:
        ...

    async def update_conversation_last_message_at(self, conversation_id: str, ts: datetime) -> None:
        ...

    async def count_unread(self, conversation_id: str, from_sender_type: IdentityType) -> int:
        ...

    async def list_messages(
        self,
        conversation_id: str,
        before_message_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> List[MessageRecord]:
        """Newest first. An unknown cursor id falls back to offset paging."""
        ...

    async def list_unread_message_ids(self, conversation_id: str, from_sender_type: IdentityType) -> List[str]:
        ...

    async def mark_messages_read(self, message_ids: Sequence[str], read_at: datetime) -> int:
        """Returns how many rows actually changed."""
        ...

    async def set_message_delivered(self, message_id: str, at: datetime) -> bool:
        ...

    async def set_message_read(self, message_id: str, at: datetime) -> bool:
        ...

    async def find_message_by_id(self, message_id: str) -> Optional[MessageRecord]:
        ...

    async def get_read_receipts_enabled(self, identity: Identity) -> bool:
        """Unknown profiles default to True."""
        ...

    async def get_plant(self, plant_id: str) -> Optional[PlantRecord]:
        ...

    async def get_participant_profile(self, identity: Identity) -> Optional[ParticipantProfile]:
        ...

    async def create_notification(self, recipient: Identity, type: str, title: str, message: str) -> str:
        ...

    async def list_conversations_for(self, identity: Identity) -> List[ConversationOverview]:
        ...

    async def get_last_message(self, conversation_id: str) -> Optional[MessageRecord]:
        ...

    async def count_unread_for(self, identity: Identity) -> int:
        ...


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _conversation_record(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        consumer_id=row.consumer_id,
        owner_id=row.owner_id,
        plant_id=row.plant_id,
        created_at=_as_utc(row.created_at),
        last_message_at=_as_utc(row.last_message_at),
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        conversation_id=row.conversation_id,
        sender_type=IdentityType(row.sender_type),
        sender_id=row.sender_id,
        content=row.content,
        sent_at=_as_utc(row.sent_at),
        delivered_at=_as_utc(row.delivered_at),
        read_at=_as_utc(row.read_at),
    )


def _plant_record(row: Plant) -> PlantRecord:
    return PlantRecord(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        address=row.address,
        owner_name=row.owner.name if row.owner is not None else None,
    )


def _profile(identity: Identity, row: Consumer | Owner) -> ParticipantProfile:
    display_name = getattr(row, "display_name", None) or row.name
    return ParticipantProfile(
        identity=identity,
        name=row.name,
        display_name=display_name,
        read_receipts_enabled=bool(row.read_receipts_enabled),
    )


class SqlAlchemyChatStore:
    """ChatStore backed by the SQLAlchemy repositories."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _run_sync(self, op_name: str, work: Callable[[Session], T]) -> T:
        session: Session = self._session_factory()
        try:
            result = work(session)
            session.commit()
            return result
        except DomainException:
            session.rollback()
            raise
        except RepositoryException:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(f"[STORE] {op_name} failed: {str(exc)}")
            raise RepositoryException(f"{op_name} failed: {str(exc)}") from exc
        finally:
            session.close()

    async def _run(self, op_name: str, work: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run_sync, op_name, work)

    # Conversations

    async def find_conversation(self, consumer_id: str, plant_id: str) -> Optional[ConversationRecord]:
        def work(db: Session) -> Optional[ConversationRecord]:
            row = ConversationRepository(db).find_by_pair(consumer_id, plant_id)
            return _conversation_record(row) if row else None

        return await self._run("find_conversation", work)

    async def create_conversation(self, consumer_id: str, owner_id: str, plant_id: str) -> ConversationRecord:
        def work(db: Session) -> ConversationRecord:
            row = ConversationRepository(db).create_for_pair(consumer_id, owner_id, plant_id)
            return _conversation_record(row)

        return await self._run("create_conversation", work)

    async def find_conversation_by_id(self, conversation_id: str) -> Optional[ConversationRecord]:
        def work(db: Session) -> Optional[ConversationRecord]:
            row = ConversationRepository(db).get_by_id(conversation_id)
            return _conversation_record(row) if row else None

        return await self._run("find_conversation_by_id", work)

    async def update_conversation_last_message_at(self, conversation_id: str, ts: datetime) -> None:
        def work(db: Session) -> None:
            ConversationRepository(db).touch_last_message_at(conversation_id, ts)

        await self._run("update_conversation_last_message_at", work)

    async def list_conversations_for(self, identity: Identity) -> List[ConversationOverview]:
        if identity.is_admin:
            return []

        def work(db: Session) -> List[ConversationOverview]:
            rows = ConversationRepository(db).list_for_participant(identity.type, identity.id)
            overviews = []
            for row in rows:
                if identity.type is IdentityType.CONSUMER:
                    other_party_name = row.owner.name
                else:
                    other_party_name = row.consumer.display_name
                overviews.append(
                    ConversationOverview(
                        conversation=_conversation_record(row),
                        plant=_plant_record(row.plant),
                        other_party_name=other_party_name,
                    )
                )
            return overviews

        return await self._run("list_conversations_for", work)

    # Messages

    async def append_message(
        self, conversation_id: str, sender_type: IdentityType, sender_id: str, content: str
    ) -> MessageRecord:
        def work(db: Session) -> MessageRecord:
            row = MessageRepository(db).create(
                conversation_id=conversation_id,
                sender_type=sender_type.value,
                sender_id=sender_id,
                content=content,
                sent_at=datetime.now(timezone.utc),
            )
            return _message_record(row)

        return await self._run("append_message", work)

    async def find_message_by_id(self, message_id: str) -> Optional[MessageRecord]:
        def work(db: Session) -> Optional[MessageRecord]:
            row = MessageRepository(db).get_by_id(message_id)
            return _message_record(row) if row else None

        return await self._run("find_message_by_id", work)

    async def list_messages(
        self,
        conversation_id: str,
        before_message_id: Optional[str] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> List[MessageRecord]:
        def work(db: Session) -> List[MessageRecord]:
            repo = MessageRepository(db)
            cursor = None
            if before_message_id:
                cursor = repo.get_by_id(before_message_id)
                if cursor is None or cursor.conversation_id != conversation_id:
                    logger.debug(
                        f"[STORE] Unknown cursor {before_message_id}, falling back to offset paging"
                    )
                    cursor = None
            rows = repo.get_page(conversation_id, before=cursor, offset=offset, limit=limit)
            return [_message_record(row) for row in rows]

        return await self._run("list_messages", work)

    async def get_last_message(self, conversation_id: str) -> Optional[MessageRecord]:
        def work(db: Session) -> Optional[MessageRecord]:
            row = MessageRepository(db).latest(conversation_id)
            return _message_record(row) if row else None

        return await self._run("get_last_message", work)

    async def count_unread(self, conversation_id: str, from_sender_type: IdentityType) -> int:
        return await self._run(
            "count_unread",
            lambda db: MessageRepository(db).count_unread(conversation_id, from_sender_type),
        )

    async def count_unread_for(self, identity: Identity) -> int:
        if identity.is_admin:
            return 0
        return await self._run(
            "count_unread_for",
            lambda db: MessageRepository(db).count_unread_for_participant(identity.type, identity.id),
        )

    async def list_unread_message_ids(self, conversation_id: str, from_sender_type: IdentityType) -> List[str]:
        return await self._run(
            "list_unread_message_ids",
            lambda db: MessageRepository(db).unread_ids(conversation_id, from_sender_type),
        )

    async def mark_messages_read(self, message_ids: Sequence[str], read_at: datetime) -> int:
        return await self._run(
            "mark_messages_read",
            lambda db: MessageRepository(db).mark_read_batch(message_ids, read_at),
        )

    async def set_message_delivered(self, message_id: str, at: datetime) -> bool:
        return await self._run(
            "set_message_delivered",
            lambda db: MessageRepository(db).set_delivered_once(message_id, at),
        )

    async def set_message_read(self, message_id: str, at: datetime) -> bool:
        return await self._run(
            "set_message_read",
            lambda db: MessageRepository(db).set_read_once(message_id, at),
        )

    # Participants, plants, notifications

    async def get_read_receipts_enabled(self, identity: Identity) -> bool:
        profile = await self.get_participant_profile(identity)
        return True if profile is None else profile.read_receipts_enabled

    async def get_participant_profile(self, identity: Identity) -> Optional[ParticipantProfile]:
        def work(db: Session) -> Optional[ParticipantProfile]:
            row = ParticipantRepository(db).get(identity.type, identity.id)
            return _profile(identity, row) if row else None

        return await self._run("get_participant_profile", work)

    async def get_plant(self, plant_id: str) -> Optional[PlantRecord]:
        def work(db: Session) -> Optional[PlantRecord]:
            row = PlantRepository(db).get_with_owner(plant_id)
            return _plant_record(row) if row else None

        return await self._run("get_plant", work)

    async def create_notification(self, recipient: Identity, type: str, title: str, message: str) -> str:
        def work(db: Session) -> str:
            row = NotificationRepository(db).create(
                recipient_type=recipient.type.value,
                recipient_id=recipient.id,
                type=type,
                title=title,
                message=message,
            )
            return row.id

        return await self._run("create_notification", work)
