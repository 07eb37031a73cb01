# backend/plantchat/repositories/message_repository.py
"""
Message Repository for the chat system.

Implements data access for messages. Timestamp writes are conditional on
the column still being NULL so that delivered_at and read_at are set once.
"""

from datetime import datetime
import logging
from typing import List, Optional, Sequence

from sqlalchemy import and_, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.enums import IdentityType
from ..core.exceptions import RepositoryException
from ..models.conversation import Conversation
from ..models.message import Message
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class MessageRepository(BaseRepository[Message]):
    """Repository for Message data access."""

    def __init__(self, db: Session):
        super().__init__(db, Message)

    def get_page(
        self,
        conversation_id: str,
        before: Optional[Message] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> List[Message]:
        """
        Messages of a conversation, newest first.

        Args:
            conversation_id: Conversation to read
            before: Cursor message; only strictly older messages are returned
            offset: Rows to skip when no cursor is given
            limit: Maximum rows to return
        """
        try:
            query = self.db.query(Message).filter(Message.conversation_id == conversation_id)
            if before is not None:
                # (sent_at, id) ordering keeps equal timestamps on one side of the cursor
                query = query.filter(
                    or_(
                        Message.sent_at < before.sent_at,
                        and_(Message.sent_at == before.sent_at, Message.id < before.id),
                    )
                )
            query = query.order_by(Message.sent_at.desc(), Message.id.desc())
            if before is None and offset:
                query = query.offset(offset)
            return query.limit(limit).all()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting messages for conversation {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to get messages: {str(e)}")

    def latest(self, conversation_id: str) -> Optional[Message]:
        page = self.get_page(conversation_id, limit=1)
        return page[0] if page else None

    def _unread_query(self, conversation_id: str, from_sender_type: IdentityType):
        return self.db.query(Message).filter(
            Message.conversation_id == conversation_id,
            Message.sender_type == from_sender_type.value,
            Message.read_at.is_(None),
        )

    def count_unread(self, conversation_id: str, from_sender_type: IdentityType) -> int:
        try:
            return self._unread_query(conversation_id, from_sender_type).count()
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting unread messages: {str(e)}")
            raise RepositoryException(f"Failed to count unread messages: {str(e)}")

    def unread_ids(self, conversation_id: str, from_sender_type: IdentityType) -> List[str]:
        try:
            rows = (
                self._unread_query(conversation_id, from_sender_type)
                .with_entities(Message.id)
                .order_by(Message.sent_at, Message.id)
                .all()
            )
            return [row[0] for row in rows]
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing unread messages: {str(e)}")
            raise RepositoryException(f"Failed to list unread messages: {str(e)}")

    def count_unread_for_participant(self, participant_type: IdentityType, participant_id: str) -> int:
        """Unread messages from counterparts across all of a participant's conversations."""
        column = (
            Conversation.consumer_id
            if participant_type is IdentityType.CONSUMER
            else Conversation.owner_id
        )
        try:
            total = (
                self.db.query(func.count(Message.id))
                .join(Conversation, Conversation.id == Message.conversation_id)
                .filter(
                    column == participant_id,
                    Message.sender_type == participant_type.counterpart().value,
                    Message.read_at.is_(None),
                )
                .scalar()
            )
            return int(total or 0)
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting unread total: {str(e)}")
            raise RepositoryException(f"Failed to count unread messages: {str(e)}")

    def mark_read_batch(self, message_ids: Sequence[str], read_at: datetime) -> int:
        """Set read_at on every listed message that is still unread; returns rows changed."""
        if not message_ids:
            return 0
        try:
            return (
                self.db.query(Message)
                .filter(Message.id.in_(list(message_ids)), Message.read_at.is_(None))
                .update({Message.read_at: read_at}, synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error marking messages read: {str(e)}")
            raise RepositoryException(f"Failed to mark messages read: {str(e)}")

    def set_delivered_once(self, message_id: str, at: datetime) -> bool:
        return self._set_once(message_id, Message.delivered_at, at)

    def set_read_once(self, message_id: str, at: datetime) -> bool:
        return self._set_once(message_id, Message.read_at, at)

    def _set_once(self, message_id: str, column, at: datetime) -> bool:
        try:
            updated = (
                self.db.query(Message)
                .filter(Message.id == message_id, column.is_(None))
                .update({column: at}, synchronize_session=False)
            )
            return updated == 1
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating {column.key} for message {message_id}: {str(e)}")
            raise RepositoryException(f"Failed to update message: {str(e)}")
