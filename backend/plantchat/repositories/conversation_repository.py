# backend/plantchat/repositories/conversation_repository.py
"""
Conversation Repository for consumer/owner messaging.

Handles data access for conversations, one per (consumer, plant) pair.
"""

from datetime import datetime
import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.enums import IdentityType
from ..core.exceptions import ConflictException, NotFoundException, RepositoryException
from ..models.conversation import Conversation
from ..models.plant import Plant
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

PAIR_CONSTRAINT = "uq_conversation_consumer_plant"


def _is_pair_violation(exc: IntegrityError) -> bool:
    """True when the insert hit the (consumer, plant) uniqueness rule."""
    message = str(exc.orig)
    if PAIR_CONSTRAINT in message:
        return True
    # SQLite names the columns instead of the constraint
    return "UNIQUE" in message and "consumer_id" in message and "plant_id" in message


class ConversationRepository(BaseRepository[Conversation]):
    """Repository for Conversation data access."""

    def __init__(self, db: Session):
        super().__init__(db, Conversation)

    def find_by_pair(self, consumer_id: str, plant_id: str) -> Optional[Conversation]:
        """Find the conversation a consumer has about a plant."""
        return self.find_one_by(consumer_id=consumer_id, plant_id=plant_id)

    def create_for_pair(self, consumer_id: str, owner_id: str, plant_id: str) -> Conversation:
        """
        Create the conversation for a (consumer, plant) pair.

        Raises:
            ConflictException: another request created the pair first
            NotFoundException: the consumer, owner or plant row is gone
        """
        conversation = Conversation(consumer_id=consumer_id, owner_id=owner_id, plant_id=plant_id)
        try:
            self.db.add(conversation)
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            if not _is_pair_violation(exc):
                logger.warning(
                    "[STORE] Conversation insert for consumer=%s plant=%s rejected: %s",
                    consumer_id,
                    plant_id,
                    exc.orig,
                )
                raise NotFoundException(
                    "Conversation participant or plant not found",
                    details={"consumer_id": consumer_id, "owner_id": owner_id, "plant_id": plant_id},
                ) from exc
            logger.info(
                "[STORE] Conversation for consumer=%s plant=%s already exists",
                consumer_id,
                plant_id,
            )
            raise ConflictException(
                "Conversation already exists",
                details={"consumer_id": consumer_id, "plant_id": plant_id},
            ) from exc
        return conversation

    def touch_last_message_at(self, conversation_id: str, ts: datetime) -> bool:
        try:
            updated = (
                self.db.query(Conversation)
                .filter(Conversation.id == conversation_id)
                .update({Conversation.last_message_at: ts}, synchronize_session=False)
            )
            return bool(updated)
        except SQLAlchemyError as e:
            self.logger.error(f"Error updating last_message_at for {conversation_id}: {str(e)}")
            raise RepositoryException(f"Failed to update conversation: {str(e)}")

    def list_for_participant(self, participant_type: IdentityType, participant_id: str) -> List[Conversation]:
        """
        Conversations of a consumer or owner, most recently active first.

        Plant, consumer and owner are eager loaded for listing views.
        """
        column = (
            Conversation.consumer_id
            if participant_type is IdentityType.CONSUMER
            else Conversation.owner_id
        )
        try:
            return (
                self.db.query(Conversation)
                .options(
                    joinedload(Conversation.plant).joinedload(Plant.owner),
                    joinedload(Conversation.consumer),
                    joinedload(Conversation.owner),
                )
                .filter(column == participant_id)
                .order_by(
                    Conversation.last_message_at.desc().nulls_last(),
                    Conversation.created_at.desc(),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing conversations for {participant_type.value}:{participant_id}: {str(e)}")
            raise RepositoryException(f"Failed to list conversations: {str(e)}")
