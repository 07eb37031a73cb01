# backend/plantchat/services/access_control.py
"""
Conversation access checks.

Only the conversation's consumer or owner may act on it. Admins observe
through fan-out and never pass this check. A missing conversation is
treated as "no access".
"""

import logging

from ..core.enums import IdentityType
from ..core.exceptions import ForbiddenException, NotFoundException
from ..domain import ConversationRecord
from .chat_store import ChatStore

logger = logging.getLogger(__name__)


class AccessControl:
    def __init__(self, store: ChatStore):
        self.store = store

    async def can_access(self, conversation_id: str, actor_id: str, actor_type: IdentityType) -> bool:
        conversation = await self.store.find_conversation_by_id(conversation_id)
        if conversation is None:
            return False
        return conversation.has_participant(actor_id, actor_type)

    async def ensure_access(
        self, conversation_id: str, actor_id: str, actor_type: IdentityType
    ) -> ConversationRecord:
        """
        Load a conversation the actor participates in.

        Raises:
            NotFoundException: the conversation does not exist
            ForbiddenException: the actor is not one of its participants
        """
        conversation = await self.store.find_conversation_by_id(conversation_id)
        if conversation is None:
            raise NotFoundException(
                "Conversation not found", details={"conversation_id": conversation_id}
            )
        if not conversation.has_participant(actor_id, actor_type):
            logger.info(
                f"[CHAT] Access denied: {actor_type.value}:{actor_id} on conversation {conversation_id}"
            )
            raise ForbiddenException("Access denied to this conversation")
        return conversation
