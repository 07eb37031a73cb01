# backend/plantchat/repositories/participant_repository.py
"""Read access to consumer and owner profiles."""

import logging
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from ..core.enums import IdentityType
from ..core.exceptions import RepositoryException
from ..models.participant import Consumer, Owner
from ..models.plant import Plant
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class ParticipantRepository:
    """Looks up either side of a conversation by identity type."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, participant_type: IdentityType, participant_id: str) -> Optional[Union[Consumer, Owner]]:
        if participant_type is IdentityType.CONSUMER:
            model = Consumer
        elif participant_type is IdentityType.OWNER:
            model = Owner
        else:
            return None
        try:
            return self.db.query(model).filter(model.id == participant_id).first()
        except SQLAlchemyError as e:
            logger.error(f"Error loading {participant_type.value} {participant_id}: {str(e)}")
            raise RepositoryException(f"Failed to load participant: {str(e)}")


class PlantRepository(BaseRepository[Plant]):
    def __init__(self, db: Session):
        super().__init__(db, Plant)

    def get_with_owner(self, plant_id: str) -> Optional[Plant]:
        try:
            return (
                self.db.query(Plant)
                .options(joinedload(Plant.owner))
                .filter(Plant.id == plant_id)
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error loading plant {plant_id}: {str(e)}")
            raise RepositoryException(f"Failed to load plant: {str(e)}")
