"""
Relationship edge persistence with SQLAlchemy async
"""

from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_, and_
from sqlalchemy.exc import SQLAlchemyError
import logging

from models.base import RelationshipType, RelationshipStatus
from models.relationship import Relationship
from genealogy.relationships import INVERSE_TYPES
from core.exceptions import InvalidInputError, PersistenceError

logger = logging.getLogger(__name__)


class RelationshipsRepository:
    """
    Stores relationship edges in pairs.

    Every call to `create_bidirectional` writes the forward edge and its
    inverse in one commit, so the graph never holds a one-sided edge.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create_bidirectional(
        self,
        person_id: str,
        related_person_id: str,
        relationship_type: RelationshipType,
        family_tree_id: str,
        notes: Optional[str] = None
    ) -> Tuple[Relationship, Relationship]:
        if person_id == related_person_id:
            raise InvalidInputError(
                "A person cannot be related to themselves",
                context={"person_id": person_id, "relationship_type": relationship_type}
            )

        relationship_type = RelationshipType(relationship_type)
        forward = Relationship(
            person_id=person_id,
            related_person_id=related_person_id,
            relationship_type=relationship_type,
            family_tree_id=family_tree_id,
            status=RelationshipStatus.ACTIVE,
            notes=notes,
        )
        inverse = Relationship(
            person_id=related_person_id,
            related_person_id=person_id,
            relationship_type=INVERSE_TYPES[relationship_type],
            family_tree_id=family_tree_id,
            status=RelationshipStatus.ACTIVE,
            notes=notes,
        )
        self.db.add_all([forward, inverse])

        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                "Failed to create relationship pair",
                context={
                    "operation": "create_bidirectional",
                    "table_name": "relationships",
                    "person_id": person_id,
                    "related_person_id": related_person_id,
                },
                original_exception=e
            )

        logger.debug(
            f"Created {relationship_type.value} edge {person_id} -> {related_person_id} in tree {family_tree_id}"
        )
        return forward, inverse

    async def find_between(self, person_id: str, other_id: str, family_tree_id: str) -> List[Relationship]:
        """Edges in either direction between two people within one tree"""
        result = await self.db.execute(
            select(Relationship).where(
                and_(
                    Relationship.family_tree_id == family_tree_id,
                    or_(
                        and_(Relationship.person_id == person_id, Relationship.related_person_id == other_id),
                        and_(Relationship.person_id == other_id, Relationship.related_person_id == person_id),
                    )
                )
            )
        )
        return list(result.scalars().all())

    async def types_between(self, person_id: str, other_id: str, family_tree_id: str) -> List[RelationshipType]:
        """What `other_id` already is to `person_id`"""
        edges = await self.find_between(person_id, other_id, family_tree_id)
        return [edge.relationship_type for edge in edges if edge.person_id == person_id]

    async def list_for_person(self, person_id: str, family_tree_id: str) -> List[Relationship]:
        result = await self.db.execute(
            select(Relationship).where(
                and_(
                    Relationship.family_tree_id == family_tree_id,
                    Relationship.person_id == person_id,
                )
            )
        )
        return list(result.scalars().all())
