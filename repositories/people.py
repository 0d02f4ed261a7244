"""
People and person-detail persistence with SQLAlchemy async
"""

from datetime import date
from typing import List, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from sqlalchemy.exc import SQLAlchemyError
import logging

from models.person import Person, PersonDetail
from schemas.person import PersonFields, PersonDetailFields
from genealogy.identifiers import clean_identifier
from genealogy.merge import (
    merge_person_fields,
    merge_detail_fields,
    person_fields_from_entity,
    detail_fields_from_entity,
)
from core.exceptions import PersistenceError

logger = logging.getLogger(__name__)

SEARCH_LIMIT = 50
BIRTH_DATE_LIMIT = 200


class PeopleRepository:
    """
    Person storage backed by PostgreSQL.

    Ensures:
    - Lookups by national identifier hit the unique index
    - Merges never blank out populated columns
    - Every write is committed before returning
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def _commit(self, operation: str, table_name: str = "people"):
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError(
                f"Failed to {operation}",
                context={"operation": operation, "table_name": table_name},
                original_exception=e
            )

    async def find_by_id(self, person_id: str) -> Optional[Person]:
        return await self.db.get(Person, person_id)

    async def find_by_identifier(self, national_id: str) -> Optional[Person]:
        digits = clean_identifier(national_id)
        if not digits:
            return None
        result = await self.db.execute(select(Person).where(Person.national_id == digits))
        return result.scalar_one_or_none()

    async def search(self, query: str, limit: int = SEARCH_LIMIT) -> List[Person]:
        """Case-insensitive match on person or parent names, exact match on identifier"""
        pattern = f"%{query.strip()}%"
        conditions = [
            Person.full_name.ilike(pattern),
            Person.mother_name.ilike(pattern),
            Person.father_name.ilike(pattern),
        ]
        digits = clean_identifier(query)
        if digits:
            conditions.append(Person.national_id == digits)

        result = await self.db.execute(
            select(Person).where(or_(*conditions)).order_by(Person.full_name).limit(limit)
        )
        return list(result.scalars().all())

    async def find_by_birth_date(self, birth_date: date, limit: int = BIRTH_DATE_LIMIT) -> List[Person]:
        """People born on the given day, oldest record first"""
        result = await self.db.execute(
            select(Person)
            .where(Person.birth_date == birth_date)
            .order_by(Person.created_at)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create(self, fields: PersonFields, created_by: Optional[int] = None) -> Person:
        person = Person(**fields.model_dump(), created_by=created_by)
        if not person.full_name:
            person.full_name = "Unknown"
        self.db.add(person)
        await self._commit("create person")
        await self.db.refresh(person)
        logger.debug(f"Created person {person.id} ({person.full_name})")
        return person

    async def merge_and_save(self, person: Person, fields: PersonFields) -> Person:
        merged = merge_person_fields(person_fields_from_entity(person), fields)
        for field, value in merged.model_dump().items():
            setattr(person, field, value)
        await self._commit("merge person")
        await self.db.refresh(person)
        return person

    async def find_or_create(self, fields: PersonFields, created_by: Optional[int] = None) -> Tuple[Person, bool]:
        if fields.national_id:
            existing = await self.find_by_identifier(fields.national_id)
            if existing is not None:
                return existing, False
        return await self.create(fields, created_by), True

    async def get_detail(self, person_id: str) -> Optional[PersonDetail]:
        result = await self.db.execute(select(PersonDetail).where(PersonDetail.person_id == person_id))
        return result.scalar_one_or_none()

    async def upsert_detail(self, person_id: str, fields: PersonDetailFields) -> PersonDetail:
        detail = await self.get_detail(person_id)
        if detail is None:
            detail = PersonDetail(person_id=person_id, **fields.model_dump())
            self.db.add(detail)
        else:
            merged = merge_detail_fields(detail_fields_from_entity(detail), fields)
            for field, value in merged.model_dump().items():
                setattr(detail, field, value)
        await self._commit("upsert person detail", "person_details")
        return detail
