"""
In-memory repositories implementing the persistence contract.

They hold ORM instances in plain dictionaries and never touch a database,
which makes them suitable for tests and for dry runs of an import.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from models.base import ImportStatus, ImportType, RelationshipStatus, RelationshipType
from models.data_import import DataImport
from models.person import Person, PersonDetail
from models.relationship import Relationship
from schemas.person import PersonFields, PersonDetailFields
from genealogy.identifiers import clean_identifier
from genealogy.merge import (
    merge_person_fields,
    merge_detail_fields,
    person_fields_from_entity,
    detail_fields_from_entity,
)
from genealogy.relationships import INVERSE_TYPES
from repositories.imports import COUNTER_FIELDS
from core.exceptions import InvalidInputError, PersistenceError


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryPeopleRepository:
    def __init__(self):
        self.people: Dict[str, Person] = {}
        self.details: Dict[str, PersonDetail] = {}

    async def find_by_id(self, person_id: str) -> Optional[Person]:
        return self.people.get(person_id)

    async def find_by_identifier(self, national_id: str) -> Optional[Person]:
        digits = clean_identifier(national_id)
        if not digits:
            return None
        for person in self.people.values():
            if person.national_id == digits:
                return person
        return None

    async def search(self, query: str, limit: int = 50) -> List[Person]:
        needle = query.strip().lower()
        digits = clean_identifier(query)
        matches = []
        for person in self.people.values():
            names = (person.full_name, person.mother_name, person.father_name)
            if any(name and needle in name.lower() for name in names) or (digits and person.national_id == digits):
                matches.append(person)
        matches.sort(key=lambda p: p.full_name or "")
        return matches[:limit]

    async def find_by_birth_date(self, birth_date: date, limit: int = 200) -> List[Person]:
        matches = [person for person in self.people.values() if person.birth_date == birth_date]
        matches.sort(key=lambda p: p.created_at)
        return matches[:limit]

    async def create(self, fields: PersonFields, created_by: Optional[int] = None) -> Person:
        if fields.national_id and await self.find_by_identifier(fields.national_id):
            raise PersistenceError(
                "Duplicate national identifier",
                context={"operation": "create person", "table_name": "people", "national_id": fields.national_id}
            )
        now = datetime.utcnow()
        person = Person(
            id=_new_id(),
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **fields.model_dump()
        )
        if not person.full_name:
            person.full_name = "Unknown"
        self.people[person.id] = person
        return person

    async def merge_and_save(self, person: Person, fields: PersonFields) -> Person:
        merged = merge_person_fields(person_fields_from_entity(person), fields)
        for field, value in merged.model_dump().items():
            setattr(person, field, value)
        person.updated_at = datetime.utcnow()
        return person

    async def find_or_create(self, fields: PersonFields, created_by: Optional[int] = None) -> Tuple[Person, bool]:
        if fields.national_id:
            existing = await self.find_by_identifier(fields.national_id)
            if existing is not None:
                return existing, False
        return await self.create(fields, created_by), True

    async def get_detail(self, person_id: str) -> Optional[PersonDetail]:
        return self.details.get(person_id)

    async def upsert_detail(self, person_id: str, fields: PersonDetailFields) -> PersonDetail:
        detail = self.details.get(person_id)
        if detail is None:
            detail = PersonDetail(id=_new_id(), person_id=person_id, **fields.model_dump())
            self.details[person_id] = detail
            return detail
        merged = merge_detail_fields(detail_fields_from_entity(detail), fields)
        for field, value in merged.model_dump().items():
            setattr(detail, field, value)
        return detail


class InMemoryRelationshipsRepository:
    def __init__(self):
        self.edges: List[Relationship] = []

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
        pair = []
        for source, target, edge_type in (
            (person_id, related_person_id, relationship_type),
            (related_person_id, person_id, INVERSE_TYPES[relationship_type]),
        ):
            if any(
                e.person_id == source and e.related_person_id == target
                and e.relationship_type == edge_type and e.family_tree_id == family_tree_id
                for e in self.edges
            ):
                raise PersistenceError(
                    "Relationship edge already exists",
                    context={"operation": "create_bidirectional", "table_name": "relationships"}
                )
            pair.append(Relationship(
                id=_new_id(),
                person_id=source,
                related_person_id=target,
                relationship_type=edge_type,
                family_tree_id=family_tree_id,
                status=RelationshipStatus.ACTIVE,
                notes=notes,
                created_at=datetime.utcnow(),
            ))
        self.edges.extend(pair)
        return pair[0], pair[1]

    async def find_between(self, person_id: str, other_id: str, family_tree_id: str) -> List[Relationship]:
        return [
            e for e in self.edges
            if e.family_tree_id == family_tree_id
            and {e.person_id, e.related_person_id} == {person_id, other_id}
        ]

    async def types_between(self, person_id: str, other_id: str, family_tree_id: str) -> List[RelationshipType]:
        edges = await self.find_between(person_id, other_id, family_tree_id)
        return [e.relationship_type for e in edges if e.person_id == person_id]

    async def list_for_person(self, person_id: str, family_tree_id: str) -> List[Relationship]:
        return [e for e in self.edges if e.family_tree_id == family_tree_id and e.person_id == person_id]


class InMemoryImportsRepository:
    def __init__(self):
        self.runs: Dict[str, DataImport] = {}

    def _require(self, import_id: str) -> DataImport:
        run = self.runs.get(import_id)
        if run is None:
            raise PersistenceError(
                f"Import run {import_id} not found",
                context={"operation": "load", "table_name": "data_imports", "import_id": import_id}
            )
        return run

    async def create_run(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        user_id: Optional[int] = None
    ) -> DataImport:
        run = DataImport(
            id=_new_id(),
            import_type=import_type,
            search_value=search_value,
            family_tree_id=family_tree_id,
            user_id=user_id,
            status=ImportStatus.PENDING,
            persons_created=0,
            persons_updated=0,
            relationships_created=0,
            duplicates_found=0,
            errors=[],
            created_at=datetime.utcnow(),
        )
        self.runs[run.id] = run
        return run

    async def find(self, import_id: str) -> Optional[DataImport]:
        return self.runs.get(import_id)

    async def mark_processing(self, import_id: str) -> None:
        run = self._require(import_id)
        run.status = ImportStatus.PROCESSING
        run.started_at = datetime.utcnow()

    async def record_api_exchange(self, import_id: str, request: Dict[str, Any], response: Dict[str, Any]) -> None:
        run = self._require(import_id)
        run.api_request = request
        run.api_response = response

    async def update_progress(
        self,
        import_id: str,
        counters: Dict[str, int],
        errors: Optional[List[Dict[str, Any]]] = None
    ) -> None:
        run = self._require(import_id)
        for field in COUNTER_FIELDS:
            if field in counters:
                setattr(run, field, counters[field])
        if errors is not None:
            run.errors = list(errors)

    async def mark_completed(self, import_id: str, status: ImportStatus, summary: Dict[str, Any]) -> None:
        run = self._require(import_id)
        run.status = status
        run.import_summary = summary
        run.completed_at = datetime.utcnow()

    async def mark_failed(self, import_id: str, message: str) -> None:
        run = self._require(import_id)
        run.status = ImportStatus.FAILED
        run.error_message = message
        run.completed_at = datetime.utcnow()

    async def find_recent_similar(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        within_hours: int = 24
    ) -> Optional[DataImport]:
        since = datetime.utcnow() - timedelta(hours=within_hours)
        matches = [
            run for run in self.runs.values()
            if run.import_type == import_type
            and run.search_value == search_value
            and run.family_tree_id == family_tree_id
            and run.status == ImportStatus.SUCCESS
            and run.created_at >= since
        ]
        matches.sort(key=lambda run: run.created_at, reverse=True)
        return matches[0] if matches else None
