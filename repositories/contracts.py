"""
Persistence contract consumed by the discovery pipeline.

Two implementations exist: SQLAlchemy repositories for PostgreSQL and
in-memory repositories used by tests and dry runs.
"""

from datetime import date
from typing import Any, Dict, List, Optional, Protocol, Tuple

from models.base import ImportStatus, ImportType, RelationshipType
from models.data_import import DataImport
from models.person import Person, PersonDetail
from models.relationship import Relationship
from schemas.person import PersonFields, PersonDetailFields


class PeopleRepository(Protocol):
    async def find_by_id(self, person_id: str) -> Optional[Person]: ...

    async def find_by_identifier(self, national_id: str) -> Optional[Person]: ...

    async def search(self, query: str, limit: int = 50) -> List[Person]: ...

    async def find_by_birth_date(self, birth_date: date, limit: int = 200) -> List[Person]: ...

    async def create(self, fields: PersonFields, created_by: Optional[int] = None) -> Person: ...

    async def merge_and_save(self, person: Person, fields: PersonFields) -> Person: ...

    async def find_or_create(self, fields: PersonFields, created_by: Optional[int] = None) -> Tuple[Person, bool]: ...

    async def get_detail(self, person_id: str) -> Optional[PersonDetail]: ...

    async def upsert_detail(self, person_id: str, fields: PersonDetailFields) -> PersonDetail: ...


class RelationshipsRepository(Protocol):
    async def create_bidirectional(
        self,
        person_id: str,
        related_person_id: str,
        relationship_type: RelationshipType,
        family_tree_id: str,
        notes: Optional[str] = None
    ) -> Tuple[Relationship, Relationship]: ...

    async def find_between(self, person_id: str, other_id: str, family_tree_id: str) -> List[Relationship]: ...

    async def types_between(self, person_id: str, other_id: str, family_tree_id: str) -> List[RelationshipType]: ...

    async def list_for_person(self, person_id: str, family_tree_id: str) -> List[Relationship]: ...


class ImportsRepository(Protocol):
    async def create_run(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        user_id: Optional[int] = None
    ) -> DataImport: ...

    async def find(self, import_id: str) -> Optional[DataImport]: ...

    async def mark_processing(self, import_id: str) -> None: ...

    async def record_api_exchange(self, import_id: str, request: Dict[str, Any], response: Dict[str, Any]) -> None: ...

    async def update_progress(
        self,
        import_id: str,
        counters: Dict[str, int],
        errors: Optional[List[Dict[str, Any]]] = None
    ) -> None: ...

    async def mark_completed(self, import_id: str, status: ImportStatus, summary: Dict[str, Any]) -> None: ...

    async def mark_failed(self, import_id: str, message: str) -> None: ...

    async def find_recent_similar(
        self,
        import_type: ImportType,
        search_value: str,
        family_tree_id: str,
        within_hours: int = 24
    ) -> Optional[DataImport]: ...
