"""
Idempotent persistence of discovered people and relationship edges
"""

from dataclasses import dataclass
from typing import Optional
import logging

from models.base import RelationshipType
from models.person import Person
from schemas.person import PersonFields, PersonDetailFields
from genealogy.relationships import RelationshipInference
from genealogy.validators.name_matcher import NameMatcher
from repositories.contracts import PeopleRepository, RelationshipsRepository

logger = logging.getLogger(__name__)

DUPLICATE_NAME_THRESHOLD = 0.9
DUPLICATE_CANDIDATE_LIMIT = 200


@dataclass
class UpsertOutcome:
    person: Person
    created: bool
    duplicate: bool = False


class PersonLoader:
    """
    Create-or-merge people by national identifier.

    Ensures:
    - One person per national identifier
    - Populated fields are never overwritten, gaps are filled
    - With duplicate merging on, a person without an identifier match is
      merged into an existing person with a near-identical name and the
      same birth date instead of being created again
    """

    def __init__(
        self,
        people: PeopleRepository,
        name_matcher: Optional[NameMatcher] = None,
        merge_duplicates: bool = True,
        duplicate_threshold: float = DUPLICATE_NAME_THRESHOLD
    ):
        self.people = people
        self.name_matcher = name_matcher or NameMatcher()
        self.merge_duplicates = merge_duplicates
        self.duplicate_threshold = duplicate_threshold

    async def upsert(
        self,
        fields: PersonFields,
        detail: Optional[PersonDetailFields] = None,
        created_by: Optional[int] = None
    ) -> UpsertOutcome:
        outcome = await self._upsert_person(fields, created_by)
        if detail is not None:
            await self.people.upsert_detail(outcome.person.id, detail)
        return outcome

    async def _upsert_person(self, fields: PersonFields, created_by: Optional[int]) -> UpsertOutcome:
        if fields.national_id:
            existing = await self.people.find_by_identifier(fields.national_id)
            if existing is not None:
                person = await self.people.merge_and_save(existing, fields)
                return UpsertOutcome(person=person, created=False)

        if self.merge_duplicates:
            duplicate = await self.find_duplicate(fields)
            if duplicate is not None:
                logger.info(
                    f"Merging {fields.full_name} ({fields.national_id}) into existing person "
                    f"{duplicate.id} ({duplicate.national_id})"
                )
                person = await self.people.merge_and_save(duplicate, fields)
                return UpsertOutcome(person=person, created=False, duplicate=True)

        person = await self.people.create(fields, created_by)
        logger.debug(f"Created person {person.id} ({fields.full_name})")
        return UpsertOutcome(person=person, created=True)

    async def find_duplicate(self, fields: PersonFields) -> Optional[Person]:
        """
        Existing person born the same day whose name is the closest match at or
        above the threshold; accents and small spelling differences are scored
        by the name matcher
        """
        if not fields.full_name or not fields.birth_date:
            return None
        best: Optional[Person] = None
        best_score = 0.0
        for candidate in await self.people.find_by_birth_date(fields.birth_date, limit=DUPLICATE_CANDIDATE_LIMIT):
            score = self.name_matcher.similarity(candidate.full_name, fields.full_name)
            if score >= self.duplicate_threshold and score > best_score:
                best, best_score = candidate, score
        return best


class RelationshipLoader:
    """
    Writes bidirectional edges at most once per pair of people.

    A pair that already has an edge of any type in the family tree is left
    alone, and a new pair is refused when the age gap rules the
    relationship out.
    """

    def __init__(self, relationships: RelationshipsRepository, inference: Optional[RelationshipInference] = None):
        self.relationships = relationships
        self.inference = inference or RelationshipInference()

    async def link(
        self,
        person_id: str,
        related_person_id: str,
        relationship_type: RelationshipType,
        family_tree_id: str,
        age_gap: Optional[float] = None,
        notes: Optional[str] = None
    ) -> int:
        """Create the edge pair; returns the number of edge rows written"""
        if person_id == related_person_id:
            return 0

        existing = await self.relationships.find_between(person_id, related_person_id, family_tree_id)
        if existing:
            return 0

        if not self.inference.validate_compatibility([], relationship_type, age_gap=age_gap):
            logger.warning(
                f"Skipping {relationship_type.value} edge {person_id} -> {related_person_id}: "
                f"incompatible age gap ({age_gap} years)"
            )
            return 0

        await self.relationships.create_bidirectional(
            person_id, related_person_id, relationship_type, family_tree_id, notes=notes
        )
        return 2
