"""
Multi-source aggregation of everything the lookup service knows about one person.

Sources, in order:
    a. identifier lookup: the full record and its relative list
    b. parent-name searches: siblings sharing the mother and/or father,
       plus identifier discovery for a mother whose identifier is missing
    c. expansion: when no direct relatives were listed, the relative lists
       of confirmed siblings are followed for kin they share with the person
"""

from collections import Counter
from typing import Dict, List, Optional, Tuple
import logging

from models.base import RelationshipType
from schemas.records import PersonRecord, ParentSearchRecord
from schemas.person import PersonFields
from schemas.discovery import (
    AggregationContext,
    AggregatedPerson,
    ChildrenDiscovery,
    DataQuality,
    DiscoveredIdentifier,
    DiscoveryCandidate,
    IdentifierDiscoveryContext,
)
from genealogy.identifiers import clean_identifier, is_valid_identifier
from genealogy.integrations.lookup_client import PersonLookupClient
from genealogy.merge import merge_person_fields, union_candidates
from genealogy.transformers.record_mapper import RecordMapper, clean_name
from genealogy.validators.name_matcher import NameMatcher
from genealogy.validators.date_validator import DateValidator, parse_date
from genealogy.validators.sibling_validator import SiblingValidator
from genealogy.discovery.identifier_discovery import IdentifierDiscovery
from core.exceptions import GenealogyException, UpstreamError

logger = logging.getLogger(__name__)

MAX_SIBLINGS_PER_SEARCH = 10
MAX_SIBLINGS_TO_EXPAND = 3
DISCOVERY_MIN_CONFIDENCE = 70
INFERRED_NAME_MIN_COUNT = 2
EXPANDED_CONFIDENCE = 60
PARENT_NAME_THRESHOLD = 0.85

PARENT_MIN_AGE = 15
PARENT_MAX_AGE = 60

# Kin a sibling lists that the person shares with them
SHARED_KIN = (
    RelationshipType.PARENT,
    RelationshipType.SIBLING,
    RelationshipType.GRANDPARENT,
    RelationshipType.UNCLE_AUNT,
    RelationshipType.COUSIN,
)

QUALITY_WEIGHTS = {
    "full_name": 2,
    "national_id": 2,
    "mother_name": 1,
    "father_name": 1,
    "relatives": 2,
    "siblings": 1,
    "multiple_sources": 2,
}
HIGH_QUALITY_SCORE = 8
MEDIUM_QUALITY_SCORE = 5


class PersonAggregator:
    """
    Combines identifier lookups, parent-name searches and sibling expansion
    into one AggregatedPerson.

    Upstream failures of a single source are logged and the source skipped;
    a malformed identifier in the context is raised as InvalidInputError.
    """

    def __init__(
        self,
        client: PersonLookupClient,
        mapper: Optional[RecordMapper] = None,
        sibling_validator: Optional[SiblingValidator] = None,
        name_matcher: Optional[NameMatcher] = None,
        date_validator: Optional[DateValidator] = None,
        identifier_discovery: Optional[IdentifierDiscovery] = None,
        max_siblings: int = MAX_SIBLINGS_PER_SEARCH
    ):
        self.client = client
        self.mapper = mapper or RecordMapper()
        self.name_matcher = name_matcher or NameMatcher()
        self.date_validator = date_validator or DateValidator()
        self.sibling_validator = sibling_validator or SiblingValidator(self.name_matcher, self.date_validator)
        self.identifier_discovery = identifier_discovery or IdentifierDiscovery(
            client, self.name_matcher, self.date_validator, self.mapper.inference
        )
        self.max_siblings = max_siblings

    async def aggregate(self, context: AggregationContext) -> AggregatedPerson:
        identifier = clean_identifier(context.identifier) or None
        seed = PersonFields(
            full_name=clean_name(context.full_name),
            national_id=identifier,
            birth_date=context.birth_date,
            mother_name=clean_name(context.mother_name),
            father_name=clean_name(context.father_name),
        )

        person = PersonFields()
        record: Optional[PersonRecord] = None
        relatives: List[DiscoveryCandidate] = []
        siblings: List[DiscoveryCandidate] = []
        sources: List[str] = []

        # a. identifier lookup
        if identifier:
            try:
                record = await self.client.lookup_by_identifier(identifier)
            except UpstreamError as e:
                logger.warning(
                    f"Identifier lookup failed for {identifier}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
            else:
                person = self.mapper.to_person(record)
                relatives = [
                    candidate for candidate in self.mapper.map_relatives(record)
                    if is_valid_identifier(candidate.identifier)
                ]
                sources.append("identifier_lookup")

        person = merge_person_fields(person, seed)

        # b. parent-name searches
        if person.mother_name or person.father_name:
            found = await self._from_parent_searches(person)
            if found is not None:
                parent_fields, parent_relatives, parent_siblings, parent_sources = found
                person = merge_person_fields(person, parent_fields)
                if parent_fields.mother_name:
                    person = person.model_copy(update={"mother_name": parent_fields.mother_name})
                relatives = union_candidates(relatives, parent_relatives)
                siblings = union_candidates(siblings, parent_siblings)
                sources.extend(parent_sources)

        # c. expansion through confirmed siblings
        if not relatives and siblings:
            expanded = await self._expand_through_siblings(person, siblings)
            if expanded:
                relatives = union_candidates(relatives, expanded)
                sources.append("expanded_search")

        aggregated = AggregatedPerson(
            person=person,
            record=record,
            relatives=relatives,
            siblings=siblings,
            sources_used=sources,
        )
        aggregated.data_quality = self.assess_data_quality(aggregated)

        logger.info(
            f"Aggregated {person.full_name or identifier}: {len(relatives)} relatives, "
            f"{len(siblings)} siblings, sources={sources}, quality={aggregated.data_quality.level}"
        )
        return aggregated

    # ------------------------------------------------------------------
    # Parent-name searches
    # ------------------------------------------------------------------

    async def _from_parent_searches(
        self,
        person: PersonFields
    ) -> Optional[Tuple[PersonFields, List[DiscoveryCandidate], List[DiscoveryCandidate], List[str]]]:
        own_identifier = person.national_id
        mother_name = person.mother_name
        father_name = person.father_name
        candidates: Dict[str, DiscoveryCandidate] = {}
        discovered_mother: Optional[DiscoveredIdentifier] = None

        if father_name:
            rows = await self._search(self.client.lookup_by_father_name, father_name)

            own_row = next((row for row in rows if self._is_self(row, own_identifier)), None)
            if own_row is not None and own_row.mother_name:
                mother_name = self._reconcile_mother_name(mother_name, clean_name(own_row.mother_name))

            for row in rows:
                if self._is_self(row, own_identifier) or not is_valid_identifier(row.identifier):
                    continue
                candidate = self.mapper.search_row_to_candidate(row, "father_search")
                candidates[candidate.identifier] = candidate

            if not mother_name:
                mother_name = self._most_common_mother_name(candidates.values())

            if mother_name:
                children_names = [name for name in [person.full_name] if name]
                children_names += [c.name for c in candidates.values() if c.name]
                discovered_mother = await self._discover(IdentifierDiscoveryContext(
                    person_name=mother_name,
                    spouse_name=father_name,
                    children_names=children_names,
                    birth_date=person.birth_date,
                    known_child_identifier=own_identifier,
                ))

        if mother_name:
            rows = await self._search(self.client.lookup_by_mother_name, mother_name)
            for row in rows:
                if self._is_self(row, own_identifier) or not is_valid_identifier(row.identifier):
                    continue
                row_birth = parse_date(row.birth_date)
                if person.birth_date and row_birth:
                    if not self.date_validator.validate_sibling(person.birth_date, row_birth).is_valid:
                        continue
                candidate = self.mapper.search_row_to_candidate(row, "mother_search")
                previous = candidates.get(candidate.identifier)
                if previous is not None:
                    # Found by both searches
                    candidate = union_candidates([previous], [candidate])[0]
                candidates[candidate.identifier] = candidate

        if not candidates and discovered_mother is None:
            if mother_name and mother_name != person.mother_name:
                return PersonFields(mother_name=mother_name), [], [], []
            return None

        known = person.model_copy(update={"mother_name": mother_name, "father_name": father_name})
        siblings = self.sibling_validator.validate_multiple(known, list(candidates.values()))
        siblings = siblings[:self.max_siblings]

        relatives: List[DiscoveryCandidate] = []
        sources = ["parent_search_validated"]
        if discovered_mother is not None and discovered_mother.identifier != own_identifier:
            relatives.append(DiscoveryCandidate(
                identifier=discovered_mother.identifier,
                name=clean_name(discovered_mother.name) or mother_name,
                relation_code="MAE",
                relationship_type=RelationshipType.PARENT,
                confidence=discovered_mother.confidence,
                source="identifier_discovery",
            ))
            sources.append("identifier_discovery")

        logger.info(
            f"Parent searches for {person.full_name}: {len(candidates)} candidates, "
            f"{len(siblings)} validated siblings"
        )
        return PersonFields(mother_name=mother_name, father_name=father_name), relatives, siblings, sources

    async def _search(self, search, name: str) -> List[ParentSearchRecord]:
        try:
            return await search(name)
        except GenealogyException as e:
            logger.warning(
                f"Parent search for {name} failed: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return []

    async def _discover(self, context: IdentifierDiscoveryContext) -> Optional[DiscoveredIdentifier]:
        found = await self.identifier_discovery.discover_parent_identifier(context)
        if found is None or found.confidence < DISCOVERY_MIN_CONFIDENCE:
            return None
        return found

    def _reconcile_mother_name(self, current: Optional[str], discovered: Optional[str]) -> Optional[str]:
        """
        The subject's own row in the father results may carry a better mother
        name: it replaces a missing or dissimilar name, and a similar one when
        it is longer.
        """
        if not discovered or discovered == current:
            return current
        if not current:
            logger.info(f"Mother name taken from father search: {discovered}")
            return discovered
        if not self.name_matcher.are_similar(current, discovered, PARENT_NAME_THRESHOLD):
            logger.info(f"Mother name {current} replaced by {discovered} from father search")
            return discovered
        if len(discovered) > len(current):
            logger.info(f"Mother name {current} completed to {discovered} from father search")
            return discovered
        return current

    @staticmethod
    def _is_self(row: ParentSearchRecord, own_identifier: Optional[str]) -> bool:
        return bool(own_identifier) and clean_identifier(row.identifier) == own_identifier

    @staticmethod
    def _most_common_mother_name(candidates) -> Optional[str]:
        counts = Counter(c.mother_name for c in candidates if c.mother_name)
        if not counts:
            return None
        name, count = counts.most_common(1)[0]
        if count < INFERRED_NAME_MIN_COUNT:
            return None
        logger.info(f"Inferred mother name {name} from {count} candidates")
        return name

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    async def _expand_through_siblings(
        self,
        person: PersonFields,
        siblings: List[DiscoveryCandidate]
    ) -> List[DiscoveryCandidate]:
        expanded: List[DiscoveryCandidate] = []
        for sibling in [s for s in siblings if s.identifier][:MAX_SIBLINGS_TO_EXPAND]:
            try:
                record = await self.client.lookup_by_identifier(sibling.identifier)
            except GenealogyException as e:
                logger.warning(
                    f"Could not expand through sibling {sibling.identifier}: {e.message}",
                    extra={"error_context": e.to_dict()}
                )
                continue

            for candidate in self.mapper.map_relatives(record):
                if not is_valid_identifier(candidate.identifier):
                    continue
                if candidate.identifier == person.national_id:
                    continue
                if not candidate.recognized or candidate.relationship_type not in SHARED_KIN:
                    continue
                expanded.append(candidate.model_copy(update={
                    "confidence": EXPANDED_CONFIDENCE,
                    "source": "expanded_search",
                }))
        return union_candidates(expanded)

    # ------------------------------------------------------------------
    # Supplementary discovery
    # ------------------------------------------------------------------

    async def discover_missing_parent_identifiers(self, aggregated: AggregatedPerson) -> Dict[str, DiscoveredIdentifier]:
        """Discover mother and father identifiers not already among the relatives"""
        mother_identifier = self._parent_identifier(aggregated, aggregated.person.mother_name)
        father_identifier = self._parent_identifier(aggregated, aggregated.person.father_name)
        children = [aggregated.person.full_name] if aggregated.person.full_name else []
        children += [s.name for s in aggregated.siblings if s.name]
        return await self.identifier_discovery.discover_missing_in_family(
            aggregated.person,
            children_names=children,
            mother_identifier=mother_identifier,
            father_identifier=father_identifier,
        )

    def _parent_identifier(self, aggregated: AggregatedPerson, name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        for relative in aggregated.relatives:
            if relative.relationship_type != RelationshipType.PARENT or not relative.identifier:
                continue
            if self.name_matcher.are_similar(relative.name, name, PARENT_NAME_THRESHOLD):
                return relative.identifier
        return None

    async def discover_children_of(self, name: str, approximate_birth_year: Optional[int] = None) -> ChildrenDiscovery:
        """
        People who list `name` as their mother or father.

        With an approximate birth year, children born less than 15 or more
        than 60 years after it are dropped.
        """
        result = ChildrenDiscovery()
        found: List[DiscoveryCandidate] = []

        for search, source, own_field, other_field, variations, spouses in (
            (self.client.lookup_by_mother_name, "mother_search", "mother_name", "father_name",
             result.mother_name_variations, result.spouse_names),
            (self.client.lookup_by_father_name, "father_search", "father_name", "mother_name",
             result.father_name_variations, result.spouse_names),
        ):
            for row in await self._search(search, name):
                own_name = clean_name(getattr(row, own_field))
                if own_name and own_name not in variations:
                    variations.append(own_name)
                spouse = clean_name(getattr(row, other_field))
                if spouse and spouse not in spouses:
                    spouses.append(spouse)

                birth = parse_date(row.birth_date)
                if approximate_birth_year and birth:
                    gap = birth.year - approximate_birth_year
                    if gap < PARENT_MIN_AGE or gap > PARENT_MAX_AGE:
                        continue

                candidate = self.mapper.search_row_to_candidate(row, source)
                found.append(candidate.model_copy(update={
                    "relation_code": "FILHO",
                    "relationship_type": RelationshipType.CHILD,
                }))

        result.possible_children = union_candidates(found)
        logger.info(f"Found {len(result.possible_children)} possible children of {name}")
        return result

    # ------------------------------------------------------------------
    # Quality
    # ------------------------------------------------------------------

    @staticmethod
    def assess_data_quality(aggregated: AggregatedPerson) -> DataQuality:
        person = aggregated.person
        present = {
            "full_name": bool(person.full_name),
            "national_id": bool(person.national_id),
            "mother_name": bool(person.mother_name),
            "father_name": bool(person.father_name),
            "relatives": bool(aggregated.relatives),
            "siblings": bool(aggregated.siblings),
            "multiple_sources": len(aggregated.sources_used) > 1,
        }
        score = sum(QUALITY_WEIGHTS[key] for key, ok in present.items() if ok)
        if score >= HIGH_QUALITY_SCORE:
            level = "high"
        elif score >= MEDIUM_QUALITY_SCORE:
            level = "medium"
        else:
            level = "low"
        return DataQuality(level=level, score=score)
