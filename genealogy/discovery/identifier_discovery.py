"""
Reverse lookup of a parent's national identifier.

The lookup service cannot search people by their own name, only by the name
of their mother or father. A parent whose identifier is unknown is therefore
found through the people who list them: their children (whose relative
lists carry the parent's identifier), their grandchildren (whose lists carry
grandparents) and the children they had with a known spouse.
"""

from typing import Dict, List, Optional, Tuple
import logging

from models.base import RelationshipType
from schemas.records import ParentRole, PersonRecord
from schemas.person import PersonFields
from schemas.discovery import IdentifierDiscoveryContext, DiscoveredIdentifier
from genealogy.identifiers import clean_identifier, is_valid_identifier
from genealogy.integrations.lookup_client import PersonLookupClient
from genealogy.relationships import RelationshipInference
from genealogy.validators.name_matcher import NameMatcher
from genealogy.validators.date_validator import DateValidator
from core.exceptions import GenealogyException

logger = logging.getLogger(__name__)

TARGET_NAME_THRESHOLD = 0.8
KNOWN_CHILD_THRESHOLD = 0.85
VARIATION_THRESHOLD = 0.7

KNOWN_CHILD_POINTS = 20
UNVALIDATED_POINTS = 10

SPOUSE_BASE_CONFIDENCE = 60
SPOUSE_MAX_CONFIDENCE = 90
CHILDREN_BASE_CONFIDENCE = 50
CHILDREN_MAX_CONFIDENCE = 85
NAME_SEARCH_CONFIDENCE = 60
NAME_SEARCH_VALIDATED_CONFIDENCE = 85

# Upstream lookups spent per name search
MAX_ROWS_PER_SEARCH = 5


class IdentifierDiscovery:
    """
    Finds a parent's identifier from spouse and children information.

    Strategies, in order:
    1. spouse: children of the spouse name the target as their other parent
    2. children: grandchildren list the target as a grandparent
    3. name variations: retry the name search with spellings seen so far

    Results (including misses) are memoized per (person name, spouse name,
    birth date) for the lifetime of the instance, so one instance should be
    used per discovery session.
    """

    def __init__(
        self,
        client: PersonLookupClient,
        name_matcher: Optional[NameMatcher] = None,
        date_validator: Optional[DateValidator] = None,
        inference: Optional[RelationshipInference] = None
    ):
        self.client = client
        self.name_matcher = name_matcher or NameMatcher()
        self.date_validator = date_validator or DateValidator()
        self.inference = inference or RelationshipInference()
        self._memo: Dict[Tuple[str, str, str], Optional[DiscoveredIdentifier]] = {}

    @staticmethod
    def _memo_key(context: IdentifierDiscoveryContext) -> Tuple[str, str, str]:
        return (
            context.person_name,
            context.spouse_name or "",
            context.birth_date.isoformat() if context.birth_date else "",
        )

    async def discover_parent_identifier(self, context: IdentifierDiscoveryContext) -> Optional[DiscoveredIdentifier]:
        key = self._memo_key(context)
        if key in self._memo:
            return self._memo[key]

        logger.info(f"Starting identifier discovery for: {context.person_name}")
        best: Optional[DiscoveredIdentifier] = None

        if context.spouse_name:
            best = await self._guarded(self._through_spouse(context), "spouse", context)

        if context.children_names:
            candidate = await self._guarded(self._through_children(context), "children", context)
            if candidate and (best is None or candidate.confidence > best.confidence):
                best = candidate

        if best and len(best.name_variations) > 1:
            candidate = await self._guarded(
                self._by_name_variations(best.name_variations, context), "name variations", context
            )
            if candidate and candidate.confidence > best.confidence:
                best = candidate

        if best:
            logger.info(
                f"Identifier discovered for {context.person_name}: {best.identifier} "
                f"(confidence: {best.confidence}%, method: {best.method})"
            )
        self._memo[key] = best
        return best

    async def discover_missing_in_family(
        self,
        person: PersonFields,
        children_names: Optional[List[str]] = None,
        mother_identifier: Optional[str] = None,
        father_identifier: Optional[str] = None
    ) -> Dict[str, DiscoveredIdentifier]:
        """Discover the mother and/or father identifier of `person` when missing"""
        children = children_names or ([person.full_name] if person.full_name else [])
        discoveries: Dict[str, DiscoveredIdentifier] = {}

        for role, name, spouse, known in (
            ("mother", person.mother_name, person.father_name, mother_identifier),
            ("father", person.father_name, person.mother_name, father_identifier),
        ):
            if not name or known:
                continue
            found = await self.discover_parent_identifier(IdentifierDiscoveryContext(
                person_name=name,
                spouse_name=spouse,
                children_names=children,
                birth_date=person.birth_date,
                known_child_identifier=person.national_id,
            ))
            if found:
                discoveries[role] = found
        return discoveries

    def clear_cache(self) -> None:
        self._memo.clear()

    async def _guarded(self, strategy, label: str, context: IdentifierDiscoveryContext):
        try:
            return await strategy
        except GenealogyException as e:
            logger.error(
                f"Error discovering {context.person_name} through {label}: {e.message}",
                extra={"error_context": e.to_dict()}
            )
            return None

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    async def _through_spouse(self, context: IdentifierDiscoveryContext) -> Optional[DiscoveredIdentifier]:
        scores: Dict[str, int] = {}
        variations: List[str] = []

        # Children of the spouse name the target as their other parent
        for role, other_parent in ((ParentRole.FATHER, "mother_name"), (ParentRole.MOTHER, "father_name")):
            rows = await self.client.lookup_by_parent_name(role, context.spouse_name)
            for row in rows:
                parent_name = getattr(row, other_parent)
                if not parent_name:
                    continue
                if parent_name not in variations:
                    variations.append(parent_name)
                if not self.name_matcher.are_similar(parent_name, context.person_name, TARGET_NAME_THRESHOLD):
                    continue
                if context.children_names:
                    if self._is_known_child(row.name, context):
                        scores[parent_name] = scores.get(parent_name, 0) + KNOWN_CHILD_POINTS
                else:
                    scores[parent_name] = scores.get(parent_name, 0) + UNVALIDATED_POINTS

        if not scores:
            return None

        best_name, score = sorted(scores.items(), key=lambda item: item[1], reverse=True)[0]
        found = await self._search_person_by_name(best_name, context)
        if found is None:
            return None

        return found.model_copy(update={
            "confidence": min(SPOUSE_MAX_CONFIDENCE, SPOUSE_BASE_CONFIDENCE + score),
            "method": "spouse_search",
            "name_variations": [
                name for name in variations
                if self.name_matcher.are_similar(name, context.person_name, VARIATION_THRESHOLD)
            ],
        })

    async def _through_children(self, context: IdentifierDiscoveryContext) -> Optional[DiscoveredIdentifier]:
        name_counts: Dict[str, int] = {}
        identifier_counts: Dict[str, Tuple[str, int]] = {}

        for child_name in context.children_names:
            for role, parent_field in ((ParentRole.MOTHER, "mother_name"), (ParentRole.FATHER, "father_name")):
                rows = await self.client.lookup_by_parent_name(role, child_name)
                for row in rows[:MAX_ROWS_PER_SEARCH]:
                    if not self.name_matcher.are_similar(getattr(row, parent_field), child_name, KNOWN_CHILD_THRESHOLD):
                        continue
                    if not is_valid_identifier(row.identifier):
                        continue

                    grandchild = await self.client.lookup_by_identifier(row.identifier)
                    for relative in grandchild.relatives:
                        if self.inference.infer(relative.relation_code).forward != RelationshipType.GRANDPARENT:
                            continue
                        if not self.name_matcher.are_similar(relative.name, context.person_name, TARGET_NAME_THRESHOLD):
                            continue
                        name_counts[relative.name] = name_counts.get(relative.name, 0) + 1
                        digits = clean_identifier(relative.identifier)
                        if is_valid_identifier(digits):
                            count = identifier_counts.get(digits, (relative.name, 0))[1]
                            identifier_counts[digits] = (relative.name, count + 1)

        if identifier_counts:
            best_identifier, (best_name, count) = sorted(
                identifier_counts.items(), key=lambda item: item[1][1], reverse=True
            )[0]
            return DiscoveredIdentifier(
                identifier=best_identifier,
                name=best_name,
                confidence=min(CHILDREN_MAX_CONFIDENCE, CHILDREN_BASE_CONFIDENCE + count * 10),
                method="children_search",
                name_variations=list(name_counts),
            )

        if name_counts:
            best_variation = sorted(name_counts.items(), key=lambda item: item[1], reverse=True)[0][0]
            found = await self._search_person_by_name(best_variation, context)
            if found:
                return found.model_copy(update={
                    "method": "children_name_variation",
                    "name_variations": list(name_counts),
                })
        return None

    async def _by_name_variations(
        self,
        variations: List[str],
        context: IdentifierDiscoveryContext
    ) -> Optional[DiscoveredIdentifier]:
        logger.debug(f"Searching by {len(variations)} name variations")
        for variation in variations:
            if not self.name_matcher.are_similar(variation, context.person_name, VARIATION_THRESHOLD):
                continue
            found = await self._search_person_by_name(variation, context)
            if found:
                return found.model_copy(update={"method": "name_variation", "name_variations": variations})
        return None

    # ------------------------------------------------------------------
    # Name search
    # ------------------------------------------------------------------

    async def _search_person_by_name(
        self,
        name: str,
        context: IdentifierDiscoveryContext
    ) -> Optional[DiscoveredIdentifier]:
        """
        Find the identifier of a parent called `name`.

        Lists the people whose mother (then father) is called `name`, and
        reads the parent's identifier from the first plausible child's
        relative list.
        """
        for role in (ParentRole.MOTHER, ParentRole.FATHER):
            rows = await self.client.lookup_by_parent_name(role, name)
            for row in rows[:MAX_ROWS_PER_SEARCH]:
                if not is_valid_identifier(row.identifier):
                    continue
                if context.birth_date and row.birth_date:
                    if not self.date_validator.validate_sibling(context.birth_date, row.birth_date).is_valid:
                        continue

                child = await self.client.lookup_by_identifier(row.identifier)
                parent = self._parent_in_record(child, name)
                if parent is None:
                    continue

                validated = self._is_known_child(row.name, context) or (
                    context.known_child_identifier is not None
                    and clean_identifier(context.known_child_identifier) == clean_identifier(row.identifier)
                )
                return DiscoveredIdentifier(
                    identifier=parent[0],
                    name=parent[1],
                    confidence=NAME_SEARCH_VALIDATED_CONFIDENCE if validated else NAME_SEARCH_CONFIDENCE,
                    method="name_search_validated" if validated else "name_search",
                    name_variations=[name],
                )
        return None

    def _parent_in_record(self, record: PersonRecord, name: str) -> Optional[Tuple[str, str]]:
        for relative in record.relatives:
            if self.inference.infer(relative.relation_code).forward != RelationshipType.PARENT:
                continue
            digits = clean_identifier(relative.identifier)
            if is_valid_identifier(digits) and self.name_matcher.are_similar(relative.name, name, TARGET_NAME_THRESHOLD):
                return digits, relative.name
        return None

    def _is_known_child(self, name: Optional[str], context: IdentifierDiscoveryContext) -> bool:
        return bool(name) and any(
            self.name_matcher.are_similar(known, name, KNOWN_CHILD_THRESHOLD)
            for known in context.children_names
        )
