"""
Relationship inference from free-text relation codes.

The lookup service describes each relative with a Portuguese code such as
"MAE", "IRMÃ" or "SOBRINHA(O)". A code always describes the relative as seen
from the person whose record lists it, so "MAE" on X's record means the
relative is X's mother: forward type `parent`, inverse type `child`.
"""

import re
from itertools import combinations
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from unidecode import unidecode

from models.base import RelationshipType
from schemas.discovery import InferredRelationship

logger = logging.getLogger(__name__)

SPACE_RE = re.compile(r"\s+")

R = RelationshipType

_CODE_GROUPS: List[Tuple[Tuple[str, ...], RelationshipType, RelationshipType]] = [
    (("MAE", "PAI"), R.PARENT, R.CHILD),
    (("FILHO", "FILHA", "FILHA(O)", "FILHO(A)"), R.CHILD, R.PARENT),
    (("IRMAO", "IRMA", "IRMA(O)", "IRMAO(A)"), R.SIBLING, R.SIBLING),
    (("AVO", "AVO(A)", "AVO(O)"), R.GRANDPARENT, R.GRANDCHILD),
    (("NETO", "NETA", "NETO(A)", "NETA(O)"), R.GRANDCHILD, R.GRANDPARENT),
    (("TIO", "TIA", "TIA(O)", "TIO(A)"), R.UNCLE_AUNT, R.NEPHEW_NIECE),
    (("SOBRINHO", "SOBRINHA", "SOBRINHA(O)", "SOBRINHO(A)"), R.NEPHEW_NIECE, R.UNCLE_AUNT),
    (("PRIMO", "PRIMA", "PRIMA(O)", "PRIMO(A)"), R.COUSIN, R.COUSIN),
    (("ESPOSO", "ESPOSA", "CONJUGE", "MARIDO", "MULHER"), R.SPOUSE, R.SPOUSE),
]

# Normalized relation code -> (forward, inverse)
RELATION_CODES: Dict[str, Tuple[RelationshipType, RelationshipType]] = {
    code: (forward, inverse)
    for codes, forward, inverse in _CODE_GROUPS
    for code in codes
}

# Substring fallbacks, checked in order
_PATTERNS: List[Tuple[Tuple[str, ...], RelationshipType, RelationshipType]] = [
    (("SOBRINH",), R.NEPHEW_NIECE, R.UNCLE_AUNT),
    (("NET",), R.GRANDCHILD, R.GRANDPARENT),
    (("FILH",), R.CHILD, R.PARENT),
    (("IRM",), R.SIBLING, R.SIBLING),
    (("PRIM",), R.COUSIN, R.COUSIN),
    (("ESPOS", "CONJUG", "MARID"), R.SPOUSE, R.SPOUSE),
    (("MAE", "PAI"), R.PARENT, R.CHILD),
]

INVERSE_TYPES: Dict[RelationshipType, RelationshipType] = {
    R.PARENT: R.CHILD,
    R.CHILD: R.PARENT,
    R.SIBLING: R.SIBLING,
    R.SPOUSE: R.SPOUSE,
    R.GRANDPARENT: R.GRANDCHILD,
    R.GRANDCHILD: R.GRANDPARENT,
    R.UNCLE_AUNT: R.NEPHEW_NIECE,
    R.NEPHEW_NIECE: R.UNCLE_AUNT,
    R.COUSIN: R.COUSIN,
}

UNKNOWN_POLICY_COUSIN = "cousin"
UNKNOWN_POLICY_SKIP = "skip"


def normalize_code(code: Optional[str]) -> str:
    """Upper-case, accent-free, single-spaced relation code"""
    if not code:
        return ""
    return SPACE_RE.sub(" ", unidecode(str(code)).upper()).strip()


class RelationshipInference:
    """
    Turns relation codes into canonical forward/inverse relationship types.

    Resolution order:
    1. exact table lookup
    2. substring patterns (grandparent only with a known level difference > 1)
    3. `cousin`, flagged as unrecognized

    With the "skip" unknown-code policy callers are told not to create
    edges for unrecognized codes.
    """

    def __init__(self, unknown_policy: str = UNKNOWN_POLICY_COUSIN):
        self.unknown_policy = unknown_policy

    def infer(self, code: Optional[str], level_difference: Optional[int] = None) -> InferredRelationship:
        normalized = normalize_code(code)

        if normalized in RELATION_CODES:
            forward, inverse = RELATION_CODES[normalized]
            return InferredRelationship(forward=forward, inverse=inverse, method="table")

        for fragments, forward, inverse in _PATTERNS:
            if any(fragment in normalized for fragment in fragments):
                return InferredRelationship(forward=forward, inverse=inverse, method="pattern")

        if normalized.startswith("TI"):
            return InferredRelationship(forward=R.UNCLE_AUNT, inverse=R.NEPHEW_NIECE, method="pattern")

        if "AV" in normalized and level_difference is not None and level_difference > 1:
            return InferredRelationship(forward=R.GRANDPARENT, inverse=R.GRANDCHILD, method="pattern")

        logger.warning(f"Unrecognized relation code '{code}', defaulting to cousin")
        return InferredRelationship(
            forward=R.COUSIN,
            inverse=R.COUSIN,
            recognized=False,
            method="default"
        )

    def accepts(self, inferred: InferredRelationship) -> bool:
        """False when the unknown-code policy says not to record this edge"""
        return inferred.recognized or self.unknown_policy != UNKNOWN_POLICY_SKIP

    @staticmethod
    def inverse(relationship_type: RelationshipType) -> RelationshipType:
        return INVERSE_TYPES[RelationshipType(relationship_type)]

    @staticmethod
    def validate_compatibility(
        existing_types: Iterable[RelationshipType],
        new_type: RelationshipType,
        age_gap: Optional[float] = None,
        level_gap: Optional[int] = None
    ) -> bool:
        """
        Check whether `new_type` may be added between a pair of people.

        Rejects parent together with child, grandparent together with
        grandchild, spouse mixed with any other type, and relationships the
        age or generation gap makes impossible.
        """
        existing = {RelationshipType(t) for t in existing_types}
        new_type = RelationshipType(new_type)
        combined = existing | {new_type}

        if {R.PARENT, R.CHILD} <= combined:
            return False
        if {R.GRANDPARENT, R.GRANDCHILD} <= combined:
            return False
        if R.SPOUSE in combined and len(combined) > 1:
            return False

        if new_type in (R.PARENT, R.CHILD) and age_gap is not None and abs(age_gap) < 15:
            return False
        if new_type == R.SIBLING and age_gap is not None and abs(age_gap) > 50:
            return False
        if new_type in (R.GRANDPARENT, R.GRANDCHILD) and level_gap is not None and level_gap < 2:
            return False

        return True

    @staticmethod
    def infer_sibling_pairs(children_ids: Iterable[str]) -> List[Tuple[str, str]]:
        """Every unordered pair of distinct children of one parent"""
        unique: List[str] = []
        for child_id in children_ids:
            if child_id and child_id not in unique:
                unique.append(child_id)
        return list(combinations(unique, 2))
