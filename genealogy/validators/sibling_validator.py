"""
Confidence scoring for sibling candidates found through parent-name searches.
"""

from typing import List, Optional
import logging

from schemas.discovery import DiscoveryCandidate, SiblingScore
from schemas.person import PersonFields
from genealogy.validators.name_matcher import NameMatcher
from genealogy.validators.date_validator import DateValidator

logger = logging.getLogger(__name__)

# Additive scoring factors
MOTHER_MATCH_POINTS = 30
FATHER_MATCH_POINTS = 50
BOTH_SEARCHES_POINTS = 20
AGE_MATCH_POINTS = 20
AGE_MISMATCH_PENALTY = -10
SURNAME_POINTS = 10

MIN_CONFIDENCE = 70
PARENT_NAME_THRESHOLD = 0.85


class SiblingValidator:
    """
    Scores whether a candidate is a sibling of a known person.

    Scoring:
    - mother name matches: +30
    - father name matches: +50
    - found by both a mother-name and a father-name search: +20
    - birth dates within the sibling bound: +20, outside it: -10
    - shared surname: +10

    The confidence is clamped to [0, 100] and accepted at 70 or above.
    A candidate with the same identifier as the known person is rejected
    with confidence 0.
    """

    def __init__(
        self,
        name_matcher: Optional[NameMatcher] = None,
        date_validator: Optional[DateValidator] = None,
        min_confidence: float = MIN_CONFIDENCE
    ):
        self.name_matcher = name_matcher or NameMatcher()
        self.date_validator = date_validator or DateValidator()
        self.min_confidence = min_confidence

    def score(self, known: PersonFields, candidate: DiscoveryCandidate) -> SiblingScore:
        if known.national_id and candidate.identifier and known.national_id == candidate.identifier:
            return SiblingScore(
                is_valid=False,
                confidence=0,
                reasons=["Candidate is the person being enriched"]
            )

        points = 0
        reasons: List[str] = []
        factors = {
            "mother_match": False,
            "father_match": False,
            "found_by_both": False,
            "age_match": False,
            "surname_match": False,
        }

        if self._parent_matches(known.mother_name, candidate.mother_name):
            points += MOTHER_MATCH_POINTS
            factors["mother_match"] = True
            reasons.append(f"Same mother: {candidate.mother_name}")

        if self._parent_matches(known.father_name, candidate.father_name):
            points += FATHER_MATCH_POINTS
            factors["father_match"] = True
            reasons.append(f"Same father: {candidate.father_name}")

        if candidate.found_by_mother and candidate.found_by_father:
            points += BOTH_SEARCHES_POINTS
            factors["found_by_both"] = True
            reasons.append("Found by both mother and father searches")

        if known.birth_date and candidate.birth_date:
            age_check = self.date_validator.validate_sibling(known.birth_date, candidate.birth_date)
            if age_check.is_valid:
                points += AGE_MATCH_POINTS
                factors["age_match"] = True
                reasons.append(f"Compatible age gap ({age_check.age_difference_years} years)")
            else:
                points += AGE_MISMATCH_PENALTY
                reasons.append(age_check.reason)

        known_surname = self._known_surname(known)
        if known_surname and known_surname == self.name_matcher.surname(candidate.name):
            points += SURNAME_POINTS
            factors["surname_match"] = True
            reasons.append(f"Shared surname {known_surname}")

        confidence = max(0, min(100, points))
        return SiblingScore(
            is_valid=confidence >= self.min_confidence,
            confidence=confidence,
            reasons=reasons,
            factors=factors
        )

    def validate_multiple(self, known: PersonFields, candidates: List[DiscoveryCandidate]) -> List[DiscoveryCandidate]:
        """Accepted candidates, confidence attached, highest first"""
        accepted = []
        for candidate in candidates:
            result = self.score(known, candidate)
            if result.is_valid:
                accepted.append(candidate.model_copy(update={"confidence": result.confidence}))
            else:
                logger.debug(
                    f"Rejected sibling candidate {candidate.name} "
                    f"(confidence {result.confidence}): {'; '.join(result.reasons)}"
                )

        accepted.sort(key=lambda c: c.confidence, reverse=True)
        return accepted

    def _parent_matches(self, known_name: Optional[str], candidate_name: Optional[str]) -> bool:
        if not known_name or not candidate_name:
            return False
        return self.name_matcher.are_similar(known_name, candidate_name, PARENT_NAME_THRESHOLD)

    def _known_surname(self, known: PersonFields) -> Optional[str]:
        for name in (known.full_name, known.father_name, known.mother_name):
            surname = self.name_matcher.surname(name)
            if surname:
                return surname
        return None
