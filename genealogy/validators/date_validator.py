"""
Birth-date plausibility checks for inferred relationships.

Missing or unreadable dates never reject a relationship; the result is
valid with a reason explaining why nothing could be checked.
"""

from datetime import date, datetime
from typing import Optional, Union
import logging

from models.base import RelationshipType
from schemas.discovery import DateValidation
from genealogy.relationships import RELATION_CODES, normalize_code

logger = logging.getLogger(__name__)

DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d", "%d-%m-%Y")

# Age-gap bounds in years
PARENT_CHILD_MIN_GAP = 15
PARENT_CHILD_MAX_GAP = 60
SIBLING_MAX_GAP = 25
GRANDPARENT_MIN_GAP = 35
GRANDPARENT_MAX_GAP = 90
SPOUSE_MAX_GAP = 30

DAYS_PER_YEAR = 365.25

DateInput = Union[date, datetime, str, None]


def parse_date(value: DateInput) -> Optional[date]:
    """Parse dd/mm/yyyy, yyyy-mm-dd, dd-mm-yyyy or ISO-8601; None if unreadable"""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        return None


class DateValidator:
    """
    Validates relationships against the age gap between two people.

    Bounds:
    - parent/child: 15 to 60 years
    - siblings: at most 25 years
    - grandparent/grandchild: 35 to 90 years
    - spouses: at most 30 years
    """

    @staticmethod
    def _resolve(a: DateInput, b: DateInput):
        if a is None or b is None or a == "" or b == "":
            return None, None, DateValidation(is_valid=True, reason="Missing birth dates, cannot validate")
        first = parse_date(a)
        second = parse_date(b)
        if first is None or second is None:
            return None, None, DateValidation(is_valid=True, reason="Invalid date format")
        return first, second, None

    @staticmethod
    def years_between(first: date, second: date) -> float:
        return round(abs((second - first).days) / DAYS_PER_YEAR, 2)

    def validate_parent_child(self, parent_birth: DateInput, child_birth: DateInput) -> DateValidation:
        parent, child, early = self._resolve(parent_birth, child_birth)
        if early:
            return early

        gap = round((child - parent).days / DAYS_PER_YEAR, 2)
        if gap < PARENT_CHILD_MIN_GAP:
            return DateValidation(
                is_valid=False,
                age_difference_years=gap,
                reason=f"Parent would be {gap} years old at birth (minimum {PARENT_CHILD_MIN_GAP})"
            )
        if gap > PARENT_CHILD_MAX_GAP:
            return DateValidation(
                is_valid=False,
                age_difference_years=gap,
                reason=f"Parent would be {gap} years old at birth (maximum {PARENT_CHILD_MAX_GAP})"
            )
        return DateValidation(is_valid=True, age_difference_years=gap)

    def validate_sibling(self, first_birth: DateInput, second_birth: DateInput) -> DateValidation:
        first, second, early = self._resolve(first_birth, second_birth)
        if early:
            return early

        gap = self.years_between(first, second)
        if gap > SIBLING_MAX_GAP:
            return DateValidation(
                is_valid=False,
                age_difference_years=gap,
                reason=f"Sibling age gap of {gap} years exceeds {SIBLING_MAX_GAP}"
            )
        return DateValidation(is_valid=True, age_difference_years=gap)

    def validate_grandparent(self, grandparent_birth: DateInput, grandchild_birth: DateInput) -> DateValidation:
        grandparent, grandchild, early = self._resolve(grandparent_birth, grandchild_birth)
        if early:
            return early

        gap = round((grandchild - grandparent).days / DAYS_PER_YEAR, 2)
        if gap < GRANDPARENT_MIN_GAP or gap > GRANDPARENT_MAX_GAP:
            return DateValidation(
                is_valid=False,
                age_difference_years=gap,
                reason=(
                    f"Grandparent age gap of {gap} years outside "
                    f"{GRANDPARENT_MIN_GAP}-{GRANDPARENT_MAX_GAP}"
                )
            )
        return DateValidation(is_valid=True, age_difference_years=gap)

    def validate_spouse(self, first_birth: DateInput, second_birth: DateInput) -> DateValidation:
        first, second, early = self._resolve(first_birth, second_birth)
        if early:
            return early

        gap = self.years_between(first, second)
        if gap > SPOUSE_MAX_GAP:
            return DateValidation(
                is_valid=False,
                age_difference_years=gap,
                reason=f"Spouse age gap of {gap} years exceeds {SPOUSE_MAX_GAP}"
            )
        return DateValidation(is_valid=True, age_difference_years=gap)

    def validate_by_type(
        self,
        person_birth: DateInput,
        relative_birth: DateInput,
        relationship: Union[RelationshipType, str, None]
    ) -> DateValidation:
        """
        Validate a relative against the person it was found for.

        `relationship` is what the relative is to the person, either a
        RelationshipType or a raw relation code from the lookup service.
        """
        if relationship is None:
            return DateValidation(is_valid=True, reason="Unknown relationship, cannot validate")

        if not isinstance(relationship, RelationshipType):
            try:
                relationship = RelationshipType(str(relationship).lower())
            except ValueError:
                relationship = RELATION_CODES.get(normalize_code(relationship), (None, None))[0]
            if relationship is None:
                return DateValidation(is_valid=True, reason="Unknown relationship, cannot validate")

        if relationship == RelationshipType.PARENT:
            return self.validate_parent_child(relative_birth, person_birth)
        if relationship == RelationshipType.CHILD:
            return self.validate_parent_child(person_birth, relative_birth)
        if relationship == RelationshipType.SIBLING:
            return self.validate_sibling(person_birth, relative_birth)
        if relationship == RelationshipType.GRANDPARENT:
            return self.validate_grandparent(relative_birth, person_birth)
        if relationship == RelationshipType.GRANDCHILD:
            return self.validate_grandparent(person_birth, relative_birth)
        if relationship == RelationshipType.SPOUSE:
            return self.validate_spouse(person_birth, relative_birth)

        return DateValidation(is_valid=True, reason=f"No date rule for {relationship.value}")

    @staticmethod
    def age_at(birth: DateInput, at: DateInput = None) -> Optional[int]:
        """Whole years between a birth date and a reference date (today by default)"""
        born = parse_date(birth)
        if born is None:
            return None
        reference = parse_date(at) if at is not None else date.today()
        if reference is None:
            return None
        years = reference.year - born.year
        if (reference.month, reference.day) < (born.month, born.day):
            years -= 1
        return years

    def is_same_generation(self, first_birth: DateInput, second_birth: DateInput, max_years: int = 15) -> bool:
        first = parse_date(first_birth)
        second = parse_date(second_birth)
        if first is None or second is None:
            return True
        return self.years_between(first, second) <= max_years
