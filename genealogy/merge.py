"""
Field merge policy shared by the aggregator and the person loader.

The rule is the same everywhere: a populated value is never replaced by an
empty one, and an incoming populated value fills a gap. When both sides are
populated the existing value wins.
"""

from typing import Any, Dict, Iterable, List, Optional

from schemas.person import PersonFields, PersonDetailFields
from schemas.discovery import DiscoveryCandidate

PERSON_FIELDS = (
    "full_name",
    "national_id",
    "birth_date",
    "death_date",
    "gender",
    "mother_name",
    "father_name",
)


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


def merge_person_fields(existing: PersonFields, incoming: PersonFields) -> PersonFields:
    updates = {
        field: getattr(incoming, field)
        for field in PERSON_FIELDS
        if _is_empty(getattr(existing, field)) and not _is_empty(getattr(incoming, field))
    }
    return existing.model_copy(update=updates)


def merge_detail_fields(existing: PersonDetailFields, incoming: PersonDetailFields) -> PersonDetailFields:
    updates: Dict[str, Any] = {}
    for field in ("phone_numbers", "emails", "addresses", "income", "marital_status"):
        if _is_empty(getattr(existing, field)) and not _is_empty(getattr(incoming, field)):
            updates[field] = getattr(incoming, field)
    for field in ("documents", "api_data"):
        merged = dict(getattr(incoming, field))
        merged.update({k: v for k, v in getattr(existing, field).items() if not _is_empty(v)})
        updates[field] = merged
    return existing.model_copy(update=updates)


def person_fields_from_entity(person: Any) -> PersonFields:
    """Snapshot an ORM Person as PersonFields"""
    return PersonFields(**{field: getattr(person, field, None) for field in PERSON_FIELDS})


def detail_fields_from_entity(detail: Optional[Any]) -> PersonDetailFields:
    if detail is None:
        return PersonDetailFields()
    return PersonDetailFields(
        phone_numbers=detail.phone_numbers or [],
        emails=detail.emails or [],
        addresses=detail.addresses or [],
        income=float(detail.income) if detail.income is not None else None,
        marital_status=detail.marital_status,
        documents=detail.documents or {},
        api_data=detail.api_data or {},
    )


def union_candidates(*groups: Iterable[DiscoveryCandidate]) -> List[DiscoveryCandidate]:
    """
    Union candidate lists keyed by identifier.

    The first occurrence of an identifier is kept, gaps in it filled from
    later ones. Candidates without an identifier are kept once per
    (name, relation code).
    """
    merged: Dict[Any, DiscoveryCandidate] = {}
    for group in groups:
        for candidate in group:
            key = candidate.identifier or ("name", candidate.name, candidate.relation_code)
            current = merged.get(key)
            if current is None:
                merged[key] = candidate
                continue
            updates = {
                field: value
                for field, value in candidate.model_dump().items()
                if _is_empty(getattr(current, field)) and not _is_empty(value)
            }
            updates["found_by_mother"] = current.found_by_mother or candidate.found_by_mother
            updates["found_by_father"] = current.found_by_father or candidate.found_by_father
            updates["confidence"] = max(current.confidence, candidate.confidence)
            merged[key] = current.model_copy(update=updates)
    return list(merged.values())
