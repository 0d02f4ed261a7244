"""
Pydantic schemas for data validation and serialization.

Schemas:
    records: Wire format of the person-lookup service
    person: Canonical person and detail fields produced by the mapper
    discovery: Candidates, validation results, payloads and run results

Validation:
    Upstream records normalize the missing-value sentinel to None for every
    field, and payloads bound import depth and size.
"""

from schemas.records import (
    ParentRole,
    PersonRecord,
    ParentSearchRecord,
    RelativeRecord,
)
from schemas.person import PersonFields, PersonDetailFields
from schemas.discovery import (
    DiscoveryCandidate,
    AggregatedPerson,
    PersonDiscoveryPayload,
    FullTreeImportPayload,
    DiscoveryResult,
    ImportResult,
)

__all__ = [
    "ParentRole",
    "PersonRecord",
    "ParentSearchRecord",
    "RelativeRecord",
    "PersonFields",
    "PersonDetailFields",
    "DiscoveryCandidate",
    "AggregatedPerson",
    "PersonDiscoveryPayload",
    "FullTreeImportPayload",
    "DiscoveryResult",
    "ImportResult",
]
