"""
Pydantic schemas for discovery inputs, intermediate results and run results
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date
from models.base import RelationshipType, ImportStatus
from schemas.person import PersonFields
from schemas.records import PersonRecord


# ============================================================================
# Candidates and validation results
# ============================================================================

class DiscoveryCandidate(BaseModel):
    """
    A possible relative found during discovery, before it is persisted.

    `relation_code` is the raw code from the lookup service as seen from the
    person being enriched; `relationship_type` is its canonical mapping.
    """

    identifier: Optional[str] = None
    name: Optional[str] = None
    relation_code: Optional[str] = None
    relationship_type: Optional[RelationshipType] = None
    recognized: bool = True
    confidence: float = Field(100.0, ge=0, le=100)

    birth_date: Optional[date] = None
    mother_name: Optional[str] = None
    father_name: Optional[str] = None

    # Provenance
    source: str = "identifier_lookup"
    found_by_mother: bool = False
    found_by_father: bool = False


class DateValidation(BaseModel):
    is_valid: bool
    age_difference_years: Optional[float] = None
    reason: Optional[str] = None


class SiblingScore(BaseModel):
    is_valid: bool
    confidence: float
    reasons: List[str] = Field(default_factory=list)
    factors: Dict[str, bool] = Field(default_factory=dict)


class InferredRelationship(BaseModel):
    """Forward is what the relative is to the subject; inverse is the reverse"""
    forward: RelationshipType
    inverse: RelationshipType
    recognized: bool = True
    method: str = "table"


# ============================================================================
# Identifier discovery
# ============================================================================

class IdentifierDiscoveryContext(BaseModel):
    """What is known about a parent whose identifier is missing"""
    person_name: str
    spouse_name: Optional[str] = None
    children_names: List[str] = Field(default_factory=list)
    birth_date: Optional[date] = None
    known_child_identifier: Optional[str] = None


class DiscoveredIdentifier(BaseModel):
    identifier: str
    name: Optional[str] = None
    confidence: float = Field(..., ge=50, le=90)
    method: str
    name_variations: List[str] = Field(default_factory=list)


# ============================================================================
# Aggregation
# ============================================================================

class AggregationContext(BaseModel):
    """Seed data for the person aggregator; any subset may be present"""
    identifier: Optional[str] = None
    full_name: Optional[str] = None
    mother_name: Optional[str] = None
    father_name: Optional[str] = None
    birth_date: Optional[date] = None


class DataQuality(BaseModel):
    level: str
    score: int


class AggregatedPerson(BaseModel):
    person: PersonFields
    record: Optional[PersonRecord] = None
    relatives: List[DiscoveryCandidate] = Field(default_factory=list)
    siblings: List[DiscoveryCandidate] = Field(default_factory=list)
    sources_used: List[str] = Field(default_factory=list)
    data_quality: DataQuality = Field(default_factory=lambda: DataQuality(level="low", score=0))


class ChildrenDiscovery(BaseModel):
    """People listing a given name as their mother or father"""
    possible_children: List[DiscoveryCandidate] = Field(default_factory=list)
    mother_name_variations: List[str] = Field(default_factory=list)
    father_name_variations: List[str] = Field(default_factory=list)
    spouse_names: List[str] = Field(default_factory=list)


# ============================================================================
# Run payloads
# ============================================================================

class PersonDiscoveryPayload(BaseModel):
    """Input of a single-person discovery run"""
    identifier: str = Field(..., min_length=1)
    family_tree_id: str = Field(..., min_length=1)
    actor_id: Optional[int] = None
    discover_relatives: bool = True
    merge_duplicates: bool = True


class FullTreeImportPayload(BaseModel):
    """Input of a bounded breadth-first full-tree import"""
    identifier: str = Field(..., min_length=1)
    family_tree_id: str = Field(..., min_length=1)
    actor_id: Optional[int] = None
    max_depth: int = Field(3, ge=0, le=5)
    max_people: int = Field(500, ge=1, le=1000)
    merge_duplicates: bool = True
    import_id: Optional[str] = None


# ============================================================================
# Run results
# ============================================================================

class ImportErrorEntry(BaseModel):
    person: Optional[str] = None
    error: str


class TreeNode(BaseModel):
    """One entry of the breadth-first work queue"""
    identifier: str
    name: Optional[str] = None
    level: int = 0
    parent_identifier: Optional[str] = None
    relation_code: Optional[str] = None
    source: str = "root"
    sibling_group: Optional[str] = None


class DiscoveryResult(BaseModel):
    import_id: Optional[str] = None
    status: ImportStatus
    persons_created: int = 0
    persons_updated: int = 0
    relationships_created: int = 0
    duplicates_found: int = 0
    errors: List[ImportErrorEntry] = Field(default_factory=list)
    skipped: bool = False
    unrecognized_relation_codes: List[str] = Field(default_factory=list)

    def counters(self) -> Dict[str, Any]:
        return {
            "persons_created": self.persons_created,
            "persons_updated": self.persons_updated,
            "relationships_created": self.relationships_created,
            "duplicates_found": self.duplicates_found,
        }


class ImportResult(DiscoveryResult):
    total_levels: int = 0
    people_processed: int = 0
    tree_structure: List[TreeNode] = Field(default_factory=list)


class QueuedImport(BaseModel):
    import_id: str
    job_id: str
    status: str = "queued"
    message: str
