"""
SQLAlchemy ORM models for database tables.

Models:
    base: Base declarative class and shared enums
    person: People and their optional detail record
    relationship: Directed, paired family edges scoped to a family tree
    data_import: Discovery/import run tracking and counters

Usage:
    from models import Person, Relationship, DataImport
    from models.base import RelationshipType, ImportStatus

Relationships:
    - Person → PersonDetail (one-to-one)
    - Person → Relationship (one-to-many, both directions)
"""

from models.base import (
    Base,
    Gender,
    RelationshipType,
    RelationshipStatus,
    ImportType,
    ImportStatus,
)
from models.person import Person, PersonDetail
from models.relationship import Relationship
from models.data_import import DataImport

__all__ = [
    "Base",
    "Gender",
    "RelationshipType",
    "RelationshipStatus",
    "ImportType",
    "ImportStatus",
    "Person",
    "PersonDetail",
    "Relationship",
    "DataImport",
]
