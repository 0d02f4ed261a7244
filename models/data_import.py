from sqlalchemy import Column, String, Integer, Enum, DateTime, Text, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from datetime import datetime
import uuid
from models.base import Base, ImportType, ImportStatus


class DataImport(Base):
    """
    Tracks each discovery or import run.

    Purpose:
    - Progress reporting while a run is in flight
    - Audit trail of counters and per-person errors
    - Short-circuiting repeated discoveries of the same identifier
    """
    __tablename__ = "data_imports"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))

    import_type = Column(Enum(ImportType), nullable=False, index=True)
    search_value = Column(String(255), nullable=False, index=True)
    family_tree_id = Column(String(64), nullable=False, index=True)
    user_id = Column(Integer, nullable=True)

    status = Column(Enum(ImportStatus), default=ImportStatus.PENDING, nullable=False, index=True)

    # Upstream exchange of the root lookup
    api_request = Column(JSONB, nullable=True)
    api_response = Column(JSONB, nullable=True)

    # Counters
    persons_created = Column(Integer, default=0, nullable=False)
    persons_updated = Column(Integer, default=0, nullable=False)
    relationships_created = Column(Integer, default=0, nullable=False)
    duplicates_found = Column(Integer, default=0, nullable=False)

    # Error tracking
    error_message = Column(Text, nullable=True)
    errors = Column(JSONB, nullable=True)
    import_summary = Column(JSONB, nullable=True)

    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_import_lookup", "import_type", "search_value", "family_tree_id", "created_at"),
    )

    def counters(self):
        return {
            "persons_created": self.persons_created or 0,
            "persons_updated": self.persons_updated or 0,
            "relationships_created": self.relationships_created or 0,
            "duplicates_found": self.duplicates_found or 0,
        }
