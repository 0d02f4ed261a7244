from sqlalchemy import Column, String, Text, DateTime, Enum, ForeignKey, Index, UniqueConstraint, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID
from datetime import datetime
import uuid
from models.base import Base, RelationshipType, RelationshipStatus


class Relationship(Base):
    """
    Directed family edge inside one family tree.

    `relationship_type` is what `related_person` is to `person`, so the row
    (X, A, parent) reads "A is X's parent". Edges are always written in
    pairs, the second row carrying the inverse type.
    """
    __tablename__ = "relationships"

    id = Column(UUID(as_uuid=False), primary_key=True, default=lambda: str(uuid.uuid4()))
    person_id = Column(UUID(as_uuid=False), ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    related_person_id = Column(UUID(as_uuid=False), ForeignKey("people.id", ondelete="CASCADE"), nullable=False, index=True)
    relationship_type = Column(Enum(RelationshipType), nullable=False)
    family_tree_id = Column(String(64), nullable=False, index=True)
    status = Column(Enum(RelationshipStatus), default=RelationshipStatus.ACTIVE, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "person_id", "related_person_id", "relationship_type", "family_tree_id",
            name="uq_relationship_edge"
        ),
        CheckConstraint("person_id <> related_person_id", name="ck_relationship_not_self"),
        Index("idx_relationship_pair", "person_id", "related_person_id", "family_tree_id"),
    )

    def __repr__(self):
        return (
            f"<Relationship(person_id={self.person_id}, related_person_id={self.related_person_id}, "
            f"type={self.relationship_type})>"
        )
