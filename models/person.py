from sqlalchemy import Column, String, Integer, Date, DateTime, Enum, Text, Numeric, ForeignKey, Index
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, Gender


def _new_id() -> str:
    return str(uuid.uuid4())


class Person(Base):
    """
    A person in a family tree.

    Purpose:
    - Canonical identity for everyone discovered through lookups
    - Target of relationship edges
    - Never deleted by the discovery pipeline, only created or merged
    """
    __tablename__ = "people"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)

    # Identity
    national_id = Column(String(20), unique=True, nullable=True, index=True)
    full_name = Column(String(255), nullable=False, index=True)
    birth_date = Column(Date, nullable=True)
    death_date = Column(Date, nullable=True)
    gender = Column(Enum(Gender), nullable=True)
    birth_place = Column(String(255), nullable=True)
    death_place = Column(String(255), nullable=True)
    occupation = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)

    # Parent names as reported by the lookup service
    mother_name = Column(String(255), nullable=True, index=True)
    father_name = Column(String(255), nullable=True, index=True)

    created_by = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    detail = relationship("PersonDetail", back_populates="person", uselist=False)

    __table_args__ = (
        Index("idx_people_name_birth", "full_name", "birth_date"),
    )

    def __repr__(self):
        return f"<Person(id={self.id}, full_name={self.full_name}, national_id={self.national_id})>"


class PersonDetail(Base):
    """Contact, document and socioeconomic data attached to a person (0..1)."""
    __tablename__ = "person_details"

    id = Column(UUID(as_uuid=False), primary_key=True, default=_new_id)
    person_id = Column(UUID(as_uuid=False), ForeignKey("people.id", ondelete="CASCADE"), unique=True, nullable=False)

    phone_numbers = Column(JSONB, nullable=True)
    emails = Column(JSONB, nullable=True)
    addresses = Column(JSONB, nullable=True)
    income = Column(Numeric(12, 2), nullable=True)
    marital_status = Column(String(50), nullable=True)
    documents = Column(JSONB, nullable=True)
    api_data = Column(JSONB, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    person = relationship("Person", back_populates="detail")
