"""
Pydantic schemas for mapped person data
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import date
from models.base import Gender


class PersonFields(BaseModel):
    """
    Canonical person attributes produced by the record mapper.

    Every field except the name is optional; merges never replace a
    populated value with an empty one.
    """

    full_name: Optional[str] = None
    national_id: Optional[str] = Field(None, max_length=20)
    birth_date: Optional[date] = None
    death_date: Optional[date] = None
    gender: Optional[Gender] = None
    mother_name: Optional[str] = None
    father_name: Optional[str] = None

    def is_empty(self) -> bool:
        return not (self.full_name or self.national_id)


class PersonDetailFields(BaseModel):
    """Contact, document and socioeconomic data of one person"""

    phone_numbers: List[Dict[str, Any]] = Field(default_factory=list)
    emails: List[Dict[str, Any]] = Field(default_factory=list)
    addresses: List[Dict[str, Any]] = Field(default_factory=list)
    income: Optional[float] = None
    marital_status: Optional[str] = None
    documents: Dict[str, Any] = Field(default_factory=dict)
    api_data: Dict[str, Any] = Field(default_factory=dict)
