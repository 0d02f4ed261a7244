# ============================================================================
# File: genealogy/transformers/record_mapper.py
# Description: Maps lookup-service records onto canonical person data
# ============================================================================
"""
Record Mapper - converts lookup-service records into canonical fields.

Handles:
- Name cleanup (collapsed whitespace, title case)
- Date parsing from the service's dd/mm/yyyy format
- Gender codes
- Contact, address, document and socioeconomic detail extraction
- Relation codes to canonical relationship types
"""

import re
from typing import List, Optional, Dict, Any
import logging

from unidecode import unidecode

from models.base import Gender, RelationshipType
from schemas.records import PersonRecord, ParentSearchRecord, RelativeRecord
from schemas.person import PersonFields, PersonDetailFields
from schemas.discovery import DiscoveryCandidate
from genealogy.identifiers import clean_identifier
from genealogy.relationships import RelationshipInference
from genealogy.validators.date_validator import parse_date

logger = logging.getLogger(__name__)

SPACE_RE = re.compile(r"\s+")

GENDER_CODES = {
    "M": Gender.MALE,
    "MASCULINO": Gender.MALE,
    "F": Gender.FEMALE,
    "FEMININO": Gender.FEMALE,
    "O": Gender.OTHER,
    "OUTRO": Gender.OTHER,
}

MARITAL_STATUS = {
    "SOLTEIRO": "single",
    "SOLTEIRA": "single",
    "CASADO": "married",
    "CASADA": "married",
    "DIVORCIADO": "divorced",
    "DIVORCIADA": "divorced",
    "VIUVO": "widowed",
    "VIUVA": "widowed",
    "UNIAO ESTAVEL": "domestic_partnership",
}

ADDRESS_TYPES = ("home", "work")
DEFAULT_COUNTRY = "Brasil"
NO_NUMBER = "s/n"


def clean_name(name: Optional[str]) -> Optional[str]:
    """Collapse whitespace and title-case; None for blank input"""
    if not name:
        return None
    collapsed = SPACE_RE.sub(" ", name).strip()
    if not collapsed:
        return None
    return collapsed.title()


def _digits(value: Optional[str]) -> str:
    return re.sub(r"\D", "", value or "")


class RecordMapper:
    """
    Maps raw lookup records to canonical person, detail and relative data.

    Features:
    - Identifier lookups and parent-name search rows map to the same fields
    - Unknown gender codes map to None with a warning
    - Relatives keep their raw relation code next to the canonical type
    """

    def __init__(self, inference: Optional[RelationshipInference] = None):
        self.inference = inference or RelationshipInference()

    def to_person(self, record: PersonRecord) -> PersonFields:
        return PersonFields(
            full_name=clean_name(record.name),
            national_id=clean_identifier(record.identifier) or None,
            birth_date=parse_date(record.birth_date),
            gender=self.map_gender(record.gender),
            mother_name=clean_name(record.mother_name),
            father_name=clean_name(record.father_name),
        )

    def from_parent_search(self, record: ParentSearchRecord) -> PersonFields:
        return PersonFields(
            full_name=clean_name(record.name),
            national_id=clean_identifier(record.identifier) or None,
            birth_date=parse_date(record.birth_date),
            gender=self.map_gender(record.gender),
            mother_name=clean_name(record.mother_name),
            father_name=clean_name(record.father_name),
        )

    def to_person_detail(self, record: PersonRecord) -> PersonDetailFields:
        return PersonDetailFields(
            phone_numbers=self._phones(record),
            emails=self._emails(record),
            addresses=self._addresses(record),
            income=self._income(record.income),
            marital_status=self.map_marital_status(record.marital_status),
            documents=self._documents(record),
            api_data=self._api_data(record),
        )

    def to_relation_type(self, code: Optional[str]) -> RelationshipType:
        """Canonical type of a relation code; unknown codes map to cousin"""
        return self.inference.infer(code).forward

    def map_relatives(self, record: PersonRecord) -> List[DiscoveryCandidate]:
        return [self.map_relative(relative) for relative in record.relatives]

    def map_relative(self, relative: RelativeRecord) -> DiscoveryCandidate:
        inferred = self.inference.infer(relative.relation_code)
        return DiscoveryCandidate(
            identifier=clean_identifier(relative.identifier) or None,
            name=clean_name(relative.name),
            relation_code=relative.relation_code,
            relationship_type=inferred.forward,
            recognized=inferred.recognized,
            source="identifier_lookup",
        )

    def search_row_to_candidate(self, row: ParentSearchRecord, source: str) -> DiscoveryCandidate:
        fields = self.from_parent_search(row)
        return DiscoveryCandidate(
            identifier=fields.national_id,
            name=fields.full_name,
            relation_code="IRMAO",
            relationship_type=RelationshipType.SIBLING,
            birth_date=fields.birth_date,
            mother_name=fields.mother_name,
            father_name=fields.father_name,
            source=source,
            found_by_mother=source == "mother_search",
            found_by_father=source == "father_search",
        )

    @staticmethod
    def map_gender(code: Optional[str]) -> Optional[Gender]:
        if not code:
            return None
        gender = GENDER_CODES.get(code.strip().upper())
        if gender is None:
            logger.warning(f"Unknown gender code: {code}")
        return gender

    @staticmethod
    def map_marital_status(status: Optional[str]) -> Optional[str]:
        if not status:
            return None
        key = SPACE_RE.sub(" ", unidecode(status).upper()).strip()
        return MARITAL_STATUS.get(key, status.strip().lower())

    # ------------------------------------------------------------------
    # Detail extraction
    # ------------------------------------------------------------------

    @staticmethod
    def _phones(record: PersonRecord) -> List[Dict[str, Any]]:
        phones = []
        for phone in record.phones:
            number = _digits(phone.number)
            if not number:
                continue
            is_mobile = len(number) == 11 or (len(number) == 9 and number.startswith("9"))
            phones.append({
                "number": number,
                "type": "mobile" if is_mobile else "home",
                "is_primary": not phones,
            })
        return phones

    @staticmethod
    def _emails(record: PersonRecord) -> List[Dict[str, Any]]:
        emails = []
        for entry in record.emails:
            address = (entry.email or "").strip().lower()
            if "@" not in address:
                continue
            emails.append({
                "email": address,
                "is_personal": (entry.personal or "").upper() in ("S", "SIM", "TRUE", "1"),
                "score": entry.score,
                "is_primary": not emails,
            })
        return emails

    @staticmethod
    def _addresses(record: PersonRecord) -> List[Dict[str, Any]]:
        addresses = []
        for index, entry in enumerate(record.addresses):
            if not (entry.street or entry.city or entry.postal_code):
                continue
            addresses.append({
                "type": ADDRESS_TYPES[index] if index < len(ADDRESS_TYPES) else "other",
                "street": entry.street,
                "number": entry.number or NO_NUMBER,
                "complement": entry.complement,
                "district": entry.district,
                "city": entry.city,
                "state": entry.state,
                "postal_code": _digits(entry.postal_code) or None,
                "country": DEFAULT_COUNTRY,
                "is_primary": not addresses,
            })
        return addresses

    @staticmethod
    def _income(value: Optional[str]) -> Optional[float]:
        if not value:
            return None
        text = value.strip()
        if "," in text:
            text = text.replace(".", "").replace(",", ".")
        try:
            return float(text)
        except ValueError:
            logger.warning(f"Unparseable income value: {value}")
            return None

    @staticmethod
    def _documents(record: PersonRecord) -> Dict[str, Any]:
        documents = {
            "cpf": clean_identifier(record.identifier) or None,
            "rg": record.rg,
            "rg_issuer": record.rg_issuer,
            "rg_state": record.rg_state,
            "voter_id": record.voter_id,
            "pis": record.pis,
            "zone": record.electoral_zone,
            "section": record.electoral_section,
        }
        return {key: value for key, value in documents.items() if value}

    @staticmethod
    def _api_data(record: PersonRecord) -> Dict[str, Any]:
        data = {
            "poder_aquisitivo": record.purchasing_power,
            "fx_poder_aquisitivo": record.purchasing_power_range,
            "csb8": record.csb8,
            "csb8_faixa": record.csb8_range,
            "csba": record.csba,
            "csba_faixa": record.csba_range,
            "peso": record.weight,
            "nsu": record.nsu,
        }
        return {key: value for key, value in data.items() if value}
