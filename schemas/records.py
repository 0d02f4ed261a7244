"""
Pydantic schemas for the person-lookup service wire format.

The service answers with upper-case Portuguese field names and uses the
sentinel "SEM INFORMAÇÃO" for unknown values. The sentinel is normalized to
None for every field at ingestion, so nothing downstream ever compares
against it.
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
import enum


MISSING_SENTINELS = {"SEM INFORMAÇÃO", "SEM INFORMACAO", "NULL", "NONE", ""}


class ParentRole(str, enum.Enum):
    """Parent role used by name searches; the value is the query parameter"""
    MOTHER = "mae"
    FATHER = "pai"


class UpstreamRecord(BaseModel):
    """Base for every record received from the lookup service."""

    @validator("*", pre=True)
    def normalize_missing(cls, v):
        """Map the missing-value sentinel to None and stringify scalars"""
        if isinstance(v, bool):
            return v
        if isinstance(v, (int, float)):
            return str(v)
        if isinstance(v, str):
            v = v.strip()
            if v.upper() in MISSING_SENTINELS:
                return None
        return v

    class Config:
        populate_by_name = True
        extra = "ignore"


class PhoneRecord(UpstreamRecord):
    number: Optional[str] = Field(None, alias="NUMBER")


class EmailRecord(UpstreamRecord):
    email: Optional[str] = Field(None, alias="EMAIL")
    personal: Optional[str] = Field(None, alias="EMAIL_PESSOAL")
    score: Optional[str] = Field(None, alias="EMAIL_SCORE")


class AddressRecord(UpstreamRecord):
    street: Optional[str] = Field(None, alias="LOGRADOURO")
    number: Optional[str] = Field(None, alias="LOGRADOURO_NUMERO")
    complement: Optional[str] = Field(None, alias="COMPLEMENTO")
    district: Optional[str] = Field(None, alias="BAIRRO")
    city: Optional[str] = Field(None, alias="CIDADE")
    state: Optional[str] = Field(None, alias="UF")
    postal_code: Optional[str] = Field(None, alias="CEP")


class RelativeRecord(UpstreamRecord):
    """One entry of a person's relative list"""
    identifier: Optional[str] = Field(None, alias="CPF_VINCULO")
    name: Optional[str] = Field(None, alias="NOME_VINCULO")
    relation_code: Optional[str] = Field(None, alias="VINCULO")


class PersonRecord(UpstreamRecord):
    """Full record returned by an identifier lookup"""

    identifier: str = Field(..., alias="CPF")
    name: Optional[str] = Field(None, alias="NOME")
    gender: Optional[str] = Field(None, alias="SEXO")
    birth_date: Optional[str] = Field(None, alias="NASCIMENTO")
    mother_name: Optional[str] = Field(None, alias="NOME_MAE")
    father_name: Optional[str] = Field(None, alias="NOME_PAI")
    marital_status: Optional[str] = Field(None, alias="ESTADO_CIVIL")

    # Documents
    rg: Optional[str] = Field(None, alias="RG")
    rg_issuer: Optional[str] = Field(None, alias="ORGAO_EMISSOR")
    rg_state: Optional[str] = Field(None, alias="UF_EMISSAO")
    voter_id: Optional[str] = Field(None, alias="TITULO_ELEITOR")
    pis: Optional[str] = Field(None, alias="PIS")
    electoral_zone: Optional[str] = Field(None, alias="ZONA")
    electoral_section: Optional[str] = Field(None, alias="SECAO")
    nsu: Optional[str] = Field(None, alias="NSU")

    # Socioeconomic
    income: Optional[str] = Field(None, alias="RENDA")
    weight: Optional[str] = Field(None, alias="PESO")
    purchasing_power: Optional[str] = Field(None, alias="PODER_AQUISITIVO")
    purchasing_power_range: Optional[str] = Field(None, alias="FX_PODER_AQUISITIVO")
    csb8: Optional[str] = Field(None, alias="CSB8")
    csb8_range: Optional[str] = Field(None, alias="CSB8_FAIXA")
    csba: Optional[str] = Field(None, alias="CSBA")
    csba_range: Optional[str] = Field(None, alias="CSBA_FAIXA")

    phones: List[PhoneRecord] = Field(default_factory=list, alias="TELEFONES")
    emails: List[EmailRecord] = Field(default_factory=list, alias="EMAIL")
    addresses: List[AddressRecord] = Field(default_factory=list, alias="ENDERECO")
    relatives: List[RelativeRecord] = Field(default_factory=list, alias="PARENTES")

    @validator("phones", "emails", "addresses", "relatives", pre=True)
    def ensure_list(cls, v):
        """The service sends null or the sentinel for empty collections"""
        if v is None or isinstance(v, str):
            return []
        return v


class ParentSearchRecord(UpstreamRecord):
    """One row of a search by mother or father name"""

    identifier: str = Field(..., alias="CPF")
    name: Optional[str] = Field(None, alias="NOME")
    birth_date: Optional[str] = Field(None, alias="NASCIMENTO")
    gender: Optional[str] = Field(None, alias="SEXO")
    mother_name: Optional[str] = Field(None, alias="MAE")
    father_name: Optional[str] = Field(None, alias="PAI")
