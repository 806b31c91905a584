"""
Domain records for companies, persons, appointments and relationships.

These mirror the relational tables but live outside any database session, so
they can be returned to callers, compared in tests and passed to the risk
analyzer.
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CompanyStatus(str, Enum):
    """Lifecycle status of a company."""

    ACTIVE = "active"
    DISSOLVED = "dissolved"
    LIQUIDATION = "liquidation"
    DORMANT = "dormant"
    SUSPENDED = "suspended"
    STRIKE_OFF = "strike_off"
    UNKNOWN = "unknown"


class CompanyType(str, Enum):
    """Legal form of a company."""

    PRIVATE_LIMITED = "private_limited"
    PUBLIC_LIMITED = "public_limited"
    LIMITED_PARTNERSHIP = "limited_partnership"
    UNLIMITED_COMPANY = "unlimited_company"
    COMMUNITY_INTEREST_COMPANY = "community_interest_company"
    CHARITABLE_INCORPORATED_ORGANISATION = "charitable_incorporated_organisation"
    LLP = "llp"
    SOLE_TRADER = "sole_trader"
    OTHER = "other"


class OfficerRole(str, Enum):
    """Role held by a person in a company."""

    DIRECTOR = "director"
    SECRETARY = "secretary"
    PERSON_OF_SIGNIFICANT_CONTROL = "person_of_significant_control"
    SHAREHOLDER = "shareholder"
    TRUSTEE = "trustee"
    OTHER = "other"


class CandidateSource(str, Enum):
    """Where a record was served from."""

    LOCAL = "local"
    REGISTRY = "registry"


class SourcePreference(str, Enum):
    """Which sources a search may consult."""

    LOCAL = "local"
    REGISTRY = "registry"
    BOTH = "both"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str) and value.lower() == "companies_house":
            return cls.REGISTRY
        return None


class CompanyRecord(BaseModel):
    """A company as held in the cache store."""

    model_config = ConfigDict(from_attributes=True)

    company_number: str
    name: str
    status: CompanyStatus = CompanyStatus.UNKNOWN
    company_type: CompanyType = CompanyType.OTHER
    incorporation_date: Optional[date] = None
    dissolution_date: Optional[date] = None
    jurisdiction: Optional[str] = None
    registered_address: Optional[str] = None
    postal_code: Optional[str] = None
    sic_codes: list[str] = Field(default_factory=list)
    last_synced_at: Optional[datetime] = None
    officers_synced_at: Optional[datetime] = None
    controllers_synced_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def coerce_status(cls, v: Any) -> Any:
        if v is None:
            return CompanyStatus.UNKNOWN
        if isinstance(v, CompanyStatus):
            return v
        try:
            return CompanyStatus(str(v).lower())
        except ValueError:
            return CompanyStatus.UNKNOWN

    @field_validator("company_type", mode="before")
    @classmethod
    def coerce_company_type(cls, v: Any) -> Any:
        if v is None:
            return CompanyType.OTHER
        if isinstance(v, CompanyType):
            return v
        try:
            return CompanyType(str(v).lower())
        except ValueError:
            return CompanyType.OTHER

    @field_validator("sic_codes", mode="before")
    @classmethod
    def dedupe_sic_codes(cls, v: Any) -> Any:
        if v is None:
            return []
        return sorted({str(code).strip() for code in v if str(code).strip()})

    def is_fresh(self, now: datetime, window: timedelta) -> bool:
        """True if last synchronized strictly within the freshness window."""
        if self.last_synced_at is None:
            return False
        return now - self.last_synced_at < window

    def is_fresh_for(
        self,
        now: datetime,
        window: timedelta,
        include_officers: bool = True,
        include_controllers: bool = True,
    ) -> bool:
        """
        True if the company and every requested part were synchronized within
        the window.

        Officers and controllers carry their own sync times, so a company
        fetched without them is fresh for company-only reads but not for a
        full profile.
        """
        stamps = [self.last_synced_at]
        if include_officers:
            stamps.append(self.officers_synced_at)
        if include_controllers:
            stamps.append(self.controllers_synced_at)
        return all(ts is not None and now - ts < window for ts in stamps)


class PersonRecord(BaseModel):
    """A natural or corporate person linked to companies."""

    model_config = ConfigDict(from_attributes=True)

    person_key: str
    full_name: str
    birth_month: Optional[int] = Field(default=None, ge=1, le=12)
    birth_year: Optional[int] = None
    nationality: Optional[str] = None
    address: Optional[str] = None
    postal_code: Optional[str] = None


class AppointmentRecord(BaseModel):
    """A person's officer or controller appointment at a company."""

    company_number: str
    person: PersonRecord
    role: OfficerRole
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None
    natures_of_control: list[str] = Field(default_factory=list)

    @property
    def is_active(self) -> bool:
        return self.resigned_on is None

    @property
    def appointment_key(self) -> str:
        """Natural key: company, person, role and start date."""
        started = self.appointed_on.isoformat() if self.appointed_on else "-"
        return f"{self.company_number}|{self.person.person_key}|{self.role.value}|{started}"


class RelationshipRecord(BaseModel):
    """Directed company-to-company link, e.g. a corporate controller."""

    from_company_number: str
    to_company_number: str
    relationship_type: str
    from_company_name: Optional[str] = None
    ownership_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    confidence_score: float = Field(default=1.0, ge=0.0, le=1.0)


class SearchCandidate(BaseModel):
    """A search hit from either source, keyed by company number."""

    company_number: str
    name: str
    status: CompanyStatus = CompanyStatus.UNKNOWN
    company_type: CompanyType = CompanyType.OTHER
    incorporation_date: Optional[date] = None
    registered_address: Optional[str] = None
    source: CandidateSource
    rank: Optional[int] = None


class RiskFactor(BaseModel):
    category: str
    severity: str
    description: str


class RiskSummary(BaseModel):
    """Output of the risk-analysis collaborator."""

    score: int = Field(..., ge=1, le=10)
    level: str
    factors: list[RiskFactor] = Field(default_factory=list)
    analyzer: str
    generated_at: datetime


class CompanyDetails(BaseModel):
    """A resolved company with its appointments and where it came from."""

    company: CompanyRecord
    officers: list[AppointmentRecord] = Field(default_factory=list)
    controllers: list[AppointmentRecord] = Field(default_factory=list)
    relationships: list[RelationshipRecord] = Field(default_factory=list)
    source: CandidateSource
    stale: bool = False
    fetch_error: Optional[str] = None
    errors: dict[str, str] = Field(default_factory=dict)
    analysis: Optional[RiskSummary] = None
    analysis_error: Optional[str] = None


class SearchResult(BaseModel):
    """Merged search response."""

    query: str
    limit: int
    page: int = 1
    source: SourcePreference
    candidates: list[SearchCandidate]
    total: int
    has_more: bool = False
    sources: dict[str, int] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
