"""
Wire schemas for the Companies House REST API.

Only the fields the engine consumes are declared; everything else in the
upstream payload is ignored. Field names follow the registry's JSON.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Generic, Optional, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RegistryModel(BaseModel):
    """Base for registry payloads: tolerate unknown fields."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RegistryAddress(RegistryModel):
    premises: Optional[str] = None
    address_line_1: Optional[str] = None
    address_line_2: Optional[str] = None
    locality: Optional[str] = None
    region: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def format(self) -> str:
        """Join the populated address parts into a single line."""
        parts = [
            self.premises,
            self.address_line_1,
            self.address_line_2,
            self.locality,
            self.region,
            self.postal_code,
            self.country,
        ]
        return ", ".join(p.strip() for p in parts if p and p.strip())


class RegistryDateOfBirth(RegistryModel):
    """Partial date of birth; the registry never publishes the day."""

    month: Optional[int] = Field(default=None, ge=1, le=12)
    year: Optional[int] = None


class RegistryCompany(RegistryModel):
    company_number: str
    company_name: str
    company_status: Optional[str] = None
    company_type: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("type", "company_type")
    )
    date_of_creation: Optional[date] = None
    date_of_dissolution: Optional[date] = Field(
        default=None,
        validation_alias=AliasChoices("date_of_cessation", "date_of_dissolution"),
    )
    registered_office_address: Optional[RegistryAddress] = None
    sic_codes: list[str] = Field(default_factory=list)
    jurisdiction: Optional[str] = None


class RegistryOfficer(RegistryModel):
    name: str
    officer_role: str
    appointed_on: Optional[date] = None
    resigned_on: Optional[date] = None
    date_of_birth: Optional[RegistryDateOfBirth] = None
    nationality: Optional[str] = None
    address: Optional[RegistryAddress] = None


class RegistryNameElements(RegistryModel):
    title: Optional[str] = None
    forename: Optional[str] = None
    middle_name: Optional[str] = None
    surname: Optional[str] = None


class RegistryIdentification(RegistryModel):
    """Registration details published for corporate controllers."""

    registration_number: Optional[str] = None
    legal_form: Optional[str] = None
    country_registered: Optional[str] = None
    place_registered: Optional[str] = None


class RegistryControllingPerson(RegistryModel):
    name: Optional[str] = None
    name_elements: Optional[RegistryNameElements] = None
    kind: str
    natures_of_control: list[str] = Field(default_factory=list)
    notified_on: Optional[date] = None
    ceased_on: Optional[date] = None
    date_of_birth: Optional[RegistryDateOfBirth] = None
    nationality: Optional[str] = None
    address: Optional[RegistryAddress] = None
    identification: Optional[RegistryIdentification] = None

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        if self.name_elements:
            parts = [self.name_elements.forename, self.name_elements.surname]
            joined = " ".join(p for p in parts if p)
            if joined:
                return joined
        return "Unknown"

    @property
    def is_corporate(self) -> bool:
        return "corporate-entity" in self.kind or "legal-person" in self.kind


class RegistrySearchItem(RegistryModel):
    company_number: str
    title: str
    company_status: Optional[str] = None
    company_type: Optional[str] = None
    address_snippet: Optional[str] = None
    date_of_creation: Optional[date] = None


T = TypeVar("T")


@dataclass
class SubFetch(Generic[T]):
    """
    Tagged outcome of one registry call inside a composite fetch.

    Exactly one of value/error is meaningful: a failed call carries the error
    message (and upstream status when known) instead of raising.
    """

    value: Optional[T] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.skipped


@dataclass
class RegistryProfile:
    """Company, officers and controllers fetched together."""

    company_number: str
    company: SubFetch[Optional[RegistryCompany]] = field(default_factory=SubFetch)
    officers: SubFetch[list[RegistryOfficer]] = field(default_factory=SubFetch)
    controllers: SubFetch[list[RegistryControllingPerson]] = field(default_factory=SubFetch)

    @property
    def errors(self) -> dict[str, Any]:
        """Per-call error messages, only for calls that failed."""
        return {
            name: sub.error
            for name, sub in (
                ("company", self.company),
                ("officers", self.officers),
                ("controllers", self.controllers),
            )
            if sub.error is not None
        }
