"""
Translation of registry payloads into domain records.

The registry speaks in its own vocabulary (hyphenated statuses, officer role
codes, natures-of-control strings). Everything is mapped here so the cache
store only ever sees domain enums.
"""

import logging
import re
from datetime import datetime
from typing import Optional

from nexus.errors import ValidationError
from nexus.schemas.records import (
    AppointmentRecord,
    CandidateSource,
    CompanyRecord,
    CompanyStatus,
    CompanyType,
    OfficerRole,
    PersonRecord,
    RelationshipRecord,
    SearchCandidate,
)
from nexus.schemas.registry import (
    RegistryAddress,
    RegistryCompany,
    RegistryControllingPerson,
    RegistryDateOfBirth,
    RegistryOfficer,
    RegistrySearchItem,
)
from nexus.sync.normalize import make_person_key, normalize_company_number

logger = logging.getLogger(__name__)


STATUS_MAP = {
    "active": CompanyStatus.ACTIVE,
    "open": CompanyStatus.ACTIVE,
    "registered": CompanyStatus.ACTIVE,
    "dissolved": CompanyStatus.DISSOLVED,
    "closed": CompanyStatus.DISSOLVED,
    "converted-closed": CompanyStatus.DISSOLVED,
    "liquidation": CompanyStatus.LIQUIDATION,
    "in-liquidation": CompanyStatus.LIQUIDATION,
    "insolvency-proceedings": CompanyStatus.LIQUIDATION,
    "administration": CompanyStatus.SUSPENDED,
    "receivership": CompanyStatus.SUSPENDED,
    "voluntary-arrangement": CompanyStatus.SUSPENDED,
    "suspended": CompanyStatus.SUSPENDED,
    "dormant": CompanyStatus.DORMANT,
    "strike-off": CompanyStatus.STRIKE_OFF,
    "strike_off": CompanyStatus.STRIKE_OFF,
    "struck-off": CompanyStatus.STRIKE_OFF,
    "removed": CompanyStatus.STRIKE_OFF,
}

COMPANY_TYPE_MAP = {
    "ltd": CompanyType.PRIVATE_LIMITED,
    "private-limited-guarant-nsc": CompanyType.PRIVATE_LIMITED,
    "private-limited-guarant-nsc-limited-exemption": CompanyType.PRIVATE_LIMITED,
    "private-limited-shares-section-30-exemption": CompanyType.PRIVATE_LIMITED,
    "plc": CompanyType.PUBLIC_LIMITED,
    "limited-partnership": CompanyType.LIMITED_PARTNERSHIP,
    "private-unlimited": CompanyType.UNLIMITED_COMPANY,
    "private-unlimited-nsc": CompanyType.UNLIMITED_COMPANY,
    "community-interest-company": CompanyType.COMMUNITY_INTEREST_COMPANY,
    "charitable-incorporated-organisation": CompanyType.CHARITABLE_INCORPORATED_ORGANISATION,
    "scottish-charitable-incorporated-organisation": CompanyType.CHARITABLE_INCORPORATED_ORGANISATION,
    "llp": CompanyType.LLP,
}

UK_REGISTRIES = {
    "england",
    "wales",
    "england and wales",
    "scotland",
    "northern ireland",
    "united kingdom",
    "uk",
    "great britain",
}

_OWNERSHIP_RANGE = re.compile(r"ownership-of-shares-(\d+)-to-(\d+)-percent")
_OWNERSHIP_MORE_THAN = re.compile(r"ownership-of-shares-more-than-(\d+)-percent")


def map_company_status(status: Optional[str]) -> CompanyStatus:
    """Map a registry status string, falling back to UNKNOWN."""
    if not status:
        return CompanyStatus.UNKNOWN
    return STATUS_MAP.get(status.strip().lower(), CompanyStatus.UNKNOWN)


def map_company_type(company_type: Optional[str]) -> CompanyType:
    if not company_type:
        return CompanyType.OTHER
    return COMPANY_TYPE_MAP.get(company_type.strip().lower(), CompanyType.OTHER)


def map_officer_role(officer_role: Optional[str]) -> OfficerRole:
    """Collapse the registry's officer role codes onto OfficerRole."""
    role = (officer_role or "").lower()
    if "director" in role:
        return OfficerRole.DIRECTOR
    if "secretary" in role:
        return OfficerRole.SECRETARY
    if "trustee" in role:
        return OfficerRole.TRUSTEE
    if "shareholder" in role:
        return OfficerRole.SHAREHOLDER
    return OfficerRole.OTHER


def ownership_from_natures(natures_of_control: list[str]) -> Optional[float]:
    """
    Lower bound of the shareholding implied by natures-of-control codes.

    "ownership-of-shares-25-to-50-percent" -> 25.0
    """
    best: Optional[float] = None
    for nature in natures_of_control:
        match = _OWNERSHIP_RANGE.search(nature) or _OWNERSHIP_MORE_THAN.search(nature)
        if match:
            value = float(match.group(1))
            if best is None or value > best:
                best = value
    return best


def _birth(dob: Optional[RegistryDateOfBirth]) -> tuple[Optional[int], Optional[int]]:
    if dob is None:
        return None, None
    return dob.year, dob.month


def _address(address: Optional[RegistryAddress]) -> tuple[Optional[str], Optional[str]]:
    if address is None:
        return None, None
    return address.format() or None, address.postal_code


def company_from_registry(company: RegistryCompany, synced_at: datetime) -> CompanyRecord:
    """Full company record from a registry company profile."""
    address, postal_code = _address(company.registered_office_address)
    return CompanyRecord(
        company_number=normalize_company_number(company.company_number),
        name=company.company_name,
        status=map_company_status(company.company_status),
        company_type=map_company_type(company.company_type),
        incorporation_date=company.date_of_creation,
        dissolution_date=company.date_of_dissolution,
        jurisdiction=company.jurisdiction,
        registered_address=address,
        postal_code=postal_code,
        sic_codes=company.sic_codes,
        last_synced_at=synced_at,
    )


def appointment_from_officer(
    company_number: str,
    officer: RegistryOfficer,
    include_birth_date: bool = True,
) -> AppointmentRecord:
    birth_year, birth_month = _birth(officer.date_of_birth)
    address, postal_code = _address(officer.address)
    person = PersonRecord(
        person_key=make_person_key(officer.name, birth_year, birth_month, include_birth_date),
        full_name=officer.name,
        birth_year=birth_year,
        birth_month=birth_month,
        nationality=officer.nationality,
        address=address,
        postal_code=postal_code,
    )
    return AppointmentRecord(
        company_number=company_number,
        person=person,
        role=map_officer_role(officer.officer_role),
        appointed_on=officer.appointed_on,
        resigned_on=officer.resigned_on,
    )


def appointment_from_controller(
    company_number: str,
    controller: RegistryControllingPerson,
    include_birth_date: bool = True,
) -> AppointmentRecord:
    birth_year, birth_month = _birth(controller.date_of_birth)
    address, postal_code = _address(controller.address)
    name = controller.display_name
    person = PersonRecord(
        person_key=make_person_key(name, birth_year, birth_month, include_birth_date),
        full_name=name,
        birth_year=birth_year,
        birth_month=birth_month,
        nationality=controller.nationality,
        address=address,
        postal_code=postal_code,
    )
    return AppointmentRecord(
        company_number=company_number,
        person=person,
        role=OfficerRole.PERSON_OF_SIGNIFICANT_CONTROL,
        appointed_on=controller.notified_on,
        resigned_on=controller.ceased_on,
        natures_of_control=controller.natures_of_control,
    )


def relationship_from_controller(
    company_number: str,
    controller: RegistryControllingPerson,
) -> Optional[RelationshipRecord]:
    """
    Company-to-company control link for a corporate controller.

    Only produced when the controller publishes a registration number that
    normalizes to a valid company number. Controllers registered outside the
    UK get a lower confidence since their number may belong to another
    registry.
    """
    if not controller.is_corporate or controller.identification is None:
        return None
    registration_number = controller.identification.registration_number
    if not registration_number:
        return None
    try:
        parent_number = normalize_company_number(registration_number)
    except ValidationError:
        logger.debug(f"Skipping controller with unusable registration number {registration_number!r}")
        return None
    if parent_number == company_number:
        return None

    country = (controller.identification.country_registered or "").strip().lower()
    place = (controller.identification.place_registered or "").lower()
    in_uk_registry = country in UK_REGISTRIES or "companies house" in place

    return RelationshipRecord(
        from_company_number=parent_number,
        to_company_number=company_number,
        relationship_type="controls",
        from_company_name=controller.display_name,
        ownership_percentage=ownership_from_natures(controller.natures_of_control),
        confidence_score=1.0 if in_uk_registry else 0.5,
    )


def candidate_from_search_item(item: RegistrySearchItem) -> SearchCandidate:
    return SearchCandidate(
        company_number=normalize_company_number(item.company_number),
        name=item.title,
        status=map_company_status(item.company_status),
        company_type=map_company_type(item.company_type),
        incorporation_date=item.date_of_creation,
        registered_address=item.address_snippet,
        source=CandidateSource.REGISTRY,
    )


def candidate_from_company(company: CompanyRecord, rank: Optional[int] = None) -> SearchCandidate:
    return SearchCandidate(
        company_number=company.company_number,
        name=company.name,
        status=company.status,
        company_type=company.company_type,
        incorporation_date=company.incorporation_date,
        registered_address=company.registered_address,
        source=CandidateSource.LOCAL,
        rank=rank,
    )


def stub_from_candidate(candidate: SearchCandidate) -> CompanyRecord:
    """Unsynchronized company row for a search hit; never counts as fresh."""
    return CompanyRecord(
        company_number=candidate.company_number,
        name=candidate.name,
        status=candidate.status,
        company_type=candidate.company_type,
        incorporation_date=candidate.incorporation_date,
        registered_address=candidate.registered_address,
        last_synced_at=None,
    )
