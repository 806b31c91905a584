"""
Pydantic schemas for registry payloads and domain records.
"""

from nexus.schemas.records import (
    AppointmentRecord,
    CandidateSource,
    CompanyDetails,
    CompanyRecord,
    CompanyStatus,
    CompanyType,
    OfficerRole,
    PersonRecord,
    RelationshipRecord,
    RiskFactor,
    RiskSummary,
    SearchCandidate,
    SearchResult,
    SourcePreference,
)
from nexus.schemas.registry import (
    RegistryAddress,
    RegistryCompany,
    RegistryControllingPerson,
    RegistryOfficer,
    RegistryProfile,
    RegistrySearchItem,
    SubFetch,
)

__all__ = [
    # Domain records
    "AppointmentRecord",
    "CandidateSource",
    "CompanyDetails",
    "CompanyRecord",
    "CompanyStatus",
    "CompanyType",
    "OfficerRole",
    "PersonRecord",
    "RelationshipRecord",
    "RiskFactor",
    "RiskSummary",
    "SearchCandidate",
    "SearchResult",
    "SourcePreference",
    # Registry payloads
    "RegistryAddress",
    "RegistryCompany",
    "RegistryControllingPerson",
    "RegistryOfficer",
    "RegistryProfile",
    "RegistrySearchItem",
    "SubFetch",
]
