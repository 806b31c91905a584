"""
Database module for Nexus.
"""

from nexus.db.orm import (
    Appointment,
    Base,
    Company,
    CompanyRelationship,
    Person,
    SearchQuery,
)

__all__ = [
    "Base",
    "Company",
    "Person",
    "Appointment",
    "CompanyRelationship",
    "SearchQuery",
]
