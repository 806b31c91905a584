"""
SQLAlchemy database models for Nexus.

Relational cache of registry data:
- Companies keyed by registry company number
- Persons keyed by normalized name (plus birth year/month when known)
- Officer and controller appointments linking the two
- Company-to-company control relationships
- Search query log used for daily quota accounting

Timestamps are stored as naive UTC.
"""

import uuid
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from nexus.schemas.records import CompanyStatus, CompanyType, OfficerRole


def utcnow() -> datetime:
    """Current time as naive UTC, matching what the columns store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


JSONList = JSON().with_variant(JSONB(), "postgresql")


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Company(Base):
    """
    Company as last fetched from the registry.

    last_synced_at is NULL for stubs created from search hits or control
    relationships; those never count as fresh.
    officers_synced_at and controllers_synced_at record when each part of
    the profile last arrived, so a company-only fetch does not make a full
    profile look fresh.
    """

    __tablename__ = "companies"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    company_number: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    status: Mapped[CompanyStatus] = mapped_column(
        SQLEnum(CompanyStatus, name="company_status", values_callable=_enum_values),
        default=CompanyStatus.UNKNOWN,
        nullable=False,
    )
    company_type: Mapped[CompanyType] = mapped_column(
        SQLEnum(CompanyType, name="company_type", values_callable=_enum_values),
        default=CompanyType.OTHER,
        nullable=False,
    )
    incorporation_date: Mapped[Optional[date]] = mapped_column(Date)
    dissolution_date: Mapped[Optional[date]] = mapped_column(Date)
    jurisdiction: Mapped[Optional[str]] = mapped_column(String(100))
    registered_address: Mapped[Optional[str]] = mapped_column(Text)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    sic_codes: Mapped[list] = mapped_column(JSONList, default=list)

    # Sync
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    officers_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    controllers_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment", back_populates="company"
    )

    __table_args__ = (
        Index("idx_companies_name", "name"),
        Index("idx_companies_status", "status"),
        Index("idx_companies_last_synced", "last_synced_at"),
    )

    def __repr__(self) -> str:
        return f"<Company {self.company_number} {self.name!r}>"


class Person(Base):
    """Officer or controller, de-duplicated across companies by person_key."""

    __tablename__ = "persons"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    person_key: Mapped[str] = mapped_column(String(600), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(500), nullable=False)
    normalized_name: Mapped[str] = mapped_column(String(500), nullable=False)
    birth_month: Mapped[Optional[int]] = mapped_column(Integer)
    birth_year: Mapped[Optional[int]] = mapped_column(Integer)
    nationality: Mapped[Optional[str]] = mapped_column(String(100))
    address: Mapped[Optional[str]] = mapped_column(Text)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment", back_populates="person"
    )

    __table_args__ = (
        Index("idx_persons_normalized_name", "normalized_name"),
        CheckConstraint(
            "birth_month IS NULL OR (birth_month >= 1 AND birth_month <= 12)",
            name="ck_persons_birth_month",
        ),
    )


class Appointment(Base):
    """
    A person's role at a company.

    appointment_key is company number, person key, role and start date joined
    together; it is unique even when the start date is unknown, so re-fetching
    the same appointment never duplicates it.
    """

    __tablename__ = "company_officers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    appointment_key: Mapped[str] = mapped_column(String(700), unique=True, nullable=False)
    company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    person_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("persons.id", ondelete="CASCADE"), nullable=False
    )
    role: Mapped[OfficerRole] = mapped_column(
        SQLEnum(OfficerRole, name="officer_role", values_callable=_enum_values),
        nullable=False,
    )
    appointed_on: Mapped[Optional[date]] = mapped_column(Date)
    resigned_on: Mapped[Optional[date]] = mapped_column(Date)
    natures_of_control: Mapped[list] = mapped_column(JSONList, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    company: Mapped["Company"] = relationship("Company", back_populates="appointments")
    person: Mapped["Person"] = relationship("Person", back_populates="appointments")

    __table_args__ = (
        Index("idx_company_officers_company", "company_id"),
        Index("idx_company_officers_person", "person_id"),
        Index("idx_company_officers_active", "company_id", "resigned_on"),
    )

    @property
    def is_active(self) -> bool:
        return self.resigned_on is None


class CompanyRelationship(Base):
    """Directed link between two companies, e.g. corporate control."""

    __tablename__ = "company_relationships"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    from_company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    to_company_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("companies.id", ondelete="CASCADE"), nullable=False
    )
    relationship_type: Mapped[str] = mapped_column(String(50), nullable=False)
    ownership_percentage: Mapped[Optional[float]] = mapped_column(Float)
    confidence_score: Mapped[float] = mapped_column(Float, default=1.0, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    from_company: Mapped["Company"] = relationship("Company", foreign_keys=[from_company_id])
    to_company: Mapped["Company"] = relationship("Company", foreign_keys=[to_company_id])

    __table_args__ = (
        UniqueConstraint(
            "from_company_id",
            "to_company_id",
            "relationship_type",
            name="uq_company_relationships_link",
        ),
        CheckConstraint(
            "ownership_percentage IS NULL OR "
            "(ownership_percentage >= 0 AND ownership_percentage <= 100)",
            name="ck_company_relationships_ownership",
        ),
        CheckConstraint(
            "confidence_score >= 0 AND confidence_score <= 1",
            name="ck_company_relationships_confidence",
        ),
        Index("idx_company_relationships_from", "from_company_id"),
        Index("idx_company_relationships_to", "to_company_id"),
    )


class SearchQuery(Base):
    """
    Usage log: one row per admitted request.

    Rows since UTC midnight count against the caller's daily ceiling.
    """

    __tablename__ = "search_queries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    caller_id: Mapped[str] = mapped_column(String(255), nullable=False)
    query_text: Mapped[str] = mapped_column(Text, nullable=False)
    query_type: Mapped[str] = mapped_column(String(50), nullable=False)
    results_count: Mapped[Optional[int]] = mapped_column(Integer)
    execution_time_ms: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_search_queries_caller_created", "caller_id", "created_at"),
    )
