"""
Database repositories for data access layer.

Writes are upserts keyed by natural key, so replaying the same registry
fetch never creates duplicate rows. The conflict clauses use the dialect's
own insert construct (PostgreSQL in production, SQLite in tests).
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import case, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from nexus.db.orm import (
    Appointment,
    Company,
    CompanyRelationship,
    Person,
    SearchQuery,
    utcnow,
)
from nexus.schemas.records import AppointmentRecord, CompanyRecord, PersonRecord, RelationshipRecord
from nexus.sync.normalize import is_valid_company_number, normalize_company_number, normalize_person_name

logger = logging.getLogger(__name__)


def dialect_insert(session: AsyncSession, model):
    """Insert construct supporting ON CONFLICT for the session's dialect."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"Upserts not supported for dialect {dialect!r}")


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so user input matches literally."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class CompanyRepository:
    """Repository for Company rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_number(self, company_number: str) -> Optional[Company]:
        result = await self.session.execute(
            select(Company).where(Company.company_number == company_number)
        )
        return result.scalar_one_or_none()

    async def get_id(self, company_number: str) -> Optional[UUID]:
        result = await self.session.execute(
            select(Company.id).where(Company.company_number == company_number)
        )
        return result.scalar_one_or_none()

    async def upsert(self, record: CompanyRecord) -> UUID:
        """Insert or fully overwrite a company, keyed by company number."""
        values = {
            "company_number": record.company_number,
            "name": record.name,
            "status": record.status,
            "company_type": record.company_type,
            "incorporation_date": record.incorporation_date,
            "dissolution_date": record.dissolution_date,
            "jurisdiction": record.jurisdiction,
            "registered_address": record.registered_address,
            "postal_code": record.postal_code,
            "sic_codes": list(record.sic_codes),
            "last_synced_at": record.last_synced_at,
            "officers_synced_at": record.officers_synced_at,
            "controllers_synced_at": record.controllers_synced_at,
        }
        stmt = dialect_insert(self.session, Company).values(**values)
        overwrite = {k: stmt.excluded[k] for k in values if k != "company_number"}
        overwrite["updated_at"] = utcnow()
        stmt = stmt.on_conflict_do_update(
            index_elements=[Company.company_number],
            set_=overwrite,
        ).returning(Company.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def ensure_stub(self, record: CompanyRecord) -> UUID:
        """
        Insert a company only if its number is unknown.

        Existing rows are left untouched, so a shallow record can neither
        overwrite detailed attributes nor refresh last_synced_at.
        """
        stmt = (
            dialect_insert(self.session, Company)
            .values(
                company_number=record.company_number,
                name=record.name,
                status=record.status,
                company_type=record.company_type,
                incorporation_date=record.incorporation_date,
                registered_address=record.registered_address,
                sic_codes=list(record.sic_codes),
                last_synced_at=None,
            )
            .on_conflict_do_nothing(index_elements=[Company.company_number])
        )
        await self.session.execute(stmt)
        company_id = await self.get_id(record.company_number)
        return company_id

    async def search(self, term: str, limit: int = 20) -> list[Company]:
        """
        Case-insensitive substring search on name or company number.

        Exact number matches and name-prefix matches rank first, then
        everything is ordered alphabetically by name.
        """
        escaped = escape_like(term.lower())
        contains = f"%{escaped}%"
        prefix = f"{escaped}%"
        number_contains = f"%{escape_like(term.upper())}%"

        exact_number = (
            normalize_company_number(term) if is_valid_company_number(term) else term.upper()
        )
        rank = case(
            (Company.company_number == exact_number, 0),
            (func.lower(Company.name).like(prefix, escape="\\"), 0),
            else_=1,
        )

        stmt = (
            select(Company)
            .where(
                or_(
                    func.lower(Company.name).like(contains, escape="\\"),
                    Company.company_number.like(number_contains, escape="\\"),
                    Company.company_number == exact_number,
                )
            )
            .order_by(rank, func.lower(Company.name), Company.company_number)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count(self) -> int:
        result = await self.session.execute(select(func.count(Company.id)))
        return result.scalar_one()


class PersonRepository:
    """Repository for Person rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_key(self, person_key: str) -> Optional[Person]:
        result = await self.session.execute(
            select(Person).where(Person.person_key == person_key)
        )
        return result.scalar_one_or_none()

    async def upsert(self, record: PersonRecord) -> UUID:
        """Insert or fully overwrite a person, keyed by person key."""
        values = {
            "person_key": record.person_key,
            "full_name": record.full_name,
            "normalized_name": normalize_person_name(record.full_name),
            "birth_month": record.birth_month,
            "birth_year": record.birth_year,
            "nationality": record.nationality,
            "address": record.address,
            "postal_code": record.postal_code,
        }
        stmt = dialect_insert(self.session, Person).values(**values)
        overwrite = {k: stmt.excluded[k] for k in values if k != "person_key"}
        overwrite["updated_at"] = utcnow()
        stmt = stmt.on_conflict_do_update(
            index_elements=[Person.person_key],
            set_=overwrite,
        ).returning(Person.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()


class AppointmentRepository:
    """Repository for officer and controller appointments."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert_if_absent(
        self,
        record: AppointmentRecord,
        company_id: UUID,
        person_id: UUID,
    ) -> None:
        """Record an appointment; an existing one with the same key is kept as is."""
        stmt = (
            dialect_insert(self.session, Appointment)
            .values(
                appointment_key=record.appointment_key,
                company_id=company_id,
                person_id=person_id,
                role=record.role,
                appointed_on=record.appointed_on,
                resigned_on=record.resigned_on,
                natures_of_control=list(record.natures_of_control),
            )
            .on_conflict_do_nothing(index_elements=[Appointment.appointment_key])
        )
        await self.session.execute(stmt)

    async def list_for_company(self, company_id: UUID) -> list[tuple[Appointment, Person]]:
        """Appointments with their persons, active first then by start date."""
        stmt = (
            select(Appointment, Person)
            .join(Person, Appointment.person_id == Person.id)
            .where(Appointment.company_id == company_id)
            .order_by(
                Appointment.resigned_on.is_not(None),
                Appointment.appointed_on.desc(),
                Person.normalized_name,
            )
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1]) for row in result.all()]

    async def count_for_company(self, company_id: UUID) -> int:
        result = await self.session.execute(
            select(func.count(Appointment.id)).where(Appointment.company_id == company_id)
        )
        return result.scalar_one()


class RelationshipRepository:
    """Repository for company-to-company relationships."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def upsert(
        self,
        record: RelationshipRecord,
        from_company_id: UUID,
        to_company_id: UUID,
    ) -> UUID:
        """Insert or overwrite percentage and confidence, keyed by (from, to, type)."""
        stmt = dialect_insert(self.session, CompanyRelationship).values(
            from_company_id=from_company_id,
            to_company_id=to_company_id,
            relationship_type=record.relationship_type,
            ownership_percentage=record.ownership_percentage,
            confidence_score=record.confidence_score,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[
                CompanyRelationship.from_company_id,
                CompanyRelationship.to_company_id,
                CompanyRelationship.relationship_type,
            ],
            set_={
                "ownership_percentage": stmt.excluded.ownership_percentage,
                "confidence_score": stmt.excluded.confidence_score,
                "updated_at": utcnow(),
            },
        ).returning(CompanyRelationship.id)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def list_for_company(self, company_id: UUID) -> list[tuple[CompanyRelationship, str, str]]:
        """Relationships touching a company, as (row, from number, to number)."""
        from_company = select(Company.company_number).where(
            Company.id == CompanyRelationship.from_company_id
        ).scalar_subquery()
        to_company = select(Company.company_number).where(
            Company.id == CompanyRelationship.to_company_id
        ).scalar_subquery()
        stmt = (
            select(CompanyRelationship, from_company, to_company)
            .where(
                or_(
                    CompanyRelationship.from_company_id == company_id,
                    CompanyRelationship.to_company_id == company_id,
                )
            )
            .order_by(CompanyRelationship.relationship_type, CompanyRelationship.created_at)
        )
        result = await self.session.execute(stmt)
        return [(row[0], row[1], row[2]) for row in result.all()]


class SearchQueryRepository:
    """Repository for the usage log behind daily quotas."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        caller_id: str,
        query_text: str,
        query_type: str,
        created_at: Optional[datetime] = None,
        results_count: Optional[int] = None,
        execution_time_ms: Optional[int] = None,
    ) -> SearchQuery:
        entry = SearchQuery(
            caller_id=caller_id,
            query_text=query_text,
            query_type=query_type,
            results_count=results_count,
            execution_time_ms=execution_time_ms,
            created_at=created_at or utcnow(),
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def complete(
        self,
        usage_id: UUID,
        results_count: int,
        execution_time_ms: Optional[int] = None,
    ) -> Optional[SearchQuery]:
        entry = await self.session.get(SearchQuery, usage_id)
        if entry is None:
            return None
        entry.results_count = results_count
        entry.execution_time_ms = execution_time_ms
        await self.session.flush()
        return entry

    async def count_since(self, caller_id: str, since: datetime) -> int:
        result = await self.session.execute(
            select(func.count(SearchQuery.id)).where(
                SearchQuery.caller_id == caller_id,
                SearchQuery.created_at >= since,
            )
        )
        return result.scalar_one()
