"""
Cache store backed by the relational database.

Each public operation runs in its own session and transaction, so a failed
write-back never leaves a half-written profile behind and never poisons the
session used by another request.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nexus.db.orm import Appointment, Person
from nexus.db.repositories import (
    AppointmentRepository,
    CompanyRepository,
    PersonRepository,
    RelationshipRepository,
)
from nexus.errors import NotFoundError
from nexus.schemas.records import (
    AppointmentRecord,
    CandidateSource,
    CompanyDetails,
    CompanyRecord,
    OfficerRole,
    PersonRecord,
    RelationshipRecord,
    SearchCandidate,
)
from nexus.sync.mapping import candidate_from_company, stub_from_candidate

logger = logging.getLogger(__name__)


def _appointment_record(company_number: str, appointment: Appointment, person: Person) -> AppointmentRecord:
    return AppointmentRecord(
        company_number=company_number,
        person=PersonRecord.model_validate(person),
        role=appointment.role,
        appointed_on=appointment.appointed_on,
        resigned_on=appointment.resigned_on,
        natures_of_control=appointment.natures_of_control or [],
    )


class CacheStore:
    """
    Idempotent access to cached companies, persons and appointments.

    Writes are keyed by natural key: replaying the same registry fetch leaves
    the same rows behind.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def get_company(self, company_number: str) -> Optional[CompanyRecord]:
        async with self._transaction() as session:
            company = await CompanyRepository(session).get_by_number(company_number)
            if company is None:
                return None
            return CompanyRecord.model_validate(company)

    async def get_profile(self, company_number: str) -> Optional[CompanyDetails]:
        """
        Cached company with its appointments and relationships.

        Controllers are appointments with the significant-control role; every
        other role is listed under officers.
        """
        async with self._transaction() as session:
            company = await CompanyRepository(session).get_by_number(company_number)
            if company is None:
                return None

            officers = []
            controllers = []
            rows = await AppointmentRepository(session).list_for_company(company.id)
            for appointment, person in rows:
                record = _appointment_record(company_number, appointment, person)
                if record.role == OfficerRole.PERSON_OF_SIGNIFICANT_CONTROL:
                    controllers.append(record)
                else:
                    officers.append(record)

            relationships = [
                RelationshipRecord(
                    from_company_number=from_number,
                    to_company_number=to_number,
                    relationship_type=link.relationship_type,
                    ownership_percentage=link.ownership_percentage,
                    confidence_score=link.confidence_score,
                )
                for link, from_number, to_number in await RelationshipRepository(
                    session
                ).list_for_company(company.id)
            ]

            return CompanyDetails(
                company=CompanyRecord.model_validate(company),
                officers=officers,
                controllers=controllers,
                relationships=relationships,
                source=CandidateSource.LOCAL,
            )

    async def upsert_company(self, record: CompanyRecord) -> UUID:
        async with self._transaction() as session:
            return await CompanyRepository(session).upsert(record)

    async def upsert_person(self, record: PersonRecord) -> UUID:
        async with self._transaction() as session:
            return await PersonRepository(session).upsert(record)

    async def upsert_appointment(self, record: AppointmentRecord) -> None:
        """
        Record an appointment; a known appointment key is a no-op.

        The company must already be cached. The person is upserted first.
        """
        async with self._transaction() as session:
            company_id = await CompanyRepository(session).get_id(record.company_number)
            if company_id is None:
                raise NotFoundError(
                    record.company_number, f"Company {record.company_number} is not cached"
                )
            person_id = await PersonRepository(session).upsert(record.person)
            await AppointmentRepository(session).insert_if_absent(record, company_id, person_id)

    async def upsert_relationship(self, record: RelationshipRecord) -> UUID:
        async with self._transaction() as session:
            return await self._upsert_relationship(session, record, {})

    async def _company_id_or_stub(
        self,
        session: AsyncSession,
        company_number: str,
        name: Optional[str],
        known: dict[str, UUID],
    ) -> UUID:
        if company_number in known:
            return known[company_number]
        stub = CompanyRecord(company_number=company_number, name=name or company_number)
        company_id = await CompanyRepository(session).ensure_stub(stub)
        known[company_number] = company_id
        return company_id

    async def _upsert_relationship(
        self,
        session: AsyncSession,
        record: RelationshipRecord,
        known: dict[str, UUID],
    ) -> UUID:
        from_id = await self._company_id_or_stub(
            session, record.from_company_number, record.from_company_name, known
        )
        to_id = await self._company_id_or_stub(session, record.to_company_number, None, known)
        return await RelationshipRepository(session).upsert(record, from_id, to_id)

    async def store_profile(
        self,
        company: CompanyRecord,
        appointments: Iterable[AppointmentRecord] = (),
        relationships: Iterable[RelationshipRecord] = (),
    ) -> None:
        """Write a fetched company with its appointments in one transaction."""
        async with self._transaction() as session:
            company_id = await CompanyRepository(session).upsert(company)
            known = {company.company_number: company_id}

            persons = PersonRepository(session)
            appointment_repo = AppointmentRepository(session)
            for appointment in appointments:
                person_id = await persons.upsert(appointment.person)
                await appointment_repo.insert_if_absent(appointment, company_id, person_id)

            for relationship in relationships:
                await self._upsert_relationship(session, relationship, known)

        logger.debug(f"Stored profile for {company.company_number}")

    async def cache_candidates(self, candidates: Iterable[SearchCandidate]) -> int:
        """
        Insert registry search hits that are not cached yet.

        Existing rows are never touched. Returns the number of candidates seen.
        """
        count = 0
        async with self._transaction() as session:
            companies = CompanyRepository(session)
            for candidate in candidates:
                if candidate.source != CandidateSource.REGISTRY:
                    continue
                await companies.ensure_stub(stub_from_candidate(candidate))
                count += 1
        return count

    async def search(self, term: str, limit: int = 20) -> list[SearchCandidate]:
        async with self._transaction() as session:
            companies = await CompanyRepository(session).search(term, limit)
            return [
                candidate_from_company(CompanyRecord.model_validate(company), rank=index)
                for index, company in enumerate(companies)
            ]

    async def ping(self) -> bool:
        async with self._transaction() as session:
            await session.execute(text("SELECT 1"))
        return True
