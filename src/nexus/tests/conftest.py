"""
Pytest configuration and shared fixtures for Nexus tests.
"""

from datetime import date, datetime, timedelta
from typing import Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from nexus.cache.store import CacheStore
from nexus.db.orm import Base
from nexus.errors import UpstreamError
from nexus.ingestion.base_adapter import BaseRegistryAdapter
from nexus.schemas.records import CandidateSource, CompanyStatus, SearchCandidate
from nexus.schemas.registry import (
    RegistryAddress,
    RegistryCompany,
    RegistryControllingPerson,
    RegistryDateOfBirth,
    RegistryIdentification,
    RegistryOfficer,
)


class FixedClock:
    """Settable UTC clock for freshness and quota tests."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeRegistry(BaseRegistryAdapter):
    """
    In-memory registry adapter.

    Failures are configured per company number and call kind; every call is
    recorded so tests can assert whether the registry was consulted.
    """

    def __init__(self):
        self.companies: dict[str, RegistryCompany] = {}
        self.officers: dict[str, list[RegistryOfficer]] = {}
        self.controllers: dict[str, list[RegistryControllingPerson]] = {}
        self.search_results: list[SearchCandidate] = []
        self.failures: dict[tuple[str, str], UpstreamError] = {}
        self.search_failure: Optional[UpstreamError] = None
        self.calls: list[tuple[str, str]] = []

    @property
    def source_name(self) -> str:
        return "fake_registry"

    def add_company(
        self,
        number: str,
        name: str,
        status: str = "active",
        company_type: str = "ltd",
        created: Optional[date] = date(2015, 3, 1),
        sic_codes: Optional[list[str]] = None,
    ) -> RegistryCompany:
        company = RegistryCompany(
            company_number=number,
            company_name=name,
            company_status=status,
            company_type=company_type,
            date_of_creation=created,
            registered_office_address=RegistryAddress(
                address_line_1="1 High Street", locality="London", postal_code="EC1A 1AA"
            ),
            sic_codes=sic_codes or ["62020"],
            jurisdiction="england-wales",
        )
        self.companies[number] = company
        return company

    def add_officer(
        self,
        number: str,
        name: str,
        role: str = "director",
        appointed_on: Optional[date] = date(2015, 3, 1),
        resigned_on: Optional[date] = None,
        birth: Optional[tuple[int, int]] = (1980, 5),
    ) -> RegistryOfficer:
        officer = RegistryOfficer(
            name=name,
            officer_role=role,
            appointed_on=appointed_on,
            resigned_on=resigned_on,
            date_of_birth=RegistryDateOfBirth(year=birth[0], month=birth[1]) if birth else None,
            nationality="British",
        )
        self.officers.setdefault(number, []).append(officer)
        return officer

    def add_corporate_controller(
        self,
        number: str,
        name: str,
        registration_number: str,
        country: str = "England",
        natures: Optional[list[str]] = None,
    ) -> RegistryControllingPerson:
        controller = RegistryControllingPerson(
            name=name,
            kind="corporate-entity-person-with-significant-control",
            natures_of_control=natures or ["ownership-of-shares-75-to-100-percent"],
            notified_on=date(2016, 4, 6),
            identification=RegistryIdentification(
                registration_number=registration_number,
                country_registered=country,
            ),
        )
        self.controllers.setdefault(number, []).append(controller)
        return controller

    def fail(self, number: str, kind: str, status_code: Optional[int] = 503) -> None:
        self.failures[(kind, number)] = UpstreamError(
            f"Registry returned HTTP {status_code}", status_code=status_code
        )

    def _check(self, kind: str, number: str) -> None:
        self.calls.append((kind, number))
        error = self.failures.get((kind, number))
        if error is not None:
            raise error

    async def search(self, query: str, limit: int = 20) -> list[SearchCandidate]:
        self.calls.append(("search", query))
        if self.search_failure is not None:
            raise self.search_failure
        return self.search_results[:limit]

    async def fetch_company(self, company_number: str) -> Optional[RegistryCompany]:
        self._check("company", company_number)
        return self.companies.get(company_number)

    async def fetch_officers(self, company_number: str) -> list[RegistryOfficer]:
        self._check("officers", company_number)
        return list(self.officers.get(company_number, []))

    async def fetch_controllers(self, company_number: str) -> list[RegistryControllingPerson]:
        self._check("controllers", company_number)
        return list(self.controllers.get(company_number, []))

    def fetch_count(self, kind: str = "company") -> int:
        return sum(1 for k, _ in self.calls if k == kind)


def registry_candidate(number: str, name: str) -> SearchCandidate:
    return SearchCandidate(
        company_number=number,
        name=name,
        status=CompanyStatus.ACTIVE,
        source=CandidateSource.REGISTRY,
    )


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine with the full schema."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def store(session_factory) -> CacheStore:
    return CacheStore(session_factory)


@pytest.fixture
def registry() -> FakeRegistry:
    return FakeRegistry()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 3, 10, 12, 0, 0))


@pytest.fixture
def make_candidate():
    """Factory for registry-sourced search candidates."""
    return registry_candidate
