"""
Tests for the cache store.

Tests:
- Idempotent company and person upserts
- Appointment de-duplication, including unknown start dates
- Relationship upserts with stub endpoints
- Search ranking and wildcard escaping
- Candidate write-back never overwrites cached rows
"""

from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from nexus.db.orm import Appointment, Company, CompanyRelationship, Person
from nexus.errors import NotFoundError
from nexus.schemas.records import (
    AppointmentRecord,
    CandidateSource,
    CompanyRecord,
    CompanyStatus,
    OfficerRole,
    PersonRecord,
    RelationshipRecord,
    SearchCandidate,
)

SYNCED = datetime(2026, 3, 1, 9, 0, 0)


def company(number: str, name: str, **kwargs) -> CompanyRecord:
    return CompanyRecord(
        company_number=number,
        name=name,
        status=kwargs.pop("status", CompanyStatus.ACTIVE),
        last_synced_at=kwargs.pop("last_synced_at", SYNCED),
        **kwargs,
    )


def appointment(number: str, person_name: str, appointed_on=date(2015, 3, 1), **kwargs) -> AppointmentRecord:
    return AppointmentRecord(
        company_number=number,
        person=PersonRecord(person_key=person_name.lower(), full_name=person_name),
        role=kwargs.pop("role", OfficerRole.DIRECTOR),
        appointed_on=appointed_on,
        **kwargs,
    )


async def count(session_factory, model) -> int:
    async with session_factory() as session:
        result = await session.execute(select(func.count()).select_from(model))
        return result.scalar_one()


class TestCompanyUpsert:
    """Tests for company upserts."""

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store, session_factory):
        record = company("12345678", "TechCorp Limited", sic_codes=["62020"])

        first = await store.upsert_company(record)
        second = await store.upsert_company(record)

        assert first == second
        assert await count(session_factory, Company) == 1

    @pytest.mark.asyncio
    async def test_upsert_overwrites_all_attributes(self, store):
        await store.upsert_company(
            company("12345678", "TechCorp Limited", postal_code="EC1A 1AA", sic_codes=["62020"])
        )
        await store.upsert_company(
            company("12345678", "TechCorp Group Limited", status=CompanyStatus.DISSOLVED)
        )

        cached = await store.get_company("12345678")
        assert cached.name == "TechCorp Group Limited"
        assert cached.status == CompanyStatus.DISSOLVED
        assert cached.postal_code is None
        assert cached.sic_codes == []

    @pytest.mark.asyncio
    async def test_sic_codes_stored_as_sorted_set(self, store):
        await store.upsert_company(company("12345678", "TechCorp", sic_codes=["62020", "62012", "62020"]))

        cached = await store.get_company("12345678")
        assert cached.sic_codes == ["62012", "62020"]

    @pytest.mark.asyncio
    async def test_unknown_company(self, store):
        assert await store.get_company("00000000") is None
        assert await store.get_profile("00000000") is None


class TestAppointments:
    """Tests for appointment writes."""

    @pytest.mark.asyncio
    async def test_replaying_profile_creates_no_duplicates(self, store, session_factory):
        record = company("12345678", "TechCorp Limited")
        appointments = [
            appointment("12345678", "Jane Smith"),
            appointment("12345678", "Bob Jones", role=OfficerRole.SECRETARY),
        ]

        await store.store_profile(record, appointments)
        await store.store_profile(record, appointments)

        assert await count(session_factory, Company) == 1
        assert await count(session_factory, Person) == 2
        assert await count(session_factory, Appointment) == 2

    @pytest.mark.asyncio
    async def test_null_start_date_still_deduplicates(self, store, session_factory):
        await store.upsert_company(company("12345678", "TechCorp Limited"))
        record = appointment("12345678", "Jane Smith", appointed_on=None)

        await store.upsert_appointment(record)
        await store.upsert_appointment(record)

        assert await count(session_factory, Appointment) == 1

    @pytest.mark.asyncio
    async def test_existing_appointment_is_not_overwritten(self, store):
        await store.upsert_company(company("12345678", "TechCorp Limited"))
        await store.upsert_appointment(appointment("12345678", "Jane Smith"))
        await store.upsert_appointment(
            appointment("12345678", "Jane Smith", resigned_on=date(2020, 1, 1))
        )

        profile = await store.get_profile("12345678")
        assert len(profile.officers) == 1
        assert profile.officers[0].resigned_on is None

    @pytest.mark.asyncio
    async def test_same_person_across_companies(self, store, session_factory):
        await store.store_profile(company("11111111", "Alpha Ltd"), [appointment("11111111", "Jane Smith")])
        await store.store_profile(company("22222222", "Beta Ltd"), [appointment("22222222", "Jane Smith")])

        assert await count(session_factory, Person) == 1
        assert await count(session_factory, Appointment) == 2

    @pytest.mark.asyncio
    async def test_profile_splits_officers_and_controllers(self, store):
        await store.store_profile(
            company("12345678", "TechCorp Limited"),
            [
                appointment("12345678", "Jane Smith"),
                appointment(
                    "12345678",
                    "Holdco Limited",
                    appointed_on=date(2016, 4, 6),
                    role=OfficerRole.PERSON_OF_SIGNIFICANT_CONTROL,
                    natures_of_control=["ownership-of-shares-75-to-100-percent"],
                ),
            ],
        )

        profile = await store.get_profile("12345678")
        assert profile.source == CandidateSource.LOCAL
        assert [o.person.full_name for o in profile.officers] == ["Jane Smith"]
        assert [c.person.full_name for c in profile.controllers] == ["Holdco Limited"]
        assert profile.controllers[0].natures_of_control == ["ownership-of-shares-75-to-100-percent"]

    @pytest.mark.asyncio
    async def test_appointment_requires_cached_company(self, store):
        with pytest.raises(NotFoundError):
            await store.upsert_appointment(appointment("12345678", "Jane Smith"))


class TestPersons:

    @pytest.mark.asyncio
    async def test_person_upsert_overwrites(self, store, session_factory):
        first = await store.upsert_person(
            PersonRecord(person_key="jane smith|1980-05", full_name="Jane Smith", nationality="British")
        )
        second = await store.upsert_person(
            PersonRecord(person_key="jane smith|1980-05", full_name="Jane  SMITH", nationality="Irish")
        )

        assert first == second
        async with session_factory() as session:
            person = (await session.execute(select(Person))).scalar_one()
        assert person.nationality == "Irish"
        assert person.normalized_name == "jane smith"


class TestRelationships:
    """Tests for company-to-company links."""

    @pytest.mark.asyncio
    async def test_missing_parent_created_as_stub(self, store):
        link = RelationshipRecord(
            from_company_number="87654321",
            to_company_number="12345678",
            relationship_type="controls",
            from_company_name="Holdco Limited",
            ownership_percentage=75.0,
        )
        await store.store_profile(company("12345678", "TechCorp Limited"), [], [link])

        parent = await store.get_company("87654321")
        assert parent.name == "Holdco Limited"
        assert parent.last_synced_at is None

        profile = await store.get_profile("12345678")
        assert len(profile.relationships) == 1
        assert profile.relationships[0].from_company_number == "87654321"
        assert profile.relationships[0].ownership_percentage == 75.0

    @pytest.mark.asyncio
    async def test_relationship_upsert_updates_in_place(self, store, session_factory):
        await store.upsert_company(company("12345678", "TechCorp Limited"))
        await store.upsert_company(company("87654321", "Holdco Limited"))

        base = dict(from_company_number="87654321", to_company_number="12345678", relationship_type="controls")
        await store.upsert_relationship(RelationshipRecord(**base, ownership_percentage=25.0))
        await store.upsert_relationship(
            RelationshipRecord(**base, ownership_percentage=50.0, confidence_score=0.5)
        )

        assert await count(session_factory, CompanyRelationship) == 1
        profile = await store.get_profile("87654321")
        assert profile.relationships[0].ownership_percentage == 50.0
        assert profile.relationships[0].confidence_score == 0.5

    @pytest.mark.asyncio
    async def test_stub_never_overwrites_existing_parent(self, store):
        await store.upsert_company(company("87654321", "Holdco Limited", postal_code="N1 1AA"))
        link = RelationshipRecord(
            from_company_number="87654321",
            to_company_number="12345678",
            relationship_type="controls",
            from_company_name="HOLDCO LTD",
        )
        await store.store_profile(company("12345678", "TechCorp Limited"), [], [link])

        parent = await store.get_company("87654321")
        assert parent.name == "Holdco Limited"
        assert parent.postal_code == "N1 1AA"
        assert parent.last_synced_at == SYNCED


class TestSearch:
    """Tests for local search."""

    @pytest.mark.asyncio
    async def test_case_insensitive_substring(self, store):
        await store.upsert_company(company("12345678", "TechCorp Limited"))
        await store.upsert_company(company("22222222", "Unrelated Ltd"))

        results = await store.search("tECH", limit=10)

        assert [r.company_number for r in results] == ["12345678"]
        assert results[0].source == CandidateSource.LOCAL

    @pytest.mark.asyncio
    async def test_prefix_matches_rank_first(self, store):
        await store.upsert_company(company("11111111", "Advanced Tech Ltd"))
        await store.upsert_company(company("22222222", "Tech Innovators Ltd"))
        await store.upsert_company(company("33333333", "Biotech Partners"))
        await store.upsert_company(company("44444444", "TechCorp Limited"))

        results = await store.search("tech", limit=10)

        assert [r.name for r in results] == [
            "Tech Innovators Ltd",
            "TechCorp Limited",
            "Advanced Tech Ltd",
            "Biotech Partners",
        ]
        assert [r.rank for r in results] == [0, 1, 2, 3]

    @pytest.mark.asyncio
    async def test_exact_number_ranks_first(self, store):
        await store.upsert_company(company("01234567", "Zeta 1234567 Holdings"))
        await store.upsert_company(company("12345670", "Alpha Ltd"))
        await store.upsert_company(company("01234567", "Zeta Holdings"))
        await store.upsert_company(company("11234567", "Beta Ltd"))

        results = await store.search("1234567", limit=10)

        assert results[0].company_number == "01234567"
        assert {r.company_number for r in results} == {"01234567", "12345670", "11234567"}

    @pytest.mark.asyncio
    async def test_wildcards_match_literally(self, store):
        await store.upsert_company(company("11111111", "100% Organic Ltd"))
        await store.upsert_company(company("22222222", "1000 Organic Ltd"))

        results = await store.search("100%", limit=10)

        assert [r.company_number for r in results] == ["11111111"]

    @pytest.mark.asyncio
    async def test_limit(self, store):
        for i in range(5):
            await store.upsert_company(company(f"1000000{i}", f"Tech {i}"))

        assert len(await store.search("tech", limit=3)) == 3


class TestCandidateWriteBack:
    """Tests for caching registry search hits."""

    @pytest.mark.asyncio
    async def test_new_candidates_become_stale_stubs(self, store, make_candidate):
        await store.cache_candidates([make_candidate("99999999", "Tech Innovators")])

        cached = await store.get_company("99999999")
        assert cached.name == "Tech Innovators"
        assert cached.last_synced_at is None

    @pytest.mark.asyncio
    async def test_existing_rows_untouched(self, store, make_candidate):
        await store.upsert_company(company("12345678", "TechCorp Limited", postal_code="EC1A 1AA"))

        await store.cache_candidates([make_candidate("12345678", "TECHCORP LTD")])

        cached = await store.get_company("12345678")
        assert cached.name == "TechCorp Limited"
        assert cached.postal_code == "EC1A 1AA"
        assert cached.last_synced_at == SYNCED

    @pytest.mark.asyncio
    async def test_local_candidates_ignored(self, store):
        local = SearchCandidate(company_number="55555555", name="Local", source=CandidateSource.LOCAL)

        assert await store.cache_candidates([local]) == 0
        assert await store.get_company("55555555") is None

    @pytest.mark.asyncio
    async def test_ping(self, store):
        assert await store.ping()
