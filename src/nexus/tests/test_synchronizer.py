"""
Tests for read-through synchronization.

Tests:
- Freshness window boundaries
- Forced refresh
- Stale fallback when the registry fails
- Not found and upstream errors without a cached copy
- Partial profile fetches and write-back failures
"""

from datetime import date, timedelta
from unittest.mock import AsyncMock

import pytest

from nexus.errors import NotFoundError, UpstreamError, ValidationError
from nexus.schemas.records import CandidateSource, CompanyStatus, OfficerRole
from nexus.sync.synchronizer import Synchronizer


@pytest.fixture
def synchronizer(store, registry, clock) -> Synchronizer:
    return Synchronizer(store, registry, freshness_window=timedelta(hours=24), clock=clock)


@pytest.fixture
def techcorp(registry):
    registry.add_company("12345678", "TechCorp Limited", sic_codes=["62020"])
    registry.add_officer("12345678", "Jane Smith")
    registry.add_officer("12345678", "Bob Jones", role="secretary", birth=None)
    registry.add_corporate_controller("12345678", "Holdco Limited", "87654321")
    return registry


class TestFreshness:
    """Tests for the freshness decision."""

    @pytest.mark.asyncio
    async def test_first_request_fetches_and_caches(self, synchronizer, techcorp, store, clock):
        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.REGISTRY
        assert details.company.name == "TechCorp Limited"
        assert details.company.last_synced_at == clock.now
        assert techcorp.fetch_count("company") == 1

        cached = await store.get_profile("12345678")
        assert cached.company.last_synced_at == clock.now
        assert len(cached.officers) == 2
        assert len(cached.controllers) == 1

    @pytest.mark.asyncio
    async def test_served_locally_inside_window(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=23, minutes=59)

        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.LOCAL
        assert techcorp.fetch_count("company") == 1

    @pytest.mark.asyncio
    async def test_refetched_after_window(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=24, minutes=1)

        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.REGISTRY
        assert details.company.last_synced_at == clock.now
        assert techcorp.fetch_count("company") == 2

    @pytest.mark.asyncio
    async def test_exactly_window_old_is_stale(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=24)

        await synchronizer.get_details("12345678")

        assert techcorp.fetch_count("company") == 2

    @pytest.mark.asyncio
    async def test_company_only_read_served_locally_inside_window(self, synchronizer, techcorp, clock):
        await synchronizer.get_company("12345678")
        clock.advance(minutes=1)

        company = await synchronizer.get_company("12345678")

        assert company.name == "TechCorp Limited"
        assert techcorp.fetch_count("company") == 1

    @pytest.mark.asyncio
    async def test_company_only_fetch_does_not_make_profile_fresh(self, synchronizer, techcorp, clock):
        await synchronizer.get_company("12345678")
        clock.advance(minutes=1)

        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.REGISTRY
        assert len(details.officers) == 2
        assert techcorp.fetch_count("company") == 2
        assert techcorp.fetch_count("officers") == 1

    @pytest.mark.asyncio
    async def test_full_profile_serves_company_only_read(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=1)

        await synchronizer.get_company("12345678")
        details = await synchronizer.get_details("12345678", include_controllers=False)

        assert details.source == CandidateSource.LOCAL
        assert techcorp.fetch_count("company") == 1

    @pytest.mark.asyncio
    async def test_part_stamps_follow_requested_parts(self, synchronizer, techcorp, store, clock):
        await synchronizer.get_details("12345678", include_controllers=False)

        cached = await store.get_company("12345678")
        assert cached.last_synced_at == clock.now
        assert cached.officers_synced_at == clock.now
        assert cached.controllers_synced_at is None

    @pytest.mark.asyncio
    async def test_force_refresh_skips_cache(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(minutes=5)

        details = await synchronizer.get_details("12345678", force_refresh=True)

        assert details.source == CandidateSource.REGISTRY
        assert techcorp.fetch_count("company") == 2

    @pytest.mark.asyncio
    async def test_unsynced_stub_is_never_fresh(self, synchronizer, techcorp, store, make_candidate):
        await store.cache_candidates([make_candidate("12345678", "TECHCORP")])

        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.REGISTRY
        assert details.company.name == "TechCorp Limited"
        assert techcorp.fetch_count("company") == 1

    @pytest.mark.asyncio
    async def test_number_is_normalized(self, synchronizer, registry):
        registry.add_company("00012345", "Old Firm Ltd")

        details = await synchronizer.get_details("12345")

        assert details.company.company_number == "00012345"
        assert ("company", "00012345") in registry.calls

    @pytest.mark.asyncio
    async def test_malformed_number_rejected_without_fetch(self, synchronizer, registry):
        with pytest.raises(ValidationError):
            await synchronizer.get_details("1")

        assert registry.calls == []


class TestFallback:
    """Tests for registry failures."""

    @pytest.mark.asyncio
    async def test_stale_copy_served_when_registry_fails(self, synchronizer, techcorp, clock):
        first = await synchronizer.get_details("12345678")
        clock.advance(hours=25)
        techcorp.fail("12345678", "company", status_code=503)

        details = await synchronizer.get_details("12345678")

        assert details.stale
        assert details.source == CandidateSource.LOCAL
        assert "503" in details.fetch_error
        assert details.company.last_synced_at == first.company.last_synced_at
        assert len(details.officers) == 2

    @pytest.mark.asyncio
    async def test_failed_forced_refresh_of_fresh_copy_is_not_stale(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=1)
        techcorp.fail("12345678", "company", status_code=503)

        details = await synchronizer.get_details("12345678", force_refresh=True)

        assert not details.stale
        assert "503" in details.fetch_error
        assert details.source == CandidateSource.LOCAL

    @pytest.mark.asyncio
    async def test_stale_copy_served_when_company_vanished(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=25)
        del techcorp.companies["12345678"]

        details = await synchronizer.get_details("12345678")

        assert details.stale
        assert "not found" in details.fetch_error

    @pytest.mark.asyncio
    async def test_not_found_anywhere(self, synchronizer):
        with pytest.raises(NotFoundError) as exc_info:
            await synchronizer.get_details("99999999")

        assert exc_info.value.company_number == "99999999"

    @pytest.mark.asyncio
    async def test_upstream_error_without_cached_copy(self, synchronizer, techcorp):
        techcorp.fail("12345678", "company", status_code=500)

        with pytest.raises(UpstreamError) as exc_info:
            await synchronizer.get_details("12345678")

        assert exc_info.value.status_code == 500

    @pytest.mark.asyncio
    async def test_cache_read_failure_goes_to_registry(self, synchronizer, techcorp, store):
        store.get_profile = AsyncMock(side_effect=RuntimeError("database is locked"))

        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.REGISTRY
        assert techcorp.fetch_count("company") == 1


class TestPartialFetch:
    """Tests for profiles where some sub-fetches failed."""

    @pytest.mark.asyncio
    async def test_failed_controllers_reported_not_fatal(self, synchronizer, techcorp):
        techcorp.fail("12345678", "controllers", status_code=502)

        details = await synchronizer.get_details("12345678")

        assert details.company.name == "TechCorp Limited"
        assert len(details.officers) == 2
        assert details.controllers == []
        assert "controllers" in details.errors
        assert "officers" not in details.errors

    @pytest.mark.asyncio
    async def test_failed_part_is_fetched_again(self, synchronizer, techcorp, store, clock):
        techcorp.fail("12345678", "officers")

        await synchronizer.get_details("12345678")
        await synchronizer.get_details("12345678")

        cached = await store.get_company("12345678")
        assert cached.last_synced_at == clock.now
        assert cached.officers_synced_at is None
        assert cached.controllers_synced_at == clock.now
        assert techcorp.fetch_count("officers") == 2

    @pytest.mark.asyncio
    async def test_failed_part_falls_back_to_cached_part(self, synchronizer, techcorp, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=25)
        techcorp.fail("12345678", "officers")

        details = await synchronizer.get_details("12345678")

        assert details.source == CandidateSource.REGISTRY
        assert {o.person.full_name for o in details.officers} == {"Jane Smith", "Bob Jones"}
        assert "officers" in details.errors

    @pytest.mark.asyncio
    async def test_partial_refresh_keeps_previous_part_sync_time(self, synchronizer, techcorp, store, clock):
        first = await synchronizer.get_details("12345678")
        clock.advance(hours=25)
        techcorp.fail("12345678", "controllers")

        await synchronizer.get_details("12345678")

        cached = await store.get_company("12345678")
        assert cached.last_synced_at == clock.now
        assert cached.officers_synced_at == clock.now
        assert cached.controllers_synced_at == first.company.controllers_synced_at


class TestWriteBack:
    """Tests for persisting fetched profiles."""

    @pytest.mark.asyncio
    async def test_write_back_failure_still_returns_data(self, synchronizer, techcorp, store):
        store.store_profile = AsyncMock(side_effect=RuntimeError("disk full"))

        details = await synchronizer.get_details("12345678")

        assert details.company.name == "TechCorp Limited"
        assert await store.get_company("12345678") is None

    @pytest.mark.asyncio
    async def test_corporate_controller_creates_relationship(self, synchronizer, techcorp, store):
        details = await synchronizer.get_details("12345678")

        assert len(details.relationships) == 1
        link = details.relationships[0]
        assert link.from_company_number == "87654321"
        assert link.to_company_number == "12345678"
        assert link.ownership_percentage == 75.0

        parent = await store.get_company("87654321")
        assert parent.name == "Holdco Limited"
        assert parent.last_synced_at is None

    @pytest.mark.asyncio
    async def test_refetch_does_not_duplicate_appointments(self, synchronizer, techcorp, store, clock):
        await synchronizer.get_details("12345678")
        clock.advance(hours=25)
        await synchronizer.get_details("12345678")

        cached = await store.get_profile("12345678")
        assert len(cached.officers) == 2
        assert len(cached.controllers) == 1

    @pytest.mark.asyncio
    async def test_resignation_recorded_on_new_appointment_only(self, synchronizer, registry, store):
        registry.add_company("12345678", "TechCorp Limited", status="dissolved")
        registry.add_officer(
            "12345678", "Jane Smith", appointed_on=date(2015, 3, 1), resigned_on=date(2019, 6, 30)
        )

        details = await synchronizer.get_details("12345678")

        assert details.company.status == CompanyStatus.DISSOLVED
        assert details.officers[0].role == OfficerRole.DIRECTOR
        assert not details.officers[0].is_active


class TestTrimming:

    @pytest.mark.asyncio
    async def test_excluded_parts_not_fetched(self, synchronizer, techcorp):
        details = await synchronizer.get_details(
            "12345678", include_officers=False, include_controllers=False
        )

        assert details.officers == []
        assert details.controllers == []
        assert techcorp.fetch_count("officers") == 0
        assert techcorp.fetch_count("controllers") == 0

    @pytest.mark.asyncio
    async def test_get_company(self, synchronizer, techcorp):
        company = await synchronizer.get_company("12345678")

        assert company.company_number == "12345678"
        assert company.name == "TechCorp Limited"
