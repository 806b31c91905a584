"""
Read-through synchronization between the cache store and the registry.

Per request:

    CheckLocal -> Fresh: return the cached profile
               -> Stale or missing: FetchRemote -> WriteBack -> return

A failed fetch falls back to the stale cached profile when there is one.
Write-back failures are logged and the fetched data is still returned.
"""

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional

from nexus.cache.store import CacheStore
from nexus.config import settings
from nexus.db.orm import utcnow
from nexus.errors import NotFoundError, UpstreamError
from nexus.ingestion.base_adapter import BaseRegistryAdapter
from nexus.schemas.records import (
    AppointmentRecord,
    CandidateSource,
    CompanyDetails,
    CompanyRecord,
    RelationshipRecord,
)
from nexus.schemas.registry import RegistryProfile
from nexus.sync.mapping import (
    appointment_from_controller,
    appointment_from_officer,
    company_from_registry,
    relationship_from_controller,
)
from nexus.sync.normalize import normalize_company_number

logger = logging.getLogger(__name__)


class SyncState(str, Enum):
    """Steps of a single synchronization, used in logs."""

    CHECK_LOCAL = "check_local"
    FRESH = "fresh"
    FETCH_REMOTE = "fetch_remote"
    WRITE_BACK = "write_back"
    STALE_FALLBACK = "stale_fallback"


class Synchronizer:
    """
    Decides per request whether cached data can be served or must be
    re-fetched from the registry.

    A cached company is fresh when it and every requested part (officers,
    controllers) were synchronized strictly less than freshness_window ago.
    """

    def __init__(
        self,
        store: CacheStore,
        adapter: BaseRegistryAdapter,
        freshness_window: Optional[timedelta] = None,
        clock: Callable[[], datetime] = utcnow,
        include_birth_date: Optional[bool] = None,
    ):
        self.store = store
        self.adapter = adapter
        self.freshness_window = freshness_window or timedelta(hours=settings.freshness_window_hours)
        self._clock = clock
        self.include_birth_date = (
            settings.person_key_includes_birth_date
            if include_birth_date is None
            else include_birth_date
        )

    def _log_state(self, number: str, state: SyncState, detail: str = "") -> None:
        logger.debug(f"sync {number}: {state.value}{' - ' + detail if detail else ''}")

    async def _read_local(self, number: str) -> Optional[CompanyDetails]:
        try:
            return await self.store.get_profile(number)
        except Exception as e:
            logger.warning(f"Cache read failed for {number}, going to registry: {e!r}")
            return None

    async def get_details(
        self,
        company_number: str,
        force_refresh: bool = False,
        include_officers: bool = True,
        include_controllers: bool = True,
    ) -> CompanyDetails:
        """
        Resolve a company, from the cache when fresh and the registry otherwise.

        Args:
            company_number: Registry company number (normalized here)
            force_refresh: Skip the freshness check and always fetch
            include_officers: Fetch and return officers
            include_controllers: Fetch and return persons with significant control

        Raises:
            ValidationError: malformed company number
            NotFoundError: unknown both locally and upstream
            UpstreamError: registry failed and nothing is cached
        """
        number = normalize_company_number(company_number)

        self._log_state(number, SyncState.CHECK_LOCAL)
        local = await self._read_local(number)
        now = self._clock()

        if (
            local is not None
            and not force_refresh
            and local.company.is_fresh_for(
                now, self.freshness_window, include_officers, include_controllers
            )
        ):
            self._log_state(number, SyncState.FRESH)
            return self._trim(local, include_officers, include_controllers)

        self._log_state(number, SyncState.FETCH_REMOTE, "forced" if force_refresh else "")
        profile = await self.adapter.fetch_full_profile(
            number,
            include_officers=include_officers,
            include_controllers=include_controllers,
        )

        company_fetch = profile.company
        if company_fetch.error is not None or company_fetch.value is None:
            return self._fallback(number, local, profile, now, include_officers, include_controllers)

        details = self._build_details(number, profile, local, now)
        await self._write_back(details, profile)
        return self._trim(details, include_officers, include_controllers)

    def _fallback(
        self,
        number: str,
        local: Optional[CompanyDetails],
        profile: RegistryProfile,
        now: datetime,
        include_officers: bool,
        include_controllers: bool,
    ) -> CompanyDetails:
        company_fetch = profile.company
        not_found = company_fetch.error is None
        message = f"Company {number} not found in registry" if not_found else company_fetch.error

        if local is None:
            if not_found:
                raise NotFoundError(number)
            raise UpstreamError(message, status_code=company_fetch.status_code)

        self._log_state(number, SyncState.STALE_FALLBACK, message)
        logger.warning(f"Serving cached profile for {number}: {message}")
        still_fresh = local.company.is_fresh_for(
            now, self.freshness_window, include_officers, include_controllers
        )
        fallback = local.model_copy(
            update={"stale": not still_fresh, "fetch_error": message, "errors": profile.errors}
        )
        return self._trim(fallback, include_officers, include_controllers)

    def _build_details(
        self,
        number: str,
        profile: RegistryProfile,
        local: Optional[CompanyDetails],
        now: datetime,
    ) -> CompanyDetails:
        """
        Translate a fetched profile into domain records.

        The company attributes are stamped as synchronized now. Officers and
        controllers are stamped only when their own call succeeded; a failed or
        skipped part keeps its previous sync time, so the next request that
        needs it fetches again.
        """
        previous = local.company if local else None
        officers_synced_at = previous.officers_synced_at if previous else None
        controllers_synced_at = previous.controllers_synced_at if previous else None
        if profile.officers.ok:
            officers_synced_at = now
        if profile.controllers.ok:
            controllers_synced_at = now
        company = company_from_registry(profile.company.value, now).model_copy(
            update={
                "officers_synced_at": officers_synced_at,
                "controllers_synced_at": controllers_synced_at,
            }
        )

        officers: list[AppointmentRecord] = []
        if profile.officers.ok:
            officers = [
                appointment_from_officer(number, officer, self.include_birth_date)
                for officer in profile.officers.value or []
            ]
        elif local is not None:
            officers = local.officers

        controllers: list[AppointmentRecord] = []
        relationships: list[RelationshipRecord] = []
        if profile.controllers.ok:
            for controller in profile.controllers.value or []:
                controllers.append(
                    appointment_from_controller(number, controller, self.include_birth_date)
                )
                link = relationship_from_controller(number, controller)
                if link is not None:
                    relationships.append(link)
        elif local is not None:
            controllers = local.controllers
            relationships = local.relationships

        return CompanyDetails(
            company=company,
            officers=officers,
            controllers=controllers,
            relationships=relationships,
            source=CandidateSource.REGISTRY,
            errors=profile.errors,
        )

    async def _write_back(self, details: CompanyDetails, profile: RegistryProfile) -> None:
        number = details.company.company_number
        self._log_state(number, SyncState.WRITE_BACK)

        appointments: list[AppointmentRecord] = []
        if profile.officers.ok:
            appointments.extend(details.officers)
        if profile.controllers.ok:
            appointments.extend(details.controllers)
        relationships = details.relationships if profile.controllers.ok else []

        try:
            await self.store.store_profile(details.company, appointments, relationships)
        except Exception as e:
            logger.error(f"Write-back failed for {number}: {e!r}")

    @staticmethod
    def _trim(
        details: CompanyDetails,
        include_officers: bool,
        include_controllers: bool,
    ) -> CompanyDetails:
        update = {}
        if not include_officers:
            update["officers"] = []
        if not include_controllers:
            update["controllers"] = []
            update["relationships"] = []
        return details.model_copy(update=update) if update else details

    async def get_company(self, company_number: str, force_refresh: bool = False) -> CompanyRecord:
        """Company attributes only, without officers or controllers."""
        details = await self.get_details(
            company_number,
            force_refresh=force_refresh,
            include_officers=False,
            include_controllers=False,
        )
        return details.company
