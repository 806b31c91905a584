"""
Base adapter for company registry access.

The synchronizer and result merger only depend on this interface, so tests
and alternative registries can plug in without touching the engine.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from nexus.errors import UpstreamError
from nexus.schemas.records import SearchCandidate
from nexus.schemas.registry import (
    RegistryCompany,
    RegistryControllingPerson,
    RegistryOfficer,
    RegistryProfile,
    SubFetch,
)

logger = logging.getLogger(__name__)


class BaseRegistryAdapter(ABC):
    """
    Abstract base for company registry adapters.

    Implementations translate upstream 404s into absent values and every other
    failure into UpstreamError. They never retry on their own.
    """

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Unique identifier for this registry, used in logs."""
        pass

    @abstractmethod
    async def search(self, query: str, limit: int = 20) -> list[SearchCandidate]:
        """
        Search companies by name or number.

        Args:
            query: Search string
            limit: Maximum number of results

        Returns:
            Registry-sourced candidates in upstream order
        """
        pass

    @abstractmethod
    async def fetch_company(self, company_number: str) -> Optional[RegistryCompany]:
        """
        Fetch a company profile.

        Returns:
            RegistryCompany if found, None if the registry has no such company
        """
        pass

    @abstractmethod
    async def fetch_officers(self, company_number: str) -> list[RegistryOfficer]:
        """Fetch current and former officers. Unknown company yields []."""
        pass

    @abstractmethod
    async def fetch_controllers(self, company_number: str) -> list[RegistryControllingPerson]:
        """Fetch persons with significant control. Unknown company yields []."""
        pass

    async def fetch_full_profile(
        self,
        company_number: str,
        include_officers: bool = True,
        include_controllers: bool = True,
    ) -> RegistryProfile:
        """
        Fetch company, officers and controllers concurrently.

        A failing call is reported on its own SubFetch rather than failing the
        whole profile.
        """
        calls: list[tuple[str, Any]] = [("company", self.fetch_company(company_number))]
        if include_officers:
            calls.append(("officers", self.fetch_officers(company_number)))
        if include_controllers:
            calls.append(("controllers", self.fetch_controllers(company_number)))

        results = await asyncio.gather(*(c for _, c in calls), return_exceptions=True)

        profile = RegistryProfile(
            company_number=company_number,
            officers=SubFetch(value=[], skipped=not include_officers),
            controllers=SubFetch(value=[], skipped=not include_controllers),
        )
        for (name, _), result in zip(calls, results):
            setattr(profile, name, self._to_sub_fetch(name, company_number, result))
        return profile

    def _to_sub_fetch(self, name: str, company_number: str, result: Any) -> SubFetch:
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, UpstreamError):
            logger.warning(
                f"{self.source_name} {name} fetch failed for {company_number}: {result}"
            )
            return SubFetch(error=result.message, status_code=result.status_code)
        if isinstance(result, BaseException):
            logger.error(
                f"{self.source_name} {name} fetch raised unexpectedly for {company_number}: {result!r}"
            )
            return SubFetch(error=str(result) or type(result).__name__)
        return SubFetch(value=result)

    async def healthcheck(self) -> bool:
        """
        Check if the registry is available.

        Returns:
            True if the registry is reachable, False otherwise
        """
        return True

    def rate_limit_status(self) -> Optional[dict[str, Any]]:
        """Remaining request budget, if the adapter is rate limited."""
        return None

    async def close(self) -> None:
        """Release HTTP connections and other resources."""
        pass

    async def __aenter__(self):
        """Support for async context manager."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Support for async context manager."""
        await self.close()
        return False
