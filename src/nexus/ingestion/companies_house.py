"""
Companies House REST API adapter.

Public register of UK companies, their officers and persons with significant
control (PSCs).

API Docs: https://developer-specs.company-information.service.gov.uk/

Endpoints used:
- GET /search/companies - Search by name or number
- GET /company/{company_number} - Company profile
- GET /company/{company_number}/officers - Officer appointments
- GET /company/{company_number}/persons-with-significant-control - PSCs

Auth: HTTP Basic with the API key as username and an empty password
Rate limit: 600 requests per 5 minutes per key
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError as PayloadValidationError

from nexus import __version__
from nexus.config import settings
from nexus.errors import UpstreamError, ValidationError
from nexus.ingestion.base_adapter import BaseRegistryAdapter
from nexus.ingestion.rate_limiter import RateLimitConfig, RateLimitedClient, RateLimiter
from nexus.schemas.records import SearchCandidate
from nexus.schemas.registry import (
    RegistryCompany,
    RegistryControllingPerson,
    RegistryOfficer,
    RegistrySearchItem,
)
from nexus.sync.mapping import candidate_from_search_item
from nexus.sync.normalize import normalize_company_number

logger = logging.getLogger(__name__)

# Largest items_per_page the search endpoint accepts
MAX_SEARCH_PAGE_SIZE = 100


def default_rate_limiter() -> RateLimiter:
    """Limiter sized to the registry's published budget."""
    return RateLimiter(
        RateLimitConfig(
            requests_per_window=settings.registry_rate_limit_requests,
            window_seconds=settings.registry_rate_limit_window_seconds,
            safety_buffer_seconds=settings.registry_rate_limit_buffer_seconds,
        )
    )


class CompaniesHouseAdapter(BaseRegistryAdapter):
    """
    Adapter for the Companies House public data API.

    Every request goes through the adapter's own RateLimiter and carries a
    timeout. Upstream 404s become absent values; any other failure becomes
    UpstreamError with the status code when there is one.
    """

    USER_AGENT = f"Nexus-Company-Intelligence/{__version__}"

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        rate_limiter: Optional[RateLimiter] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Companies House adapter.

        Args:
            api_key: REST API key (defaults to settings)
            base_url: Override base URL (useful for testing)
            timeout: Request timeout in seconds (defaults to settings)
            rate_limiter: Limiter shared by all calls of this adapter
            transport: Custom httpx transport (tests use httpx.MockTransport)
        """
        self.api_key = api_key or settings.companies_house_api_key
        self.base_url = (base_url or settings.companies_house_base_url).rstrip("/")
        self.timeout = timeout or settings.registry_timeout_seconds

        if not self.api_key:
            logger.warning(
                "Companies House API key not configured. "
                "Set COMPANIES_HOUSE_API_KEY."
            )

        self._raw_client = httpx.AsyncClient(
            base_url=self.base_url,
            auth=httpx.BasicAuth(self.api_key, "") if self.api_key else None,
            headers={
                "Accept": "application/json",
                "User-Agent": self.USER_AGENT,
            },
            timeout=self.timeout,
            transport=transport,
        )
        self._client = RateLimitedClient(self._raw_client, rate_limiter or default_rate_limiter())

    @property
    def source_name(self) -> str:
        return "companies_house"

    @property
    def rate_limiter(self) -> RateLimiter:
        return self._client.limiter

    async def _get(self, path: str, params: Optional[dict[str, Any]] = None) -> Optional[Any]:
        """
        Rate-limited GET returning decoded JSON, or None on 404.

        Raises:
            UpstreamError: on transport failure, non-2xx status or bad JSON
        """
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as e:
            logger.error(f"Companies House request timed out: GET {path}")
            raise UpstreamError(f"Registry request timed out: {path}") from e
        except httpx.RequestError as e:
            logger.error(f"Companies House request failed: GET {path}: {e}")
            raise UpstreamError(f"Registry request failed: {e}") from e

        remaining = response.headers.get("X-Ratelimit-Remaining")
        limit = response.headers.get("X-Ratelimit-Limit")
        if remaining and limit:
            logger.debug(f"Companies House rate limit: {remaining}/{limit} remaining")

        if response.status_code == 404:
            return None
        if not response.is_success:
            logger.error(f"Companies House API error {response.status_code} for GET {path}")
            raise UpstreamError(
                f"Registry returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                "Registry returned invalid JSON", status_code=response.status_code
            ) from e

    async def search(self, query: str, limit: int = 20) -> list[SearchCandidate]:
        """Search companies by name or number."""
        data = await self._get(
            "/search/companies",
            params={
                "q": query,
                "items_per_page": min(limit, MAX_SEARCH_PAGE_SIZE),
                "start_index": 0,
            },
        )
        if not data:
            return []

        candidates = []
        for raw in data.get("items") or []:
            try:
                item = RegistrySearchItem.model_validate(raw)
                candidates.append(candidate_from_search_item(item))
            except (PayloadValidationError, ValidationError) as e:
                logger.debug(f"Skipping malformed search item: {e}")
        return candidates[:limit]

    async def fetch_company(self, company_number: str) -> Optional[RegistryCompany]:
        """
        Fetch company profile by company number.

        Returns company data including:
        - Name, status and legal form
        - Incorporation and dissolution dates
        - Registered office address
        - SIC codes
        """
        number = normalize_company_number(company_number)
        data = await self._get(f"/company/{number}")
        if data is None:
            logger.debug(f"Company not found: {number}")
            return None
        try:
            return RegistryCompany.model_validate(data)
        except PayloadValidationError as e:
            raise UpstreamError(f"Malformed company payload for {number}") from e

    async def fetch_officers(self, company_number: str) -> list[RegistryOfficer]:
        number = normalize_company_number(company_number)
        data = await self._get(
            f"/company/{number}/officers",
            params={"items_per_page": settings.registry_officers_page_size, "start_index": 0},
        )
        return self._parse_items(data, RegistryOfficer, number, "officers")

    async def fetch_controllers(self, company_number: str) -> list[RegistryControllingPerson]:
        number = normalize_company_number(company_number)
        data = await self._get(
            f"/company/{number}/persons-with-significant-control",
            params={"items_per_page": settings.registry_controllers_page_size, "start_index": 0},
        )
        return self._parse_items(data, RegistryControllingPerson, number, "controllers")

    def _parse_items(self, data: Optional[dict], model, number: str, what: str) -> list:
        if not data:
            return []
        try:
            return [model.model_validate(item) for item in data.get("items") or []]
        except PayloadValidationError as e:
            raise UpstreamError(f"Malformed {what} payload for {number}") from e

    async def fetch_full_profile(
        self,
        company_number: str,
        include_officers: bool = True,
        include_controllers: bool = True,
    ):
        """Fetch company, officers and controllers concurrently."""
        number = normalize_company_number(company_number)
        return await super().fetch_full_profile(number, include_officers, include_controllers)

    def rate_limit_status(self) -> dict[str, Any]:
        return self.rate_limiter.status()

    async def healthcheck(self) -> bool:
        """Check that the search endpoint answers with the configured key."""
        try:
            await self._get("/search/companies", params={"q": "test", "items_per_page": 1})
            return True
        except UpstreamError as e:
            logger.warning(f"Companies House healthcheck failed: {e}")
            return False

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._client.aclose()
