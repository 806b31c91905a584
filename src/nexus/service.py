"""
Registry service: the operations exposed to callers.

Wires the quota gate in front of the synchronizer, the result merger and the
batch orchestrator, and attaches the risk summary when asked for.
"""

import logging
import time
from typing import Any, Optional, Union

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nexus import __version__
from nexus.analysis.risk import RiskAnalyzer, RuleBasedRiskAnalyzer
from nexus.batch.orchestrator import BatchOperation, BatchOptions, BatchOrchestrator, BatchResult
from nexus.cache.store import CacheStore
from nexus.db.orm import utcnow
from nexus.ingestion.base_adapter import BaseRegistryAdapter
from nexus.schemas.records import CompanyDetails, SearchResult, SourcePreference
from nexus.subscription.quota import QuotaGate, QuotaStatus
from nexus.subscription.tiers import Feature, SubscriptionTier, resolve_tier
from nexus.sync.merger import ResultMerger
from nexus.sync.normalize import (
    normalize_company_number,
    validate_limit,
    validate_page,
    validate_search_term,
)
from nexus.sync.synchronizer import Synchronizer

logger = logging.getLogger(__name__)

TierLike = Union[SubscriptionTier, str, None]


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class RegistryService:
    """Facade over the synchronization engine for one registry."""

    def __init__(
        self,
        store: CacheStore,
        adapter: BaseRegistryAdapter,
        quota: QuotaGate,
        analyzer: Optional[RiskAnalyzer] = None,
        synchronizer: Optional[Synchronizer] = None,
        merger: Optional[ResultMerger] = None,
        batch_concurrency: Optional[int] = None,
    ):
        self.store = store
        self.adapter = adapter
        self.quota = quota
        self.analyzer = analyzer or RuleBasedRiskAnalyzer()
        self.synchronizer = synchronizer or Synchronizer(store, adapter)
        self.merger = merger or ResultMerger(store, adapter)
        self.orchestrator = BatchOrchestrator(
            self.synchronizer, self.merger, quota, concurrency=batch_concurrency
        )

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        adapter: BaseRegistryAdapter,
        analyzer: Optional[RiskAnalyzer] = None,
    ) -> "RegistryService":
        """Service with a cache store and quota gate on the given session factory."""
        return cls(
            store=CacheStore(session_factory),
            adapter=adapter,
            quota=QuotaGate(session_factory),
            analyzer=analyzer,
        )

    async def search(
        self,
        caller_id: str,
        tier: TierLike,
        term: str,
        limit: int = 20,
        source: SourcePreference = SourcePreference.BOTH,
        page: int = 1,
    ) -> SearchResult:
        """
        Search companies, capping the result count to the caller's tier.

        Raises:
            ValidationError: bad term, limit or page (checked before quota is spent)
            QuotaExceededError: daily ceiling reached
            UpstreamError: registry failed with source=registry
        """
        term = validate_search_term(term)
        limit = validate_limit(limit)
        page = validate_page(page)

        decision = await self.quota.admit(caller_id, tier, term, "search")
        started = time.perf_counter()
        result = await self.merger.search(
            term, self.quota.cap_results(tier, limit), source, page=page
        )
        await self.quota.complete(decision.usage_id, result.total, _elapsed_ms(started))
        return result

    async def get_details(
        self,
        caller_id: str,
        tier: TierLike,
        company_number: str,
        force_refresh: bool = False,
        include_officers: bool = True,
        include_controllers: bool = True,
        include_analysis: bool = False,
    ) -> CompanyDetails:
        """
        Resolve one company, optionally with a risk summary.

        A failing risk analyzer never prevents serving the company; the
        failure is reported in analysis_error.

        Raises:
            ValidationError: malformed company number
            FeatureNotAvailableError: analysis requested without the feature
            QuotaExceededError: daily ceiling reached
            NotFoundError / UpstreamError: see Synchronizer.get_details
        """
        number = normalize_company_number(company_number)
        if include_analysis:
            self.quota.require_feature(tier, Feature.RISK_ANALYSIS)

        query_type = "company_analysis" if include_analysis else "company_details"
        decision = await self.quota.admit(caller_id, tier, number, query_type)
        started = time.perf_counter()

        details = await self.synchronizer.get_details(
            number,
            force_refresh=force_refresh,
            include_officers=include_officers,
            include_controllers=include_controllers,
        )

        if include_analysis:
            details = await self._with_analysis(details)

        await self.quota.complete(decision.usage_id, 1, _elapsed_ms(started))
        return details

    async def _with_analysis(self, details: CompanyDetails) -> CompanyDetails:
        try:
            summary = await self.analyzer.analyze(details)
        except Exception as e:
            logger.error(
                f"Risk analysis failed for {details.company.company_number}: {e!r}"
            )
            return details.model_copy(update={"analysis_error": "Risk analysis unavailable"})
        return details.model_copy(update={"analysis": summary})

    async def batch(
        self,
        caller_id: str,
        tier: TierLike,
        operation: Union[BatchOperation, str],
        items: list[Any],
        options: Optional[BatchOptions] = None,
    ) -> BatchResult:
        return await self.orchestrator.run(caller_id, tier, operation, items, options)

    async def quota_status(self, caller_id: str, tier: TierLike) -> QuotaStatus:
        return await self.quota.status(caller_id, resolve_tier(tier))

    async def health(self, check_registry: bool = False) -> dict[str, Any]:
        """
        Status of the cache store and the registry client.

        The registry is only probed when check_registry is set, since the
        probe spends from the shared rate budget.
        """
        status: dict[str, Any] = {
            "status": "healthy",
            "timestamp": utcnow().isoformat() + "Z",
            "version": __version__,
            "services": {},
        }

        try:
            await self.store.ping()
            status["services"]["database"] = {"status": "healthy"}
        except Exception as e:
            logger.error(f"Database health check failed: {e!r}")
            status["services"]["database"] = {"status": "unhealthy", "error": str(e)}
            status["status"] = "degraded"

        registry: dict[str, Any] = {
            "source": self.adapter.source_name,
            "rate_limit": self.adapter.rate_limit_status(),
            "pending_write_backs": self.merger.pending_write_backs,
        }
        if check_registry:
            healthy = await self.adapter.healthcheck()
            registry["status"] = "healthy" if healthy else "unhealthy"
            if not healthy:
                status["status"] = "degraded"
        status["services"]["registry"] = registry
        return status

    async def close(self) -> None:
        """Finish background write-backs and release the registry client."""
        await self.merger.drain()
        await self.adapter.close()
