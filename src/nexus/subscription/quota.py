"""
Quota gate: per-caller daily request ceilings and per-request result caps.

Usage is counted from the search_queries log, so the daily counter resets at
UTC midnight without any scheduled job.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from nexus.db.orm import utcnow
from nexus.db.repositories import SearchQueryRepository
from nexus.errors import FeatureNotAvailableError, QuotaExceededError
from nexus.subscription.tiers import Feature, SubscriptionTier, get_limits

logger = logging.getLogger(__name__)


def utc_day_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass
class QuotaDecision:
    """An admitted request and the budget left after it."""

    caller_id: str
    tier: SubscriptionTier
    used: int
    limit: Optional[int]
    remaining: Optional[int]
    usage_id: Optional[UUID] = None


@dataclass
class QuotaStatus:
    caller_id: str
    tier: SubscriptionTier
    used_today: int
    daily_limit: Optional[int]
    remaining: Optional[int]
    results_per_request: int
    batch_size: Optional[int]
    features: list[str] = field(default_factory=list)
    resets_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "caller_id": self.caller_id,
            "tier": self.tier.value,
            "used_today": self.used_today,
            "daily_limit": self.daily_limit,
            "remaining": self.remaining,
            "results_per_request": self.results_per_request,
            "batch_size": self.batch_size,
            "features": self.features,
            "resets_at": self.resets_at.isoformat() + "Z" if self.resets_at else None,
        }


class QuotaGate:
    """
    Admits or denies requests against the caller's tier.

    admit() counts and logs in one transaction. Two concurrent requests from
    the same caller can both be admitted at the ceiling; the log stays
    accurate and the next request is denied.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = utcnow,
    ):
        self._session_factory = session_factory
        self._clock = clock

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    async def admit(
        self,
        caller_id: str,
        tier: Union[SubscriptionTier, str, None],
        query_text: str,
        query_type: str = "search",
    ) -> QuotaDecision:
        """
        Admit one request and log it as today's usage.

        Raises:
            QuotaExceededError: the caller already used the tier's daily ceiling
        """
        limits = get_limits(tier)
        now = self._clock()

        async with self._transaction() as session:
            repo = SearchQueryRepository(session)
            used = await repo.count_since(caller_id, utc_day_start(now))

            if limits.daily_requests is not None and used >= limits.daily_requests:
                logger.info(
                    f"Quota exceeded for caller {caller_id} "
                    f"({limits.tier.value}: {used}/{limits.daily_requests})"
                )
                raise QuotaExceededError(limits.tier.value, limits.daily_requests, used=used)

            entry = await repo.create(caller_id, query_text, query_type, created_at=now)
            usage_id = entry.id

        used += 1
        remaining = None
        if limits.daily_requests is not None:
            remaining = max(0, limits.daily_requests - used)
        return QuotaDecision(
            caller_id=caller_id,
            tier=limits.tier,
            used=used,
            limit=limits.daily_requests,
            remaining=remaining,
            usage_id=usage_id,
        )

    async def complete(
        self,
        usage_id: Optional[UUID],
        results_count: int,
        execution_time_ms: Optional[int] = None,
    ) -> None:
        """Fill in the outcome of an admitted request. Failures are only logged."""
        if usage_id is None:
            return
        try:
            async with self._transaction() as session:
                await SearchQueryRepository(session).complete(
                    usage_id, results_count, execution_time_ms
                )
        except Exception as e:
            logger.warning(f"Failed to update usage log {usage_id}: {e!r}")

    async def record(
        self,
        caller_id: str,
        query_text: str,
        query_type: str,
        results_count: Optional[int] = None,
        execution_time_ms: Optional[int] = None,
    ) -> None:
        """Log usage without gating, e.g. for individual batch items."""
        try:
            async with self._transaction() as session:
                await SearchQueryRepository(session).create(
                    caller_id,
                    query_text,
                    query_type,
                    created_at=self._clock(),
                    results_count=results_count,
                    execution_time_ms=execution_time_ms,
                )
        except Exception as e:
            logger.warning(f"Failed to log {query_type} usage for {caller_id}: {e!r}")

    def cap_results(self, tier: Union[SubscriptionTier, str, None], requested: int) -> int:
        """Requested result count, clamped to the tier's per-request ceiling."""
        return min(requested, get_limits(tier).results_per_request)

    def require_feature(
        self,
        tier: Union[SubscriptionTier, str, None],
        feature: Union[Feature, str],
    ) -> None:
        """
        Raises:
            FeatureNotAvailableError: the tier does not include the feature
        """
        limits = get_limits(tier)
        if not limits.has_feature(feature):
            name = feature.value if isinstance(feature, Feature) else str(feature)
            raise FeatureNotAvailableError(limits.tier.value, name)

    async def status(
        self,
        caller_id: str,
        tier: Union[SubscriptionTier, str, None],
    ) -> QuotaStatus:
        limits = get_limits(tier)
        now = self._clock()
        day_start = utc_day_start(now)

        async with self._transaction() as session:
            used = await SearchQueryRepository(session).count_since(caller_id, day_start)

        remaining = None
        if limits.daily_requests is not None:
            remaining = max(0, limits.daily_requests - used)
        return QuotaStatus(
            caller_id=caller_id,
            tier=limits.tier,
            used_today=used,
            daily_limit=limits.daily_requests,
            remaining=remaining,
            results_per_request=limits.results_per_request,
            batch_size=limits.batch_size,
            features=sorted(f.value for f in limits.features),
            resets_at=day_start + timedelta(days=1),
        )
