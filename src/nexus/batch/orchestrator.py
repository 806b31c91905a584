"""
Batch orchestration with per-item failure isolation.

Each item runs through the same pipeline as a single request. A failing item
becomes a failed outcome; it never aborts the rest of the batch, and outcomes
already produced are never rolled back.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from nexus.config import settings
from nexus.errors import NexusError, QuotaExceededError, ValidationError
from nexus.schemas.records import CompanyDetails, SearchResult, SourcePreference
from nexus.subscription.quota import QuotaGate
from nexus.subscription.tiers import Feature, SubscriptionTier, get_limits
from nexus.sync.merger import ResultMerger
from nexus.sync.synchronizer import Synchronizer

logger = logging.getLogger(__name__)


class BatchOperation(str, Enum):
    SEARCH = "search"
    DETAILS = "details"


class ItemStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class BatchOptions(BaseModel):
    """Options applied to every item of a batch."""

    limit: int = Field(default=5, ge=1, le=100, description="Results per search item")
    source: SourcePreference = SourcePreference.BOTH
    include_officers: bool = True
    include_controllers: bool = True
    force_refresh: bool = False


class BatchItemOutcome(BaseModel):
    index: int
    key: str
    status: ItemStatus
    data: Optional[Union[SearchResult, CompanyDetails]] = None
    error: Optional[dict[str, Any]] = None
    execution_time_ms: int = 0


class BatchResult(BaseModel):
    operation: BatchOperation
    outcomes: list[BatchItemOutcome]
    succeeded: int
    failed: int
    total: int
    execution_time_ms: int


def _item_key(item: Any) -> str:
    if isinstance(item, dict):
        return str(item.get("id") or item.get("query") or item.get("company_number") or "")
    return str(item)


def _item_target(item: Any) -> str:
    """Search term or company number an item refers to."""
    if isinstance(item, dict):
        return str(item.get("query") or item.get("company_number") or "")
    return str(item)


class BatchOrchestrator:
    """
    Runs bulk searches or detail fetches with bounded concurrency.

    Batch access and the batch size ceiling both come from the caller's tier.
    """

    def __init__(
        self,
        synchronizer: Synchronizer,
        merger: ResultMerger,
        quota: QuotaGate,
        concurrency: Optional[int] = None,
    ):
        self.synchronizer = synchronizer
        self.merger = merger
        self.quota = quota
        self.concurrency = concurrency or settings.batch_concurrency

    def check_access(self, tier: Union[SubscriptionTier, str, None], size: int) -> None:
        """
        Raises:
            FeatureNotAvailableError: tier has no batch access
            QuotaExceededError: more items than the tier's batch ceiling
            ValidationError: empty batch
        """
        limits = get_limits(tier)
        self.quota.require_feature(limits.tier, Feature.BULK_OPERATIONS)
        if size < 1:
            raise ValidationError("Batch must contain at least one item", field="items")
        if limits.batch_size is not None and size > limits.batch_size:
            raise QuotaExceededError(limits.tier.value, limits.batch_size, used=size, scope="batch")

    async def run(
        self,
        caller_id: str,
        tier: Union[SubscriptionTier, str, None],
        operation: Union[BatchOperation, str],
        items: list[Any],
        options: Optional[BatchOptions] = None,
    ) -> BatchResult:
        """
        Run every item and collect ordered outcomes.

        Items are query strings or company numbers, or {"query": ..., "id": ...}
        dicts for either operation.
        """
        try:
            operation = BatchOperation(operation)
        except ValueError:
            raise ValidationError(
                f"Invalid operation {operation!r}. Must be 'search' or 'details'",
                field="operation",
            ) from None

        self.check_access(tier, len(items))
        options = options or BatchOptions()
        limits = get_limits(tier)
        started = time.perf_counter()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(index: int, item: Any) -> BatchItemOutcome:
            async with semaphore:
                return await self._run_item(caller_id, limits.tier, operation, index, item, options)

        outcomes = await asyncio.gather(*(bounded(i, item) for i, item in enumerate(items)))

        succeeded = sum(1 for o in outcomes if o.status == ItemStatus.SUCCEEDED)
        failed = len(outcomes) - succeeded
        elapsed = int((time.perf_counter() - started) * 1000)
        logger.info(
            f"Batch {operation.value} for {caller_id}: {succeeded} succeeded, {failed} failed "
            f"in {elapsed}ms"
        )
        return BatchResult(
            operation=operation,
            outcomes=list(outcomes),
            succeeded=succeeded,
            failed=failed,
            total=len(outcomes),
            execution_time_ms=elapsed,
        )

    async def _run_item(
        self,
        caller_id: str,
        tier: SubscriptionTier,
        operation: BatchOperation,
        index: int,
        item: Any,
        options: BatchOptions,
    ) -> BatchItemOutcome:
        key = _item_key(item)
        started = time.perf_counter()
        results_count = 0
        query_type = "bulk_search" if operation == BatchOperation.SEARCH else "bulk_company_details"
        try:
            if operation == BatchOperation.SEARCH:
                data = await self.merger.search(
                    _item_target(item),
                    limit=self.quota.cap_results(tier, options.limit),
                    source=options.source,
                )
                results_count = data.total
            else:
                data = await self.synchronizer.get_details(
                    _item_target(item),
                    force_refresh=options.force_refresh,
                    include_officers=options.include_officers,
                    include_controllers=options.include_controllers,
                )
                results_count = 1
            outcome = BatchItemOutcome(index=index, key=key, status=ItemStatus.SUCCEEDED, data=data)
        except NexusError as e:
            logger.warning(f"Batch item {index} ({key!r}) failed: {e}")
            outcome = BatchItemOutcome(index=index, key=key, status=ItemStatus.FAILED, error=e.to_dict())
        except Exception:
            logger.exception(f"Batch item {index} ({key!r}) raised unexpectedly")
            outcome = BatchItemOutcome(
                index=index,
                key=key,
                status=ItemStatus.FAILED,
                error={"kind": "error", "message": "Unexpected error processing item"},
            )

        outcome.execution_time_ms = int((time.perf_counter() - started) * 1000)
        await self.quota.record(
            caller_id,
            key,
            query_type,
            results_count=results_count,
            execution_time_ms=outcome.execution_time_ms,
        )
        return outcome
