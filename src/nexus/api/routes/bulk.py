"""
Bulk operation API routes.
"""

from typing import Any, Optional, Union

from fastapi import APIRouter
from pydantic import BaseModel, Field

from nexus.api.deps import CurrentCaller, Service
from nexus.batch.orchestrator import BatchOperation, BatchOptions, BatchResult

router = APIRouter()


class BulkSearchItem(BaseModel):
    id: Optional[str] = Field(default=None, description="Client-provided id for tracking")
    query: str


class BulkRequest(BaseModel):
    """Bulk search or detail request."""

    operation: BatchOperation
    items: list[Union[BulkSearchItem, str]] = Field(..., max_length=100)
    options: BatchOptions = Field(default_factory=BatchOptions)


def _as_item(item: Union[BulkSearchItem, str]) -> Any:
    if isinstance(item, BulkSearchItem):
        return item.model_dump()
    return item


@router.post("/bulk", response_model=BatchResult)
async def bulk_operation(request: BulkRequest, service: Service, caller: CurrentCaller):
    """
    Run up to the tier's batch ceiling of searches or detail fetches.

    Every item gets its own outcome; failing items never abort the batch.
    Requires the bulk_operations feature.
    """
    return await service.batch(
        caller.caller_id,
        caller.tier,
        request.operation,
        [_as_item(item) for item in request.items],
        request.options,
    )
