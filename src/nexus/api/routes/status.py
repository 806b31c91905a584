"""
Status API routes: caller quota and engine health.
"""

from typing import Any

from fastapi import APIRouter, Query

from nexus.api.deps import CurrentCaller, Service

router = APIRouter()


@router.get("/status")
async def get_status(
    service: Service,
    caller: CurrentCaller,
    check_registry: bool = Query(False, description="Probe the registry API"),
) -> dict[str, Any]:
    """Caller quota usage plus cache and registry status."""
    quota = await service.quota_status(caller.caller_id, caller.tier)
    health = await service.health(check_registry=check_registry)
    return {
        "quota": quota.to_dict(),
        "system": health,
    }
