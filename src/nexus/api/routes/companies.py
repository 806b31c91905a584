"""
Company API routes.

Search across the cache and the registry, and company profiles with optional
risk analysis.
"""

from fastapi import APIRouter, Query, Response

from nexus.api.deps import CurrentCaller, Service
from nexus.schemas.records import CompanyDetails, SearchResult, SourcePreference
from nexus.sync.normalize import MAX_SEARCH_TERM_LENGTH

router = APIRouter()


@router.get("/search", response_model=SearchResult)
async def search_companies(
    service: Service,
    caller: CurrentCaller,
    q: str = Query(..., min_length=1, max_length=MAX_SEARCH_TERM_LENGTH, description="Name or number"),
    limit: int = Query(20, ge=1, le=100, description="Maximum results (capped by tier)"),
    source: SourcePreference = Query(SourcePreference.BOTH, description="local, registry or both"),
    page: int = Query(1, ge=1, description="1-based page of limit-sized results"),
):
    """
    Search companies by name or company number.

    Cached results come first; the registry fills up the rest. has_more tells
    whether a next page exists. Counts against the caller's daily quota.
    """
    return await service.search(
        caller.caller_id, caller.tier, q, limit=limit, source=source, page=page
    )


@router.head("/search")
async def search_quota(service: Service, caller: CurrentCaller) -> Response:
    """Report remaining search quota in headers without spending any."""
    quota = await service.quota_status(caller.caller_id, caller.tier)
    headers = {
        "X-Search-Limit": "unlimited" if quota.daily_limit is None else str(quota.daily_limit),
        "X-Search-Remaining": "unlimited" if quota.remaining is None else str(quota.remaining),
        "X-Subscription-Tier": quota.tier.value,
        "X-Results-Limit": str(quota.results_per_request),
    }
    return Response(status_code=200, headers=headers)


@router.get("/{company_number}", response_model=CompanyDetails)
async def get_company(
    company_number: str,
    service: Service,
    caller: CurrentCaller,
    refresh: bool = Query(False, description="Bypass the cache and fetch from the registry"),
    include_officers: bool = Query(True),
    include_controllers: bool = Query(True),
):
    """
    Get a company profile with officers and persons with significant control.

    Served from the cache when synchronized within the freshness window.
    Stale cached data is returned with fetch_error set when the registry fails.
    """
    return await service.get_details(
        caller.caller_id,
        caller.tier,
        company_number,
        force_refresh=refresh,
        include_officers=include_officers,
        include_controllers=include_controllers,
    )


@router.get("/{company_number}/analysis", response_model=CompanyDetails)
async def get_company_analysis(
    company_number: str,
    service: Service,
    caller: CurrentCaller,
    refresh: bool = Query(False),
):
    """Company profile with a risk summary. Requires the risk_analysis feature."""
    return await service.get_details(
        caller.caller_id,
        caller.tier,
        company_number,
        force_refresh=refresh,
        include_analysis=True,
    )
