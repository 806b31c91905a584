"""
FastAPI dependencies for the API.

Provides:
- The registry service built during app startup
- Caller identity and subscription tier supplied by the upstream auth layer
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Request, status

from nexus.service import RegistryService
from nexus.subscription.tiers import SubscriptionTier, resolve_tier

logger = logging.getLogger(__name__)


def get_service(request: Request) -> RegistryService:
    """Get the registry service stored on the app during startup."""
    return request.app.state.service


# Type alias for dependency injection
Service = Annotated[RegistryService, Depends(get_service)]


@dataclass
class Caller:
    """Authenticated caller as resolved by the auth/billing layer."""

    caller_id: str
    tier: SubscriptionTier


async def get_caller(
    x_caller_id: Annotated[Optional[str], Header()] = None,
    x_subscription_tier: Annotated[Optional[str], Header()] = None,
) -> Caller:
    """
    Read caller identity from the headers set by the auth gateway.

    Unknown or missing tiers resolve to free.

    Raises:
        HTTPException: 401 if no caller id is present
    """
    if not x_caller_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    tier = resolve_tier(x_subscription_tier)
    if x_subscription_tier and tier.value != x_subscription_tier.strip().lower():
        logger.warning(f"Unknown subscription tier {x_subscription_tier!r}, using free")
    return Caller(caller_id=x_caller_id, tier=tier)


CurrentCaller = Annotated[Caller, Depends(get_caller)]
