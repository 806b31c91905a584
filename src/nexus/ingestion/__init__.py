"""
Company registry access for Nexus.

Provides:
- A sliding-window rate limiter shared by all calls of one adapter
- The registry adapter interface used by the synchronizer
- The Companies House REST API adapter
"""

from nexus.ingestion.base_adapter import BaseRegistryAdapter
from nexus.ingestion.companies_house import CompaniesHouseAdapter
from nexus.ingestion.rate_limiter import RateLimitConfig, RateLimitedClient, RateLimiter

__all__ = [
    # Base
    "BaseRegistryAdapter",
    # Rate limiting
    "RateLimiter",
    "RateLimitConfig",
    "RateLimitedClient",
    # Registries
    "CompaniesHouseAdapter",
]
