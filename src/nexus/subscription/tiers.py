"""
Subscription tier table.

Every ceiling and feature flag lives here, keyed by tier. Callers resolve a
tier once per request and read its limits; nothing else hardcodes them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union


class SubscriptionTier(str, Enum):
    """Subscription class supplied by the billing layer."""

    FREE = "free"
    BASIC = "basic"
    PRO = "pro"
    ENTERPRISE = "enterprise"


class Feature(str, Enum):
    BASIC_SEARCH = "basic_search"
    COMPANY_PROFILES = "company_profiles"
    SEARCH_HISTORY = "search_history"
    EXPORT_CSV = "export_csv"
    ADVANCED_FILTERS = "advanced_filters"
    RELATIONSHIP_MAPPING = "relationship_mapping"
    RISK_ANALYSIS = "risk_analysis"
    SAVED_COMPANIES = "saved_companies"
    BULK_OPERATIONS = "bulk_operations"
    API_ACCESS = "api_access"
    TEAM_MANAGEMENT = "team_management"
    CUSTOM_REPORTS = "custom_reports"
    PRIORITY_SUPPORT = "priority_support"


@dataclass(frozen=True)
class TierLimits:
    """
    Ceilings for one tier.

    daily_requests is None for unlimited; batch_size is None when the tier
    has no batch access at all.
    """

    tier: SubscriptionTier
    daily_requests: Optional[int]
    results_per_request: int
    batch_size: Optional[int]
    features: frozenset = field(default_factory=frozenset)

    @property
    def unlimited(self) -> bool:
        return self.daily_requests is None

    def has_feature(self, feature: Union[Feature, str]) -> bool:
        try:
            return Feature(feature) in self.features
        except ValueError:
            return False


_FREE_FEATURES = frozenset({Feature.BASIC_SEARCH, Feature.COMPANY_PROFILES})
_BASIC_FEATURES = _FREE_FEATURES | {Feature.SEARCH_HISTORY, Feature.EXPORT_CSV}
_PRO_FEATURES = _BASIC_FEATURES | {
    Feature.ADVANCED_FILTERS,
    Feature.RELATIONSHIP_MAPPING,
    Feature.RISK_ANALYSIS,
    Feature.SAVED_COMPANIES,
    Feature.BULK_OPERATIONS,
}
_ENTERPRISE_FEATURES = _PRO_FEATURES | {
    Feature.API_ACCESS,
    Feature.TEAM_MANAGEMENT,
    Feature.CUSTOM_REPORTS,
    Feature.PRIORITY_SUPPORT,
}

TIER_LIMITS: dict[SubscriptionTier, TierLimits] = {
    SubscriptionTier.FREE: TierLimits(
        tier=SubscriptionTier.FREE,
        daily_requests=5,
        results_per_request=5,
        batch_size=None,
        features=_FREE_FEATURES,
    ),
    SubscriptionTier.BASIC: TierLimits(
        tier=SubscriptionTier.BASIC,
        daily_requests=100,
        results_per_request=20,
        batch_size=None,
        features=_BASIC_FEATURES,
    ),
    SubscriptionTier.PRO: TierLimits(
        tier=SubscriptionTier.PRO,
        daily_requests=1000,
        results_per_request=50,
        batch_size=25,
        features=_PRO_FEATURES,
    ),
    SubscriptionTier.ENTERPRISE: TierLimits(
        tier=SubscriptionTier.ENTERPRISE,
        daily_requests=None,
        results_per_request=100,
        batch_size=100,
        features=_ENTERPRISE_FEATURES,
    ),
}


def resolve_tier(tier: Union[SubscriptionTier, str, None]) -> SubscriptionTier:
    """Resolve a tier name; anything unknown is treated as free."""
    if isinstance(tier, SubscriptionTier):
        return tier
    try:
        return SubscriptionTier((tier or "").strip().lower())
    except ValueError:
        return SubscriptionTier.FREE


def get_limits(tier: Union[SubscriptionTier, str, None]) -> TierLimits:
    return TIER_LIMITS[resolve_tier(tier)]


def has_feature(tier: Union[SubscriptionTier, str, None], feature: Union[Feature, str]) -> bool:
    return get_limits(tier).has_feature(feature)
