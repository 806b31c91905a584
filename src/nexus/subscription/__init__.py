"""
Subscription tiers and quota enforcement.
"""

from nexus.subscription.quota import QuotaDecision, QuotaGate, QuotaStatus
from nexus.subscription.tiers import (
    TIER_LIMITS,
    Feature,
    SubscriptionTier,
    TierLimits,
    get_limits,
    has_feature,
    resolve_tier,
)

__all__ = [
    "Feature",
    "SubscriptionTier",
    "TierLimits",
    "TIER_LIMITS",
    "get_limits",
    "has_feature",
    "resolve_tier",
    "QuotaGate",
    "QuotaDecision",
    "QuotaStatus",
]
