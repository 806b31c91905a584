"""
Error taxonomy for the registry synchronization engine.

Every error raised across a component boundary derives from NexusError so the
HTTP layer and the batch orchestrator can classify failures without knowing
which component produced them.
"""

from typing import Any, Optional


class NexusError(Exception):
    """Base exception for all engine errors."""

    kind = "error"
    retryable = True

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for API responses and batch outcomes."""
        return {"kind": self.kind, "message": self.message}


class NotFoundError(NexusError):
    """Entity is absent both locally and upstream."""

    kind = "not_found"
    retryable = False

    def __init__(self, company_number: str, message: Optional[str] = None):
        self.company_number = company_number
        super().__init__(message or f"Company not found: {company_number}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["company_number"] = self.company_number
        return data


class UpstreamError(NexusError):
    """A registry call failed. Carries the upstream status code when known."""

    kind = "upstream_error"

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["status_code"] = self.status_code
        return data


class QuotaExceededError(NexusError):
    """Caller is over the daily or per-request ceiling for their tier."""

    kind = "quota_exceeded"
    retryable = False

    def __init__(
        self,
        tier: str,
        ceiling: int,
        used: Optional[int] = None,
        scope: str = "daily",
    ):
        self.tier = tier
        self.ceiling = ceiling
        self.used = used
        self.scope = scope
        if scope == "daily":
            message = f"Daily request limit of {ceiling} reached for {tier} tier"
        else:
            message = f"Maximum {ceiling} items allowed per {scope} for {tier} tier"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {
                "tier": self.tier,
                "limit": self.ceiling,
                "used": self.used,
                "scope": self.scope,
                "upgrade_required": True,
            }
        )
        return data


class FeatureNotAvailableError(NexusError):
    """The caller's tier does not include the requested feature."""

    kind = "feature_not_available"
    retryable = False

    def __init__(self, tier: str, feature: str):
        self.tier = tier
        self.feature = feature
        super().__init__(f"Feature '{feature}' is not available on the {tier} tier")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            {"tier": self.tier, "feature": self.feature, "upgrade_required": True}
        )
        return data


class ValidationError(NexusError):
    """Malformed identifier, search term or pagination input."""

    kind = "validation_error"
    retryable = False

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["field"] = self.field
        return data
