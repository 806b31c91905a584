"""
Risk summary computation for companies.

The engine treats risk analysis as a pluggable collaborator: it hands over a
resolved CompanyDetails and gets back a RiskSummary. The default analyzer is
rule based and considers:
- Company status (dissolved, liquidation, strike-off)
- Age (recently incorporated)
- Officers (none active, high turnover)
- SIC codes commonly used by shell companies
- Control structure (no controllers, corporate controllers abroad)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable

from nexus.db.orm import utcnow
from nexus.schemas.records import CompanyDetails, CompanyStatus, RiskFactor, RiskSummary

logger = logging.getLogger(__name__)


class RiskAnalyzer(ABC):
    """Collaborator producing a risk summary for a company."""

    name = "base"

    @abstractmethod
    async def analyze(self, details: CompanyDetails) -> RiskSummary:
        """
        Compute a risk summary.

        Raises:
            Exception: any failure; the caller keeps serving the company
        """
        pass


@dataclass
class _Signal:
    category: str
    severity: str
    weight: float
    description: str


class RuleBasedRiskAnalyzer(RiskAnalyzer):
    """
    Deterministic risk scoring from registry attributes.

    Signal weights add up to a 0-1 total that is mapped onto a 1-10 score.
    """

    name = "rule_based"

    # SIC codes commonly used by shell companies
    SHELL_SIC_CODES = {
        "64209",  # Activities of other holding companies
        "64999",  # Financial intermediation not elsewhere classified
        "70100",  # Activities of head offices
        "70229",  # Management consultancy
        "82990",  # Other business support
        "99999",  # Dormant company
    }

    # Thresholds
    RECENTLY_FORMED_MONTHS = 12
    HIGH_TURNOVER_RESIGNATIONS = 3

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def _signals(self, details: CompanyDetails, today: date) -> list[_Signal]:
        company = details.company
        signals = []

        if company.status in (CompanyStatus.DISSOLVED, CompanyStatus.STRIKE_OFF):
            signals.append(_Signal("status", "high", 0.4, f"Company is {company.status.value}"))
        elif company.status == CompanyStatus.LIQUIDATION:
            signals.append(_Signal("status", "high", 0.35, "Company is in liquidation"))
        elif company.status == CompanyStatus.SUSPENDED:
            signals.append(
                _Signal("status", "medium", 0.2, "Company is in administration or suspended")
            )

        if company.incorporation_date:
            months_old = (today - company.incorporation_date).days / 30
            if months_old < self.RECENTLY_FORMED_MONTHS:
                signals.append(
                    _Signal(
                        "age",
                        "medium",
                        0.15 * (1 - max(months_old, 0) / self.RECENTLY_FORMED_MONTHS),
                        f"Incorporated {int(months_old)} months ago",
                    )
                )

        active_officers = [o for o in details.officers if o.is_active]
        if details.officers and not active_officers:
            signals.append(_Signal("officers", "high", 0.2, "No active officers"))

        year_ago = today - timedelta(days=365)
        resignations = [
            o for o in details.officers if o.resigned_on is not None and o.resigned_on >= year_ago
        ]
        if len(resignations) >= self.HIGH_TURNOVER_RESIGNATIONS:
            signals.append(
                _Signal(
                    "officers",
                    "medium",
                    min(0.05 * len(resignations), 0.2),
                    f"{len(resignations)} officer resignations in the last 12 months",
                )
            )

        shell_codes = sorted(set(company.sic_codes) & self.SHELL_SIC_CODES)
        if shell_codes:
            signals.append(
                _Signal(
                    "industry",
                    "low",
                    0.1,
                    f"Generic activity codes: {', '.join(shell_codes)}",
                )
            )

        if company.status == CompanyStatus.ACTIVE and not details.controllers:
            signals.append(
                _Signal("control", "medium", 0.1, "No persons with significant control listed")
            )

        foreign_parents = [
            r
            for r in details.relationships
            if r.to_company_number == company.company_number and r.confidence_score < 1.0
        ]
        if foreign_parents:
            signals.append(
                _Signal(
                    "control",
                    "medium",
                    0.15,
                    "Controlled by a corporate entity registered outside the UK",
                )
            )

        return signals

    @staticmethod
    def _level(score: int) -> str:
        if score <= 3:
            return "low"
        if score <= 6:
            return "medium"
        if score <= 8:
            return "high"
        return "critical"

    async def analyze(self, details: CompanyDetails) -> RiskSummary:
        now = self._clock()
        signals = self._signals(details, now.date())

        total = min(sum(s.weight for s in signals), 1.0)
        score = max(1, min(10, 1 + round(total * 9)))

        logger.debug(
            f"Risk score {score} for {details.company.company_number} from {len(signals)} signals"
        )
        return RiskSummary(
            score=score,
            level=self._level(score),
            factors=[
                RiskFactor(category=s.category, severity=s.severity, description=s.description)
                for s in signals
            ],
            analyzer=self.name,
            generated_at=now,
        )
