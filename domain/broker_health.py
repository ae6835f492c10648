"""
Domain: Broker health scoring (pure).

A broker's health is a weighted composite of five bucketed sub-scores:

    activity         30%   leads posted
    conversion       25%   leads closed / leads posted
    stickiness       20%   recency of activity and account age
    network_quality  15%   network size and role diversity
    revenue_trend    10%   revenue earned

overall is the weighted sum rounded half-up; risk_level buckets overall into
low (>= 70), medium (>= 40) and high.

Everything here is a pure function of a BrokerSummary snapshot and an explicit
evaluation time. No I/O, no clock reads, no hidden state.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import List, Optional, Sequence, Tuple
from uuid import UUID

from .time import days_between, require_utc_timestamp

# Weights are expressed in percent so the composite stays in integer arithmetic.
ACTIVITY_WEIGHT: int = 30
CONVERSION_WEIGHT: int = 25
STICKINESS_WEIGHT: int = 20
NETWORK_WEIGHT: int = 15
REVENUE_WEIGHT: int = 10

LOW_RISK_MIN: int = 70
MEDIUM_RISK_MIN: int = 40

# Days since last activity used when a broker has never been active.
NEVER_ACTIVE_DAYS: float = float("inf")

_ACTIVITY_BUCKETS: Sequence[Tuple[int, int]] = ((30, 100), (16, 80), (6, 60), (1, 40))
_CONVERSION_BUCKETS: Sequence[Tuple[Decimal, int]] = (
    (Decimal("0.50"), 100),
    (Decimal("0.30"), 85),
    (Decimal("0.20"), 70),
    (Decimal("0.10"), 50),
)
_REVENUE_BUCKETS: Sequence[Tuple[Decimal, int]] = (
    (Decimal("5000"), 100),
    (Decimal("1000"), 85),
    (Decimal("500"), 70),
    (Decimal("100"), 50),
)


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AlertType(str, Enum):
    SUCCESS = "success"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True, slots=True)
class BrokerSummary:
    """Aggregated broker statistics captured at a single point in time."""

    broker_id: UUID
    created_at: datetime
    leads_posted: int = 0
    leads_closed: int = 0
    revenue_earned: Decimal = Decimal("0")
    contractor_count: int = 0
    hes_assessor_count: int = 0
    inspector_count: int = 0
    last_activity: Optional[datetime] = None
    company_name: Optional[str] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.last_activity is not None:
            require_utc_timestamp("last_activity", self.last_activity)
        counts = (
            self.leads_posted,
            self.leads_closed,
            self.contractor_count,
            self.hes_assessor_count,
            self.inspector_count,
        )
        if min(counts) < 0:
            raise ValueError("broker summary counts must be non-negative")
        if self.revenue_earned < 0:
            raise ValueError("revenue_earned must be non-negative")

    @property
    def network_size(self) -> int:
        return self.contractor_count + self.hes_assessor_count + self.inspector_count

    @property
    def network_diversity(self) -> int:
        """Number of provider roles with at least one member (0-3)."""

        roles = (self.contractor_count, self.hes_assessor_count, self.inspector_count)
        return sum(1 for count in roles if count > 0)

    @property
    def conversion_rate(self) -> Decimal:
        if self.leads_posted <= 0:
            return Decimal("0")
        return Decimal(self.leads_closed) / Decimal(self.leads_posted)


@dataclass(frozen=True, slots=True)
class HealthScore:
    overall: int
    activity: int
    conversion: int
    stickiness: int
    network_quality: int
    revenue_trend: int
    risk_level: RiskLevel


@dataclass(frozen=True, slots=True)
class HealthAlert:
    type: AlertType
    message: str


def activity_score(leads_posted: int) -> int:
    for minimum, score in _ACTIVITY_BUCKETS:
        if leads_posted >= minimum:
            return score
    return 0


def conversion_score(leads_posted: int, leads_closed: int) -> int:
    if leads_posted <= 0:
        return 0
    rate = Decimal(leads_closed) / Decimal(leads_posted)
    for minimum, score in _CONVERSION_BUCKETS:
        if rate >= minimum:
            return score
    return 30 if rate > 0 else 0


def stickiness_score(days_since_activity: float, account_age_days: float) -> int:
    if days_since_activity <= 7:
        return 100 if account_age_days > 30 else 85
    if days_since_activity <= 14:
        return 70
    if days_since_activity <= 30:
        return 50
    return 20


def network_quality_score(network_size: int, diversity: int) -> int:
    if network_size >= 10 and diversity >= 3:
        return 100
    if network_size >= 6:
        return 80
    if network_size >= 3:
        return 60
    if network_size >= 1:
        return 40
    return 0


def revenue_trend_score(revenue_earned: Decimal) -> int:
    for minimum, score in _REVENUE_BUCKETS:
        if revenue_earned >= minimum:
            return score
    return 30 if revenue_earned > 0 else 0


def risk_level_for(overall: int) -> RiskLevel:
    if overall >= LOW_RISK_MIN:
        return RiskLevel.LOW
    if overall >= MEDIUM_RISK_MIN:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


def weighted_overall(
    activity: int,
    conversion: int,
    stickiness: int,
    network_quality: int,
    revenue_trend: int,
) -> int:
    """Weighted composite rounded half-up."""

    total = (
        activity * ACTIVITY_WEIGHT
        + conversion * CONVERSION_WEIGHT
        + stickiness * STICKINESS_WEIGHT
        + network_quality * NETWORK_WEIGHT
        + revenue_trend * REVENUE_WEIGHT
    )
    return (total + 50) // 100


def calculate_health_score(summary: BrokerSummary, now: datetime) -> HealthScore:
    """
    Compute the health score for a broker snapshot as of `now`.

    Example:
        summary = BrokerSummary(broker_id=..., created_at=now - timedelta(days=90),
                                leads_posted=20, leads_closed=8, revenue_earned=Decimal("1200"),
                                contractor_count=4, hes_assessor_count=1, inspector_count=1,
                                last_activity=now - timedelta(days=3))
        calculate_health_score(summary, now)
        # activity=80 conversion=85 stickiness=100 network_quality=80 revenue_trend=85
        # overall=86 risk_level=low
    """

    require_utc_timestamp("now", now)

    if summary.last_activity is None:
        days_since_activity = NEVER_ACTIVE_DAYS
    else:
        days_since_activity = days_between(summary.last_activity, now)
    account_age_days = days_between(summary.created_at, now)

    activity = activity_score(summary.leads_posted)
    conversion = conversion_score(summary.leads_posted, summary.leads_closed)
    stickiness = stickiness_score(days_since_activity, account_age_days)
    network_quality = network_quality_score(summary.network_size, summary.network_diversity)
    revenue_trend = revenue_trend_score(summary.revenue_earned)

    overall = weighted_overall(activity, conversion, stickiness, network_quality, revenue_trend)

    return HealthScore(
        overall=overall,
        activity=activity,
        conversion=conversion,
        stickiness=stickiness,
        network_quality=network_quality,
        revenue_trend=revenue_trend,
        risk_level=risk_level_for(overall),
    )


def build_health_alerts(summary: BrokerSummary, score: HealthScore) -> List[HealthAlert]:
    """
    Advisory alerts derived from the current summary and score only.

    Alerts are never persisted; callers regenerate them on every request.
    """

    alerts: List[HealthAlert] = []

    if score.overall >= 80:
        alerts.append(HealthAlert(AlertType.SUCCESS, "Broker is performing well across all metrics"))
    if score.activity < 40:
        alerts.append(HealthAlert(AlertType.WARNING, "Low activity: consider outreach to re-engage"))
    if score.conversion < 40 and summary.leads_posted > 5:
        alerts.append(HealthAlert(AlertType.WARNING, "Low conversion rate: may need lead quality review"))
    if score.network_quality < 40:
        alerts.append(HealthAlert(AlertType.INFO, "Small network: suggest expanding contractor base"))
    if summary.inspector_count == 0:
        alerts.append(HealthAlert(AlertType.INFO, "No inspectors in network: opportunity to add"))
    if summary.hes_assessor_count == 0:
        alerts.append(HealthAlert(AlertType.INFO, "No HES assessors in network: opportunity to add"))

    rate_percent = summary.conversion_rate * 100
    if rate_percent >= 30:
        alerts.append(
            HealthAlert(
                AlertType.SUCCESS,
                f"Strong {rate_percent.quantize(Decimal('1'), rounding=ROUND_HALF_UP)}% conversion rate",
            )
        )

    return alerts
