"""
Tests for `domain/broker_health.py`.

Covers:
- The worked scenario scores end to end.
- Sub-score bucket edges.
- overall rounds half-up and every score stays within 0-100.
- Alerts are derived from the summary and score only.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import product
from uuid import UUID

import pytest

from domain.broker_health import (
    AlertType,
    BrokerSummary,
    RiskLevel,
    activity_score,
    build_health_alerts,
    calculate_health_score,
    conversion_score,
    network_quality_score,
    revenue_trend_score,
    risk_level_for,
    stickiness_score,
    weighted_overall,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
BROKER = UUID("00000000-0000-0000-0000-00000000b001")


def _summary(**overrides) -> BrokerSummary:
    fields = dict(broker_id=BROKER, created_at=NOW - timedelta(days=90))
    fields.update(overrides)
    return BrokerSummary(**fields)


def _scenario() -> BrokerSummary:
    return _summary(
        leads_posted=20,
        leads_closed=8,
        revenue_earned=Decimal("1200"),
        contractor_count=4,
        hes_assessor_count=1,
        inspector_count=1,
        last_activity=NOW - timedelta(days=3),
    )


def test_worked_scenario() -> None:
    score = calculate_health_score(_scenario(), NOW)

    assert score.activity == 80
    assert score.conversion == 85
    assert score.stickiness == 100
    assert score.network_quality == 80
    assert score.revenue_trend == 85
    # 24 + 21.25 + 20 + 12 + 8.5 = 85.75
    assert score.overall == 86
    assert score.risk_level is RiskLevel.LOW


def test_score_is_deterministic() -> None:
    assert calculate_health_score(_scenario(), NOW) == calculate_health_score(_scenario(), NOW)


def test_empty_broker_scores_high_risk() -> None:
    score = calculate_health_score(_summary(), NOW)

    assert (score.activity, score.conversion, score.network_quality, score.revenue_trend) == (0, 0, 0, 0)
    # Never active -> lowest stickiness bucket.
    assert score.stickiness == 20
    assert score.overall == 4
    assert score.risk_level is RiskLevel.HIGH


@pytest.mark.parametrize(
    "posted, expected",
    [(0, 0), (1, 40), (5, 40), (6, 60), (15, 60), (16, 80), (29, 80), (30, 100)],
)
def test_activity_buckets(posted, expected) -> None:
    assert activity_score(posted) == expected


@pytest.mark.parametrize(
    "posted, closed, expected",
    [(0, 0, 0), (10, 0, 0), (100, 1, 30), (10, 1, 50), (10, 2, 70), (10, 3, 85), (10, 5, 100)],
)
def test_conversion_buckets(posted, closed, expected) -> None:
    assert conversion_score(posted, closed) == expected


@pytest.mark.parametrize(
    "days, age, expected",
    [(0, 31, 100), (7, 31, 100), (7, 30, 85), (7.01, 90, 70), (14, 90, 70), (30, 90, 50), (31, 90, 20)],
)
def test_stickiness_buckets(days, age, expected) -> None:
    assert stickiness_score(days, age) == expected


@pytest.mark.parametrize(
    "size, diversity, expected",
    [(0, 0, 0), (1, 1, 40), (3, 1, 60), (6, 2, 80), (10, 2, 80), (10, 3, 100)],
)
def test_network_buckets(size, diversity, expected) -> None:
    assert network_quality_score(size, diversity) == expected


@pytest.mark.parametrize(
    "revenue, expected",
    [("0", 0), ("0.01", 30), ("100", 50), ("500", 70), ("999.99", 70), ("1000", 85), ("5000", 100)],
)
def test_revenue_buckets(revenue, expected) -> None:
    assert revenue_trend_score(Decimal(revenue)) == expected


def test_overall_rounds_half_up() -> None:
    # 0*.3 + 50*.25 + 20*.2 + 0 + 0 = 16.5
    assert weighted_overall(0, 50, 20, 0, 0) == 17
    # 0 + 30*.25 + 20*.2 + 0 + 0 = 11.5
    assert weighted_overall(0, 30, 20, 0, 0) == 12


def test_risk_level_edges() -> None:
    assert risk_level_for(70) is RiskLevel.LOW
    assert risk_level_for(69) is RiskLevel.MEDIUM
    assert risk_level_for(40) is RiskLevel.MEDIUM
    assert risk_level_for(39) is RiskLevel.HIGH


def test_all_scores_stay_in_range() -> None:
    postings = (0, 1, 6, 16, 30, 200)
    closes = (0, 1, 3, 50)
    ages = (0, 10, 45)
    activity = (None, 0, 10, 20, 60)
    for posted, closed, age, last in product(postings, closes, ages, activity):
        summary = _summary(
            created_at=NOW - timedelta(days=age),
            leads_posted=posted,
            leads_closed=min(closed, posted),
            revenue_earned=Decimal(closed * 120),
            contractor_count=closed,
            inspector_count=1 if posted else 0,
            last_activity=None if last is None else NOW - timedelta(days=last),
        )
        score = calculate_health_score(summary, NOW)
        for value in (
            score.overall,
            score.activity,
            score.conversion,
            score.stickiness,
            score.network_quality,
            score.revenue_trend,
        ):
            assert 0 <= value <= 100


def test_now_must_be_utc() -> None:
    with pytest.raises(ValueError):
        calculate_health_score(_scenario(), datetime(2025, 6, 15, 12, 0))


def test_summary_rejects_negative_counts() -> None:
    with pytest.raises(ValueError):
        _summary(leads_posted=-1)


def test_alerts_for_strong_broker() -> None:
    summary = _scenario()
    alerts = build_health_alerts(summary, calculate_health_score(summary, NOW))
    messages = [a.message for a in alerts]

    assert messages == [
        "Broker is performing well across all metrics",
        "Strong 40% conversion rate",
    ]
    assert all(a.type is AlertType.SUCCESS for a in alerts)


def test_alerts_for_struggling_broker() -> None:
    summary = _summary(leads_posted=10, leads_closed=0, contractor_count=1, last_activity=NOW)
    alerts = build_health_alerts(summary, calculate_health_score(summary, NOW))

    assert [(a.type, a.message) for a in alerts] == [
        (AlertType.WARNING, "Low conversion rate: may need lead quality review"),
        (AlertType.INFO, "No inspectors in network: opportunity to add"),
        (AlertType.INFO, "No HES assessors in network: opportunity to add"),
    ]


@pytest.mark.parametrize(
    "posted, closed, shown",
    [
        (8, 5, "63"),  # 62.5%
        (8, 3, "38"),  # 37.5%
        (3, 1, "33"),  # 33.33%
        (1, 1, "100"),
    ],
)
def test_conversion_alert_rounds_half_up(posted, closed, shown) -> None:
    summary = _summary(leads_posted=posted, leads_closed=closed)
    alerts = build_health_alerts(summary, calculate_health_score(summary, NOW))

    assert alerts[-1].message == f"Strong {shown}% conversion rate"
