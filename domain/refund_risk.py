"""
Domain: Refund risk scoring (pure).

The risk score is an advisory 0-100 heuristic shown to reviewers. It never
approves or denies a request on its own.

Signals (additive, capped at 100):
- more than 2 refund requests by the contractor in the trailing 7 days  +30
- lifetime refund requests / completed purchases above 30%               +25
- notes present but shorter than 10 characters                           +15
- request made less than 1 day after purchase                            +20
- payment amount above $100                                              +10

Each signal is its own function so thresholds can be tested in isolation.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

MAX_RISK_SCORE: int = 100

RECENT_WINDOW_DAYS: int = 7
RECENT_REQUESTS_THRESHOLD: int = 2
RECENT_REQUESTS_POINTS: int = 30

REFUND_RATE_THRESHOLD: Decimal = Decimal("0.30")
REFUND_RATE_POINTS: int = 25

TERSE_NOTES_MIN_LENGTH: int = 10
TERSE_NOTES_POINTS: int = 15

IMMEDIATE_REQUEST_DAYS: int = 1
IMMEDIATE_REQUEST_POINTS: int = 20

HIGH_VALUE_AMOUNT: Decimal = Decimal("100")
HIGH_VALUE_POINTS: int = 10


@dataclass(frozen=True, slots=True)
class ContractorRefundHistory:
    """
    Counts describing a contractor's refund behaviour at scoring time.

    recent_requests: refund requests in the trailing RECENT_WINDOW_DAYS
    lifetime_requests: all refund requests ever submitted
    lifetime_purchases: completed payments ever made
    """

    recent_requests: int
    lifetime_requests: int
    lifetime_purchases: int

    def __post_init__(self) -> None:
        if min(self.recent_requests, self.lifetime_requests, self.lifetime_purchases) < 0:
            raise ValueError("refund history counts must be non-negative")


def frequent_requests_points(history: ContractorRefundHistory) -> int:
    if history.recent_requests > RECENT_REQUESTS_THRESHOLD:
        return RECENT_REQUESTS_POINTS
    return 0


def refund_rate_points(history: ContractorRefundHistory) -> int:
    # No purchases means no meaningful rate.
    if history.lifetime_purchases <= 0:
        return 0
    rate = Decimal(history.lifetime_requests) / Decimal(history.lifetime_purchases)
    return REFUND_RATE_POINTS if rate > REFUND_RATE_THRESHOLD else 0


def terse_notes_points(notes: Optional[str]) -> int:
    text = (notes or "").strip()
    if text and len(text) < TERSE_NOTES_MIN_LENGTH:
        return TERSE_NOTES_POINTS
    return 0


def immediate_request_points(days_since_purchase: float) -> int:
    return IMMEDIATE_REQUEST_POINTS if days_since_purchase < IMMEDIATE_REQUEST_DAYS else 0


def high_value_points(amount: Decimal) -> int:
    return HIGH_VALUE_POINTS if amount > HIGH_VALUE_AMOUNT else 0


def calculate_refund_risk(
    history: ContractorRefundHistory,
    amount: Decimal,
    days_since_purchase: float,
    notes: Optional[str] = None,
) -> int:
    """
    Score a refund request.

    Deterministic: identical inputs always produce the identical score.

    Example:
        history = ContractorRefundHistory(recent_requests=3, lifetime_requests=3, lifetime_purchases=20)
        calculate_refund_risk(history, Decimal("150"), 0.2, "meh!!")
        # 30 + 15 + 20 + 10 = 75
    """

    score = (
        frequent_requests_points(history)
        + refund_rate_points(history)
        + terse_notes_points(notes)
        + immediate_request_points(days_since_purchase)
        + high_value_points(amount)
    )
    return max(0, min(score, MAX_RISK_SCORE))
