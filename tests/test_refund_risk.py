"""Tests for `domain/refund_risk.py`."""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.refund_risk import ContractorRefundHistory, calculate_refund_risk

CLEAN = ContractorRefundHistory(recent_requests=0, lifetime_requests=0, lifetime_purchases=10)


def test_worked_example_scores_75() -> None:
    history = ContractorRefundHistory(recent_requests=3, lifetime_requests=3, lifetime_purchases=20)

    # frequent (30) + terse notes (15) + immediate (20) + high value (10); rate 15% adds nothing
    assert calculate_refund_risk(history, Decimal("150"), 0.2, "meh!!") == 75


def test_clean_history_scores_zero() -> None:
    assert calculate_refund_risk(CLEAN, Decimal("50"), 10, "Homeowner moved out of state last week") == 0


@pytest.mark.parametrize(
    "history, amount, days, notes, expected",
    [
        (ContractorRefundHistory(2, 2, 100), Decimal("50"), 5, None, 0),
        (ContractorRefundHistory(3, 3, 100), Decimal("50"), 5, None, 30),
        (ContractorRefundHistory(0, 4, 10), Decimal("50"), 5, None, 25),
        (ContractorRefundHistory(0, 3, 10), Decimal("50"), 5, None, 0),
        (ContractorRefundHistory(0, 5, 0), Decimal("50"), 5, None, 0),
        (CLEAN, Decimal("50"), 5, "short", 15),
        (CLEAN, Decimal("50"), 5, "   ", 0),
        (CLEAN, Decimal("50"), 0.99, None, 20),
        (CLEAN, Decimal("50"), 1, None, 0),
        (CLEAN, Decimal("100"), 5, None, 0),
        (CLEAN, Decimal("100.01"), 5, None, 10),
    ],
)
def test_individual_signals(history, amount, days, notes, expected) -> None:
    assert calculate_refund_risk(history, amount, days, notes) == expected


def test_score_is_bounded_and_deterministic() -> None:
    worst = ContractorRefundHistory(recent_requests=50, lifetime_requests=50, lifetime_purchases=1)
    first = calculate_refund_risk(worst, Decimal("9999"), 0, "x")
    second = calculate_refund_risk(worst, Decimal("9999"), 0, "x")

    assert first == second == 100


def test_history_counts_must_be_non_negative() -> None:
    with pytest.raises(ValueError):
        ContractorRefundHistory(recent_requests=-1, lifetime_requests=0, lifetime_purchases=0)
