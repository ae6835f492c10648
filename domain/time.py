"""
Domain time utilities (pure).

Centralized timestamp validation and elapsed-time helpers.

Behavior and error messages must remain consistent across the domain model.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY: int = 86_400


def require_utc_timestamp(name: str, value: datetime) -> None:
    """
    Enforces the contract requirement that timestamps are UTC.

    Invariants:
    - Timestamps must be timezone-aware.
    - Timestamps must have UTC offset 0.
    """

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    if value.utcoffset() != timedelta(0):
        raise ValueError(f"{name} must be a UTC timestamp (offset 0)")


def as_utc(name: str, value: datetime) -> datetime:
    """Convert an offset-aware timestamp to UTC. Naive timestamps are rejected."""

    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware (UTC)")
    return value.astimezone(timezone.utc)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from `start` to `end` (negative if end precedes start)."""

    require_utc_timestamp("start", start)
    require_utc_timestamp("end", end)
    return (end - start).total_seconds() / SECONDS_PER_DAY
