"""
Domain: Lead entity and its lifecycle.

Contract excerpts implemented here:
- A Lead is a sellable unit of contractor-opportunity data tied to a brokered job.
- status is one of: draft, active, sold, expired, canceled.
- Legal moves: draft -> active -> sold, or draft/active -> expired/canceled.
  sold, expired and canceled are terminal; no transition moves a Lead backward.
- buyer_id is set if and only if status is sold.
- posted_at is set on the first transition to active and never cleared.

Transitions are modelled as methods returning new instances; the entity itself
is frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import FrozenSet, Mapping, Optional
from uuid import UUID

from .time import require_utc_timestamp


class LeadStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    SOLD = "sold"
    EXPIRED = "expired"
    CANCELED = "canceled"


class BuyerType(str, Enum):
    CONTRACTOR = "contractor"
    BROKER = "broker"
    OTHER = "other"


class InvalidTransitionError(ValueError):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: LeadStatus, target: LeadStatus) -> None:
        super().__init__(
            f'Cannot move lead from "{current.value}" to "{target.value}"'
        )
        self.current = current
        self.target = target


_TRANSITIONS: Mapping[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.DRAFT: frozenset({LeadStatus.ACTIVE, LeadStatus.EXPIRED, LeadStatus.CANCELED}),
    LeadStatus.ACTIVE: frozenset({LeadStatus.SOLD, LeadStatus.EXPIRED, LeadStatus.CANCELED}),
    LeadStatus.SOLD: frozenset(),
    LeadStatus.EXPIRED: frozenset(),
    LeadStatus.CANCELED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[LeadStatus] = frozenset(
    status for status, targets in _TRANSITIONS.items() if not targets
)

# Statuses from which time-based expiry applies.
EXPIRABLE_STATUSES: FrozenSet[LeadStatus] = frozenset({LeadStatus.DRAFT, LeadStatus.ACTIVE})


def can_transition(current: LeadStatus, target: LeadStatus) -> bool:
    """True if `target` is directly reachable from `current`."""

    return target in _TRANSITIONS[current]


def parse_status(value: str) -> LeadStatus:
    try:
        return LeadStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in LeadStatus)
        raise ValueError(f"Invalid status. Must be one of: {allowed}") from None


def parse_buyer_type(value: str) -> BuyerType:
    try:
        return BuyerType(value)
    except ValueError:
        allowed = ", ".join(b.value for b in BuyerType)
        raise ValueError(f"Invalid buyer_type. Must be one of: {allowed}") from None


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Pure domain entity for a marketplace Lead.

    Invariants (checked at construction):
    - price is non-negative.
    - buyer_id, buyer_type and sold_at are present iff status is sold.
    - posted_at is absent while draft and present once active or sold.
    - all timestamps are UTC.
    """

    lead_id: UUID
    job_id: UUID
    status: LeadStatus
    price: Decimal
    created_at: datetime
    posted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    buyer_id: Optional[UUID] = None
    buyer_type: Optional[BuyerType] = None
    sold_at: Optional[datetime] = None
    notes: Optional[str] = None
    service_tags: FrozenSet[str] = field(default_factory=frozenset)
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        for name in ("posted_at", "expires_at", "sold_at", "updated_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

        if self.price < 0:
            raise ValueError("price must be non-negative")

        is_sold = self.status is LeadStatus.SOLD
        buyer_fields = (self.buyer_id, self.buyer_type, self.sold_at)
        if is_sold and any(v is None for v in buyer_fields):
            raise ValueError("A sold lead must record buyer_id, buyer_type and sold_at")
        if not is_sold and any(v is not None for v in buyer_fields):
            raise ValueError("buyer fields may only be set on a sold lead")

        if self.status is LeadStatus.DRAFT and self.posted_at is not None:
            raise ValueError("A draft lead cannot have posted_at")
        if self.status in (LeadStatus.ACTIVE, LeadStatus.SOLD) and self.posted_at is None:
            raise ValueError(f"A {self.status.value} lead must have posted_at")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_purchasable(self) -> bool:
        return self.status is LeadStatus.ACTIVE and self.buyer_id is None

    def _require(self, target: LeadStatus) -> None:
        if not can_transition(self.status, target):
            raise InvalidTransitionError(self.status, target)

    def posted(self, posted_at: datetime) -> "Lead":
        """Return the lead moved draft -> active."""

        require_utc_timestamp("posted_at", posted_at)
        self._require(LeadStatus.ACTIVE)
        return replace(self, status=LeadStatus.ACTIVE, posted_at=posted_at)

    def sold_to(self, buyer_id: UUID, buyer_type: BuyerType, sold_at: datetime) -> "Lead":
        """Return the lead moved active -> sold to a single buyer."""

        require_utc_timestamp("sold_at", sold_at)
        self._require(LeadStatus.SOLD)
        if self.buyer_id is not None:
            raise ValueError("Lead has already been purchased")
        return replace(
            self,
            status=LeadStatus.SOLD,
            buyer_id=buyer_id,
            buyer_type=buyer_type,
            sold_at=sold_at,
        )

    def closed_as(self, target: LeadStatus) -> "Lead":
        """Return the lead moved to a terminal expired/canceled status."""

        if target not in (LeadStatus.EXPIRED, LeadStatus.CANCELED):
            raise ValueError("closed_as only accepts expired or canceled")
        self._require(target)
        return replace(self, status=target)

    def is_past_expiry(self, now: datetime) -> bool:
        require_utc_timestamp("now", now)
        return (
            self.status in EXPIRABLE_STATUSES
            and self.expires_at is not None
            and self.expires_at < now
        )
