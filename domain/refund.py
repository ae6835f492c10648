"""
Domain: Refund requests.

Contract excerpts implemented here:
- A RefundRequest references one Payment, one contractor, one Lead and a lead type.
- risk_score is computed once at creation and never recomputed.
- status moves only pending -> {more_info_requested, approved, denied} and
  more_info_requested -> {approved, denied}. approved and denied are terminal.
- more_info_requested never returns to pending.
- Once an approval has claimed a request, the only remaining decision is approval.
- Requests are never deleted.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Mapping, Optional
from uuid import UUID

from .payment import LeadType
from .time import days_between, require_utc_timestamp

REFUND_WINDOW_DAYS: int = 30


class RefundStatus(str, Enum):
    PENDING = "pending"
    MORE_INFO_REQUESTED = "more_info_requested"
    APPROVED = "approved"
    DENIED = "denied"


class RefundReasonCategory(str, Enum):
    NO_RESPONSE = "no_response"
    COMPETITOR = "competitor"
    BAD_QUALITY = "bad_quality"
    NOT_INTERESTED = "not_interested"
    DUPLICATE = "duplicate"
    OTHER = "other"

    @property
    def label(self) -> str:
        return REFUND_REASON_LABELS[self]


REFUND_REASON_LABELS: Mapping[RefundReasonCategory, str] = {
    RefundReasonCategory.NO_RESPONSE: "No homeowner response",
    RefundReasonCategory.COMPETITOR: "Already working with competitor",
    RefundReasonCategory.BAD_QUALITY: "Invalid / bad lead quality",
    RefundReasonCategory.NOT_INTERESTED: "Customer not interested",
    RefundReasonCategory.DUPLICATE: "Duplicate lead",
    RefundReasonCategory.OTHER: "Other",
}

_TRANSITIONS: Mapping[RefundStatus, FrozenSet[RefundStatus]] = {
    RefundStatus.PENDING: frozenset(
        {RefundStatus.MORE_INFO_REQUESTED, RefundStatus.APPROVED, RefundStatus.DENIED}
    ),
    RefundStatus.MORE_INFO_REQUESTED: frozenset({RefundStatus.APPROVED, RefundStatus.DENIED}),
    RefundStatus.APPROVED: frozenset(),
    RefundStatus.DENIED: frozenset(),
}

# Statuses a reviewer may still decide on.
REVIEWABLE_STATUSES: FrozenSet[RefundStatus] = frozenset(
    {RefundStatus.PENDING, RefundStatus.MORE_INFO_REQUESTED}
)


class InvalidRefundTransitionError(ValueError):
    def __init__(self, current: RefundStatus, target: RefundStatus, action: str) -> None:
        super().__init__(f'Cannot {action} a refund with status "{current.value}"')
        self.current = current
        self.target = target


def can_transition(current: RefundStatus, target: RefundStatus) -> bool:
    return target in _TRANSITIONS[current]


def is_within_refund_window(purchased_at: datetime, now: datetime) -> bool:
    """
    True while a refund may still be requested.

    The window is inclusive: a request made exactly REFUND_WINDOW_DAYS after
    purchase is still accepted.
    """

    return days_between(purchased_at, now) <= REFUND_WINDOW_DAYS


@dataclass(frozen=True, slots=True)
class RefundRequest:
    """
    Immutable snapshot of a refund request.

    Review actions return new instances; risk_score is carried over untouched.
    """

    request_id: UUID
    payment_id: UUID
    contractor_id: UUID
    lead_id: UUID
    lead_type: LeadType
    reason: str
    reason_category: RefundReasonCategory
    risk_score: int
    status: RefundStatus
    requested_date: datetime
    notes: Optional[str] = None
    info_requested: Optional[str] = None
    info_requested_date: Optional[datetime] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_date: Optional[datetime] = None
    refund_date: Optional[datetime] = None
    refund_reference: Optional[str] = None
    # Set once an approval has claimed the request; deny and more-info are refused from then on.
    approval_started_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.reason or not self.reason.strip():
            raise ValueError("Reason is required")
        if not 0 <= self.risk_score <= 100:
            raise ValueError("risk_score must be between 0 and 100")
        require_utc_timestamp("requested_date", self.requested_date)
        for name in ("info_requested_date", "reviewed_date", "refund_date", "approval_started_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self.status]

    @property
    def approval_in_progress(self) -> bool:
        return self.approval_started_at is not None and self.status in REVIEWABLE_STATUSES

    def _require(self, target: RefundStatus, action: str) -> None:
        if not can_transition(self.status, target):
            raise InvalidRefundTransitionError(self.status, target, action)

    def approved(
        self,
        reviewer_id: UUID,
        reviewed_at: datetime,
        admin_notes: Optional[str] = None,
        refund_reference: Optional[str] = None,
    ) -> "RefundRequest":
        require_utc_timestamp("reviewed_at", reviewed_at)
        self._require(RefundStatus.APPROVED, "approve")
        return replace(
            self,
            status=RefundStatus.APPROVED,
            reviewed_by=reviewer_id,
            reviewed_date=reviewed_at,
            admin_notes=admin_notes,
            refund_date=reviewed_at,
            refund_reference=refund_reference,
        )

    def denied(self, reviewer_id: UUID, reviewed_at: datetime, reason: str) -> "RefundRequest":
        require_utc_timestamp("reviewed_at", reviewed_at)
        self._require(RefundStatus.DENIED, "deny")
        if not reason or not reason.strip():
            raise ValueError("Denial reason is required")
        return replace(
            self,
            status=RefundStatus.DENIED,
            reviewed_by=reviewer_id,
            reviewed_date=reviewed_at,
            admin_notes=reason.strip(),
        )

    def info_requested_by(self, reviewer_id: UUID, asked_at: datetime, question: str) -> "RefundRequest":
        require_utc_timestamp("asked_at", asked_at)
        self._require(RefundStatus.MORE_INFO_REQUESTED, "request info for")
        if not question or not question.strip():
            raise ValueError("Question is required")
        return replace(
            self,
            status=RefundStatus.MORE_INFO_REQUESTED,
            reviewed_by=reviewer_id,
            info_requested=question.strip(),
            info_requested_date=asked_at,
        )
