"""
Domain: Payment (collaborator entity).

Payments are captured outside this codebase; the marketplace only reads them
and tracks their refund state. A Payment must have refund_status "none" before
a refund request may be opened against it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


class LeadType(str, Enum):
    """Which kind of lead a payment or refund request references."""

    SYSTEM_LEAD = "system_lead"
    HES_REQUEST = "hes_request"

    @property
    def payment_column(self) -> str:
        """Column on the payments table that holds the lead reference."""

        return "system_lead_id" if self is LeadType.SYSTEM_LEAD else "hes_request_id"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class PaymentRefundStatus(str, Enum):
    NONE = "none"
    REQUESTED = "requested"
    DENIED = "denied"
    REFUNDED = "refunded"


@dataclass(frozen=True, slots=True)
class Payment:
    payment_id: UUID
    contractor_id: UUID
    lead_id: UUID
    lead_type: LeadType
    amount: Decimal
    created_at: datetime
    status: PaymentStatus
    refund_status: PaymentRefundStatus = PaymentRefundStatus.NONE
    stripe_payment_intent_id: Optional[str] = None  # processor charge reference
    refund_request_id: Optional[UUID] = None
    refund_amount: Optional[Decimal] = None
    refund_reference: Optional[str] = None
    refund_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        if self.refund_date is not None:
            require_utc_timestamp("refund_date", self.refund_date)

    @property
    def is_refundable(self) -> bool:
        """True when no refund has been requested, denied or issued."""

        return self.refund_status is PaymentRefundStatus.NONE
