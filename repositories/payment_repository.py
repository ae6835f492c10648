"""
Payment repository (persistence).

Payments are captured elsewhere; this module reads them and records refund
state. The refund claim is a conditional update on refund_status so two
concurrent refund requests against the same Payment cannot both proceed.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.payment import LeadType, Payment, PaymentRefundStatus, PaymentStatus
from repositories.client import get_supabase
from repositories.rows import (
    execute,
    parse_optional_datetime,
    parse_optional_uuid,
    parse_utc_datetime,
    rows_of,
    to_decimal,
)

_PAYMENTS_TABLE: str = "payments"


def _row_to_payment(row: Mapping[str, Any]) -> Payment:
    """Convert a Supabase row into a Payment. The lead column present decides the lead type."""

    if row.get("system_lead_id"):
        lead_type, lead_id = LeadType.SYSTEM_LEAD, row["system_lead_id"]
    else:
        lead_type, lead_id = LeadType.HES_REQUEST, row["hes_request_id"]

    refund_amount = row.get("refund_amount")
    return Payment(
        payment_id=UUID(str(row["id"])),
        contractor_id=UUID(str(row["contractor_id"])),
        lead_id=UUID(str(lead_id)),
        lead_type=lead_type,
        amount=to_decimal(row.get("amount")),
        created_at=parse_utc_datetime(row["created_at"]),
        status=PaymentStatus(str(row["status"])),
        refund_status=PaymentRefundStatus(row.get("refund_status") or PaymentRefundStatus.NONE.value),
        stripe_payment_intent_id=row.get("stripe_payment_intent_id"),
        refund_request_id=parse_optional_uuid(row.get("refund_request_id")),
        refund_amount=to_decimal(refund_amount) if refund_amount is not None else None,
        refund_reference=row.get("refund_stripe_id"),
        refund_date=parse_optional_datetime(row.get("refund_date")),
    )


def find_latest_completed_payment(contractor_id: UUID, lead_id: UUID, lead_type: LeadType) -> Optional[Payment]:
    """
    Most recent completed payment by `contractor_id` for the given lead.

    Returns:
        Payment or None if the contractor never completed a purchase of the lead
    """

    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("*")
        .eq("contractor_id", str(contractor_id))
        .eq(lead_type.payment_column, str(lead_id))
        .eq("status", PaymentStatus.COMPLETED.value)
        .order("created_at", desc=True)
        .limit(1)
    )
    rows = rows_of(execute(query, "find payment"))
    return _row_to_payment(rows[0]) if rows else None


def get_payment_by_id(payment_id: UUID) -> Optional[Payment]:
    query = get_supabase().table(_PAYMENTS_TABLE).select("*").eq("id", str(payment_id)).limit(1)
    rows = rows_of(execute(query, "get payment"))
    return _row_to_payment(rows[0]) if rows else None


def claim_for_refund(payment_id: UUID) -> bool:
    """
    Move refund_status none -> requested.

    Returns:
        True if this caller won the claim, False if the payment was no longer
        in refund_status "none".
    """

    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .update({"refund_status": PaymentRefundStatus.REQUESTED.value})
        .eq("id", str(payment_id))
        .eq("refund_status", PaymentRefundStatus.NONE.value)
    )
    return bool(rows_of(execute(query, "claim payment for refund")))


def release_refund_claim(payment_id: UUID) -> None:
    """Undo a claim whose refund request could not be stored."""

    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .update({"refund_status": PaymentRefundStatus.NONE.value, "refund_request_id": None})
        .eq("id", str(payment_id))
        .eq("refund_status", PaymentRefundStatus.REQUESTED.value)
    )
    execute(query, "release refund claim")


def link_refund_request(payment_id: UUID, refund_request_id: UUID) -> None:
    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .update({"refund_request_id": str(refund_request_id)})
        .eq("id", str(payment_id))
    )
    execute(query, "link refund request")


def list_completed_amounts(contractor_id: UUID) -> List[Decimal]:
    """
    Amounts of every completed payment by a contractor.

    Used both as the lifetime purchase count and for average lead value.
    """

    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("amount")
        .eq("contractor_id", str(contractor_id))
        .eq("status", PaymentStatus.COMPLETED.value)
    )
    return [to_decimal(row.get("amount")) for row in rows_of(execute(query, "list payments"))]


def count_completed_payments(contractor_id: UUID) -> int:
    query = (
        get_supabase()
        .table(_PAYMENTS_TABLE)
        .select("id", count="exact")
        .eq("contractor_id", str(contractor_id))
        .eq("status", PaymentStatus.COMPLETED.value)
    )
    response = execute(query, "count payments")
    count = getattr(response, "count", None)
    return count if count is not None else len(rows_of(response))


__all__ = [
    "find_latest_completed_payment",
    "get_payment_by_id",
    "claim_for_refund",
    "release_refund_claim",
    "link_refund_request",
    "list_completed_amounts",
    "count_completed_payments",
]
