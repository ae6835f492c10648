"""
Refund request repository (persistence).

Inserts, reads and status-conditional updates of refund requests. Requests
are never deleted. The table carries a partial unique index on
(contractor_id, lead_id) WHERE status = 'pending'; inserting a second pending
request surfaces as a RepositoryError with a unique-violation code.

Approvals and denials also change the payment, so they go through the
`approve_refund_request` / `deny_refund_request` Postgres functions, which
write both rows in one transaction.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.payment import LeadType
from domain.refund import REVIEWABLE_STATUSES, RefundReasonCategory, RefundRequest, RefundStatus
from repositories.client import get_supabase
from repositories.rows import (
    execute,
    optional_iso_utc,
    parse_optional_datetime,
    parse_optional_uuid,
    parse_utc_datetime,
    rows_of,
    to_iso_utc,
)

_REFUND_REQUESTS_TABLE: str = "refund_requests"


@dataclass(frozen=True, slots=True)
class RefundQueryFilters:
    """Filter criteria for refund request listings. Every field is optional."""
    status: Optional[RefundStatus] = None
    contractor_id: Optional[UUID] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None


def _row_to_refund_request(row: Mapping[str, Any]) -> RefundRequest:
    """Convert a Supabase row into a RefundRequest."""

    return RefundRequest(
        request_id=UUID(str(row["id"])),
        payment_id=UUID(str(row["payment_id"])),
        contractor_id=UUID(str(row["contractor_id"])),
        lead_id=UUID(str(row["lead_id"])),
        lead_type=LeadType(str(row["lead_type"])),
        reason=str(row["reason"]),
        reason_category=RefundReasonCategory(str(row["reason_category"])),
        risk_score=int(row.get("risk_score") or 0),
        status=RefundStatus(str(row["status"])),
        requested_date=parse_utc_datetime(row["requested_date"]),
        notes=row.get("notes"),
        info_requested=row.get("info_requested"),
        info_requested_date=parse_optional_datetime(row.get("info_requested_date")),
        admin_notes=row.get("admin_notes"),
        reviewed_by=parse_optional_uuid(row.get("reviewed_by")),
        reviewed_date=parse_optional_datetime(row.get("reviewed_date")),
        refund_date=parse_optional_datetime(row.get("refund_date")),
        refund_reference=row.get("refund_reference"),
        approval_started_at=parse_optional_datetime(row.get("approval_started_at")),
    )


def review_payload(request: RefundRequest) -> dict[str, Any]:
    """Columns a review action may change, taken from the reviewed entity."""

    return {
        "status": request.status.value,
        "info_requested": request.info_requested,
        "info_requested_date": optional_iso_utc(request.info_requested_date, name="info_requested_date"),
        "admin_notes": request.admin_notes,
        "reviewed_by": str(request.reviewed_by) if request.reviewed_by else None,
        "reviewed_date": optional_iso_utc(request.reviewed_date, name="reviewed_date"),
        "refund_date": optional_iso_utc(request.refund_date, name="refund_date"),
        "refund_reference": request.refund_reference,
    }


def insert_refund_request(request: RefundRequest) -> RefundRequest:
    """Insert a new refund request and return the stored entity."""

    payload: dict[str, Any] = {
        "id": str(request.request_id),
        "payment_id": str(request.payment_id),
        "contractor_id": str(request.contractor_id),
        "lead_id": str(request.lead_id),
        "lead_type": request.lead_type.value,
        "reason": request.reason,
        "reason_category": request.reason_category.value,
        "notes": request.notes,
        "risk_score": request.risk_score,
        "status": request.status.value,
        "requested_date": to_iso_utc(request.requested_date, name="requested_date"),
    }

    query = get_supabase().table(_REFUND_REQUESTS_TABLE).insert(payload)
    rows = rows_of(execute(query, "create refund request"))
    if not rows:
        raise RuntimeError("Failed to create refund request: no row returned")
    return _row_to_refund_request(rows[0])


def get_refund_request_by_id(request_id: UUID) -> Optional[RefundRequest]:
    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .select("*")
        .eq("id", str(request_id))
        .limit(1)
    )
    rows = rows_of(execute(query, "get refund request"))
    return _row_to_refund_request(rows[0]) if rows else None


def find_pending_request(contractor_id: UUID, lead_id: UUID) -> Optional[RefundRequest]:
    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .select("*")
        .eq("contractor_id", str(contractor_id))
        .eq("lead_id", str(lead_id))
        .eq("status", RefundStatus.PENDING.value)
        .limit(1)
    )
    rows = rows_of(execute(query, "find pending refund request"))
    return _row_to_refund_request(rows[0]) if rows else None


def update_refund_request_if_status(
    request_id: UUID,
    payload: Mapping[str, Any],
    expected_status: RefundStatus,
) -> Optional[RefundRequest]:
    """
    Apply `payload` only if the request still has `expected_status` and no
    approval has claimed it.

    Returns:
        The updated request, or None if it was changed by someone else.
    """

    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .update(dict(payload))
        .eq("id", str(request_id))
        .eq("status", expected_status.value)
        .is_("approval_started_at", "null")
    )
    rows = rows_of(execute(query, "update refund request"))
    return _row_to_refund_request(rows[0]) if rows else None


def claim_for_approval(
    request_id: UUID,
    expected_status: RefundStatus,
    started_at: datetime,
) -> Optional[RefundRequest]:
    """
    Mark the request as being approved, before the payment processor is called.

    Returns:
        The claimed request, or None if another reviewer changed or claimed it first.
    """

    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .update({"approval_started_at": to_iso_utc(started_at, name="started_at")})
        .eq("id", str(request_id))
        .eq("status", expected_status.value)
        .is_("approval_started_at", "null")
    )
    rows = rows_of(execute(query, "claim refund request for approval"))
    return _row_to_refund_request(rows[0]) if rows else None


def release_approval_claim(request_id: UUID) -> None:
    """Drop an approval claim whose refund was definitely not issued."""

    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .update({"approval_started_at": None})
        .eq("id", str(request_id))
        .in_("status", [s.value for s in REVIEWABLE_STATUSES])
    )
    execute(query, "release approval claim")


def _decision_result(query: Any, action: str) -> Optional[RefundRequest]:
    data = getattr(execute(query, action), "data", None)
    return _row_to_refund_request(data) if data else None


def save_approval(request: RefundRequest, refund_amount: Decimal) -> Optional[RefundRequest]:
    """
    Store an approval and mark its payment refunded in one transaction.

    Calls the `approve_refund_request` Postgres function. A request that an
    earlier attempt already approved only has its payment brought up to date.

    Returns:
        The stored request, or None if the request was not claimed for approval.
    """

    query = get_supabase().rpc(
        "approve_refund_request",
        {
            "p_request_id": str(request.request_id),
            "p_reviewed_by": str(request.reviewed_by) if request.reviewed_by else None,
            "p_reviewed_at": optional_iso_utc(request.reviewed_date, name="reviewed_date"),
            "p_admin_notes": request.admin_notes,
            "p_refund_reference": request.refund_reference,
            "p_refund_amount": str(refund_amount),
        },
    )
    return _decision_result(query, "approve refund request")


def save_denial(request: RefundRequest) -> Optional[RefundRequest]:
    """
    Store a denial and mark its payment refund-denied in one transaction.

    Returns:
        The stored request, or None if it was decided or claimed for approval meanwhile.
    """

    query = get_supabase().rpc(
        "deny_refund_request",
        {
            "p_request_id": str(request.request_id),
            "p_reviewed_by": str(request.reviewed_by) if request.reviewed_by else None,
            "p_reviewed_at": optional_iso_utc(request.reviewed_date, name="reviewed_date"),
            "p_admin_notes": request.admin_notes,
        },
    )
    return _decision_result(query, "deny refund request")


def list_refund_requests(filters: RefundQueryFilters) -> List[RefundRequest]:
    """List refund requests matching `filters`, newest first."""

    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .select("*")
        .order("requested_date", desc=True)
    )

    if filters.status is not None:
        query = query.eq("status", filters.status.value)
    if filters.contractor_id is not None:
        query = query.eq("contractor_id", str(filters.contractor_id))
    if filters.date_from is not None:
        query = query.gte("requested_date", to_iso_utc(filters.date_from, name="date_from"))
    if filters.date_to is not None:
        query = query.lte("requested_date", to_iso_utc(filters.date_to, name="date_to"))

    return [_row_to_refund_request(row) for row in rows_of(execute(query, "list refund requests"))]


def count_refund_requests(
    contractor_id: UUID,
    since: Optional[datetime] = None,
    status: Optional[RefundStatus] = None,
) -> int:
    """Count a contractor's refund requests, optionally since a time or with a status."""

    query = (
        get_supabase()
        .table(_REFUND_REQUESTS_TABLE)
        .select("id", count="exact")
        .eq("contractor_id", str(contractor_id))
    )
    if since is not None:
        query = query.gte("requested_date", to_iso_utc(since, name="since"))
    if status is not None:
        query = query.eq("status", status.value)

    response = execute(query, "count refund requests")
    count = getattr(response, "count", None)
    return count if count is not None else len(rows_of(response))


__all__ = [
    "RefundQueryFilters",
    "review_payload",
    "insert_refund_request",
    "get_refund_request_by_id",
    "find_pending_request",
    "update_refund_request_if_status",
    "claim_for_approval",
    "release_approval_claim",
    "save_approval",
    "save_denial",
    "list_refund_requests",
    "count_refund_requests",
]
