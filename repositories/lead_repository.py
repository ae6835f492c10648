"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead domain entity.
Transition rules live in `domain.lead`; this module executes the writes.

Writes that change status are conditional: the caller supplies the status it
observed, and the update only applies if the row still has it. The returned
row list is the affected-row set, so an empty result means another writer got
there first.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Tuple
from uuid import UUID

from domain.lead import EXPIRABLE_STATUSES, BuyerType, Lead, LeadStatus
from repositories.client import get_supabase
from repositories.rows import (
    execute,
    optional_iso_utc,
    parse_optional_datetime,
    parse_optional_uuid,
    parse_utc_datetime,
    rows_of,
    to_decimal,
    to_iso_utc,
)

# Supabase table names.
# Keep these aligned with migrations/001_marketplace_core.sql.
_LEADS_TABLE: str = "leads"
_JOBS_TABLE: str = "admin_jobs"


@dataclass(frozen=True, slots=True)
class LeadQueryFilters:
    """Filter criteria for lead listings. Every field is optional."""
    status: Optional[LeadStatus] = None
    job_id: Optional[UUID] = None
    price_min: Optional[Decimal] = None
    price_max: Optional[Decimal] = None
    posted_after: Optional[datetime] = None
    posted_before: Optional[datetime] = None


def _row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    buyer_type = row.get("buyer_type")
    return Lead(
        lead_id=UUID(str(row["id"])),
        job_id=UUID(str(row["admin_job_id"])),
        status=LeadStatus(str(row["status"])),
        price=to_decimal(row.get("price")),
        created_at=parse_utc_datetime(row["created_at"]),
        posted_at=parse_optional_datetime(row.get("posted_at")),
        expires_at=parse_optional_datetime(row.get("expires_at")),
        buyer_id=parse_optional_uuid(row.get("buyer_id")),
        buyer_type=BuyerType(buyer_type) if buyer_type else None,
        sold_at=parse_optional_datetime(row.get("sold_at")),
        notes=row.get("notes"),
        service_tags=frozenset(row.get("service_tags") or ()),
        updated_at=parse_optional_datetime(row.get("updated_at")),
    )


def encode_lead_changes(changes: Mapping[str, Any]) -> dict[str, Any]:
    """
    Encode typed lead field changes into a Supabase update payload.

    A value of None is written as NULL (e.g. clearing expires_at).
    """

    payload: dict[str, Any] = {}
    for name, value in changes.items():
        if name == "status":
            payload[name] = value.value
        elif name == "price":
            payload[name] = str(value)
        elif name in ("posted_at", "expires_at"):
            payload[name] = optional_iso_utc(value, name=name)
        elif name == "service_tags":
            payload[name] = sorted(value or ())
        elif name == "notes":
            payload[name] = value
        else:
            raise ValueError(f"Unknown lead column: {name}")
    return payload


def job_exists(job_id: UUID) -> bool:
    """True if the owning job record exists."""

    query = get_supabase().table(_JOBS_TABLE).select("id").eq("id", str(job_id)).limit(1)
    return bool(rows_of(execute(query, "look up job")))


def insert_lead(
    lead_id: UUID,
    job_id: UUID,
    price: Decimal,
    created_at: datetime,
    notes: Optional[str] = None,
    service_tags: Iterable[str] = (),
) -> Lead:
    """Insert a new lead in draft status and return the stored entity."""

    payload: dict[str, Any] = {
        "id": str(lead_id),
        "admin_job_id": str(job_id),
        "status": LeadStatus.DRAFT.value,
        "price": str(price),
        "notes": notes,
        "service_tags": sorted(set(service_tags)),
        "created_at": to_iso_utc(created_at, name="created_at"),
        "updated_at": to_iso_utc(created_at, name="created_at"),
    }

    rows = rows_of(execute(get_supabase().table(_LEADS_TABLE).insert(payload), "create lead"))
    if not rows:
        raise RuntimeError("Failed to create lead: no row returned")
    return _row_to_lead(rows[0])


def get_lead_by_id(lead_id: UUID) -> Optional[Lead]:
    """
    Retrieve a single lead by its ID.

    Returns:
        Lead or None if not found
    """

    query = get_supabase().table(_LEADS_TABLE).select("*").eq("id", str(lead_id)).limit(1)
    rows = rows_of(execute(query, "get lead"))
    return _row_to_lead(rows[0]) if rows else None


def list_leads(filters: LeadQueryFilters, offset: int = 0, limit: int = 25) -> Tuple[List[Lead], int]:
    """
    List leads matching `filters`, newest first.

    Returns:
        (page of leads, total number of matching leads)
    """

    query = (
        get_supabase()
        .table(_LEADS_TABLE)
        .select("*", count="exact")
        .order("created_at", desc=True)
        .range(offset, offset + limit - 1)
    )

    if filters.status is not None:
        query = query.eq("status", filters.status.value)
    if filters.job_id is not None:
        query = query.eq("admin_job_id", str(filters.job_id))
    if filters.price_min is not None:
        query = query.gte("price", str(filters.price_min))
    if filters.price_max is not None:
        query = query.lte("price", str(filters.price_max))
    if filters.posted_after is not None:
        query = query.gte("posted_at", to_iso_utc(filters.posted_after, name="posted_after"))
    if filters.posted_before is not None:
        query = query.lte("posted_at", to_iso_utc(filters.posted_before, name="posted_before"))

    response = execute(query, "list leads")
    leads = [_row_to_lead(row) for row in rows_of(response)]
    total = getattr(response, "count", None)
    return leads, total if total is not None else len(leads)


def update_lead_if_status(
    lead_id: UUID,
    payload: Mapping[str, Any],
    expected_status: LeadStatus,
    updated_at: datetime,
    require_no_buyer: bool = False,
) -> Optional[Lead]:
    """
    Apply `payload` only if the lead still has `expected_status`.

    With `require_no_buyer`, the row must additionally have buyer_id NULL; this
    is the compare-and-swap the purchase flow relies on.

    Returns:
        The updated Lead, or None if no row matched (lead missing or changed).
    """

    body = dict(payload)
    body["updated_at"] = to_iso_utc(updated_at, name="updated_at")

    query = (
        get_supabase()
        .table(_LEADS_TABLE)
        .update(body)
        .eq("id", str(lead_id))
        .eq("status", expected_status.value)
    )
    if require_no_buyer:
        query = query.is_("buyer_id", "null")

    rows = rows_of(execute(query, "update lead"))
    return _row_to_lead(rows[0]) if rows else None


def mark_lead_sold(lead_id: UUID, buyer_id: UUID, buyer_type: BuyerType, sold_at: datetime) -> Optional[Lead]:
    """
    Atomically sell an active, unbought lead.

    Equivalent to:
        UPDATE leads SET status = 'sold', buyer_id = ..., buyer_type = ..., sold_at = ...
        WHERE id = ... AND status = 'active' AND buyer_id IS NULL

    Returns:
        The sold Lead, or None if zero rows matched (already sold, not active, or missing).
    """

    payload: dict[str, Any] = {
        "status": LeadStatus.SOLD.value,
        "buyer_id": str(buyer_id),
        "buyer_type": buyer_type.value,
        "sold_at": to_iso_utc(sold_at, name="sold_at"),
    }
    return update_lead_if_status(lead_id, payload, LeadStatus.ACTIVE, sold_at, require_no_buyer=True)


def delete_lead(lead_id: UUID) -> bool:
    """Delete a lead permanently. Returns False if no row was removed."""

    query = get_supabase().table(_LEADS_TABLE).delete().eq("id", str(lead_id))
    return bool(rows_of(execute(query, "delete lead")))


def expire_leads_before(now: datetime) -> List[UUID]:
    """
    Move every draft/active lead whose expires_at is before `now` to expired.

    Single bulk conditional update; returns the IDs that were expired.
    """

    now_iso = to_iso_utc(now, name="now")
    query = (
        get_supabase()
        .table(_LEADS_TABLE)
        .update({"status": LeadStatus.EXPIRED.value, "updated_at": now_iso})
        .in_("status", sorted(s.value for s in EXPIRABLE_STATUSES))
        .lt("expires_at", now_iso)
    )
    rows = rows_of(execute(query, "expire leads"))
    return [UUID(str(row["id"])) for row in rows]


__all__ = [
    "LeadQueryFilters",
    "encode_lead_changes",
    "job_exists",
    "insert_lead",
    "get_lead_by_id",
    "list_leads",
    "update_lead_if_status",
    "mark_lead_sold",
    "delete_lead",
    "expire_leads_before",
]
