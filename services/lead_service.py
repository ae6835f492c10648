"""
Lead lifecycle service.

Handles:
- Creating draft leads against an existing job
- Posting drafts for sale (draft -> active)
- Purchasing (active -> sold) with a compare-and-swap write, so concurrent
  purchasers cannot both win
- Whitelisted field updates that respect the status transition table
- Administrative cancellation, time-based expiry and deletion

Every status-changing write is conditional on the status observed when the
lead was read. A zero-row result is reported as ConflictError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Mapping, Optional, Union
from uuid import UUID, uuid4

from domain.lead import (
    BuyerType,
    InvalidTransitionError,
    Lead,
    LeadStatus,
    can_transition,
    parse_buyer_type,
    parse_status,
)
from domain.time import as_utc
from repositories import lead_repository
from repositories.lead_repository import LeadQueryFilters
from services.errors import ConflictError, NotFoundError, ValidationError, storage_errors

logger = logging.getLogger(__name__)

# Fields update_lead accepts. Anything else in the update mapping is ignored.
UPDATABLE_FIELDS = ("status", "price", "notes", "posted_at", "expires_at", "service_tags")

DEFAULT_PAGE_SIZE: int = 25
MAX_PAGE_SIZE: int = 100


@dataclass(frozen=True, slots=True)
class LeadPage:
    """One page of a lead listing."""
    items: List[Lead]
    total: int
    page: int
    per_page: int


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def _parse_price(value: Any) -> Decimal:
    try:
        price = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError("price must be a number") from None
    if not price.is_finite():
        raise ValidationError("price must be a number")
    if price < 0:
        raise ValidationError("price must be non-negative")
    return price


def _utc_or_none(name: str, value: Optional[datetime]) -> Optional[datetime]:
    """Offset-aware input is converted to UTC; a naive timestamp is a ValidationError."""

    if value is None:
        return None
    try:
        return as_utc(name, value)
    except ValueError as e:
        raise ValidationError(str(e)) from None


def _require_lead(lead_id: UUID) -> Lead:
    with storage_errors("get lead"):
        lead = lead_repository.get_lead_by_id(lead_id)
    if lead is None:
        raise NotFoundError("Lead", lead_id)
    return lead


def _lost_race(lead_id: UUID, message: str) -> ConflictError:
    """
    Build the error for a conditional write that matched zero rows.

    If the lead vanished in the meantime that is a NotFoundError instead.
    """

    _require_lead(lead_id)
    logger.warning(message, extra={"lead_id": str(lead_id)})
    return ConflictError(message)


def create_lead(
    job_id: UUID,
    price: Union[Decimal, int, float, str],
    notes: Optional[str] = None,
    service_tags: Optional[Iterable[str]] = None,
    now: Optional[datetime] = None,
) -> Lead:
    """
    Create a new lead from a job. Starts in draft status.

    Raises:
        ValidationError: price is negative or not a number
        NotFoundError: job_id does not resolve
    """

    amount = _parse_price(price)
    created_at = _now(now)

    with storage_errors("look up job"):
        found = lead_repository.job_exists(job_id)
    if not found:
        raise NotFoundError("Job", job_id)

    with storage_errors("create lead"):
        lead = lead_repository.insert_lead(
            lead_id=uuid4(),
            job_id=job_id,
            price=amount,
            created_at=created_at,
            notes=notes,
            service_tags=set(service_tags or ()),
        )

    logger.info("Lead created", extra={"lead_id": str(lead.lead_id), "job_id": str(job_id)})
    return lead


def get_lead(lead_id: UUID) -> Lead:
    return _require_lead(lead_id)


def list_leads(
    filters: Optional[LeadQueryFilters] = None,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> LeadPage:
    """List leads newest first. page starts at 1; per_page is clamped to 1..100."""

    page = max(1, page)
    per_page = min(MAX_PAGE_SIZE, max(1, per_page))
    offset = (page - 1) * per_page

    filters = filters or LeadQueryFilters()
    filters = replace(
        filters,
        posted_after=_utc_or_none("posted_after", filters.posted_after),
        posted_before=_utc_or_none("posted_before", filters.posted_before),
    )

    with storage_errors("list leads"):
        items, total = lead_repository.list_leads(filters, offset=offset, limit=per_page)

    return LeadPage(items=items, total=total, page=page, per_page=per_page)


def post_lead(lead_id: UUID, now: Optional[datetime] = None) -> Lead:
    """Post a draft lead for sale (status -> active, posted_at -> now)."""

    posted_at = _now(now)
    lead = _require_lead(lead_id)

    try:
        posted = lead.posted(posted_at)
    except InvalidTransitionError:
        raise ConflictError(
            f'Cannot post lead with status "{lead.status.value}". Must be "draft".'
        ) from None

    changes = {"status": posted.status, "posted_at": posted.posted_at}
    with storage_errors("post lead"):
        updated = lead_repository.update_lead_if_status(
            lead_id, lead_repository.encode_lead_changes(changes), LeadStatus.DRAFT, posted_at
        )
    if updated is None:
        raise _lost_race(lead_id, "Lead changed while being posted")

    logger.info("Lead posted for sale", extra={"lead_id": str(lead_id)})
    return updated


def purchase_lead(
    lead_id: UUID,
    buyer_id: UUID,
    buyer_type: Union[BuyerType, str] = BuyerType.CONTRACTOR,
    now: Optional[datetime] = None,
) -> Lead:
    """
    Record a lead purchase. Sets buyer, status -> sold, sold_at -> now.

    Only one purchaser can ever win: the write is a single conditional update
    on (status = active AND buyer_id IS NULL). Losers receive ConflictError.
    """

    try:
        kind = buyer_type if isinstance(buyer_type, BuyerType) else parse_buyer_type(buyer_type)
    except ValueError as e:
        raise ValidationError(str(e)) from None

    sold_at = _now(now)
    lead = _require_lead(lead_id)

    if lead.status is not LeadStatus.ACTIVE:
        raise ConflictError(f'Cannot purchase lead with status "{lead.status.value}". Must be "active".')
    if lead.buyer_id is not None:
        raise ConflictError("Lead has already been purchased")

    with storage_errors("purchase lead"):
        sold = lead_repository.mark_lead_sold(lead_id, buyer_id, kind, sold_at)
    if sold is None:
        raise _lost_race(lead_id, "Lead has already been purchased")

    logger.info(
        "Lead sold",
        extra={"lead_id": str(lead_id), "buyer_id": str(buyer_id), "buyer_type": kind.value},
    )
    return sold


def update_lead(lead_id: UUID, updates: Mapping[str, Any], now: Optional[datetime] = None) -> Lead:
    """
    Update a lead's whitelisted fields.

    Rules:
    - At least one of UPDATABLE_FIELDS must be supplied (status/service_tags of
      None count as not supplied).
    - status must be one of the five lead statuses and reachable from the
      current status; sold is only reachable through purchase_lead.
    - Moving to active without an explicit posted_at stamps posted_at = now.
    - The resulting lead must satisfy every Lead invariant.
    """

    changed_at = _now(now)
    changes: dict[str, Any] = {}

    if updates.get("status") is not None:
        try:
            changes["status"] = parse_status(str(updates["status"]))
        except ValueError as e:
            raise ValidationError(str(e)) from None
    if "price" in updates:
        changes["price"] = _parse_price(updates["price"])
    if "notes" in updates:
        changes["notes"] = updates["notes"]
    for name in ("posted_at", "expires_at"):
        if name in updates:
            value = updates[name]
            changes[name] = _utc_or_none(name, value) if isinstance(value, datetime) else value
    if updates.get("service_tags") is not None:
        changes["service_tags"] = frozenset(str(tag) for tag in updates["service_tags"])

    if not changes:
        raise ValidationError("No valid fields to update")

    lead = _require_lead(lead_id)

    target = changes.get("status")
    if target is not None and target is not lead.status:
        if target is LeadStatus.SOLD:
            raise ConflictError("A lead can only be sold through a purchase")
        if not can_transition(lead.status, target):
            raise ConflictError(str(InvalidTransitionError(lead.status, target)))
        if target is LeadStatus.ACTIVE and changes.get("posted_at") is None:
            changes["posted_at"] = lead.posted_at or changed_at

    try:
        replace(lead, **changes)
    except (AttributeError, TypeError, ValueError) as e:
        raise ValidationError(str(e)) from None

    with storage_errors("update lead"):
        updated = lead_repository.update_lead_if_status(
            lead_id, lead_repository.encode_lead_changes(changes), lead.status, changed_at
        )
    if updated is None:
        raise _lost_race(lead_id, "Lead changed while being updated")

    logger.info("Lead updated", extra={"lead_id": str(lead_id), "fields": sorted(changes)})
    return updated


def cancel_lead(lead_id: UUID, now: Optional[datetime] = None) -> Lead:
    """Administratively close a draft or active lead."""

    changed_at = _now(now)
    lead = _require_lead(lead_id)

    try:
        lead.closed_as(LeadStatus.CANCELED)
    except InvalidTransitionError as e:
        raise ConflictError(str(e)) from None

    with storage_errors("cancel lead"):
        updated = lead_repository.update_lead_if_status(
            lead_id,
            lead_repository.encode_lead_changes({"status": LeadStatus.CANCELED}),
            lead.status,
            changed_at,
        )
    if updated is None:
        raise _lost_race(lead_id, "Lead changed while being canceled")

    logger.info("Lead canceled", extra={"lead_id": str(lead_id)})
    return updated


def expire_leads(now: Optional[datetime] = None) -> int:
    """
    Expire every draft/active lead whose expires_at has passed.

    Returns:
        Number of leads expired
    """

    as_of = _now(now)
    with storage_errors("expire leads"):
        expired = lead_repository.expire_leads_before(as_of)

    if expired:
        logger.info("Expired stale leads", extra={"expired_count": len(expired)})
    return len(expired)


def delete_lead(lead_id: UUID) -> None:
    """Delete a lead permanently."""

    with storage_errors("delete lead"):
        removed = lead_repository.delete_lead(lead_id)
    if not removed:
        raise NotFoundError("Lead", lead_id)

    logger.info("Lead deleted", extra={"lead_id": str(lead_id)})


__all__ = [
    "LeadPage",
    "UPDATABLE_FIELDS",
    "create_lead",
    "get_lead",
    "list_leads",
    "post_lead",
    "purchase_lead",
    "update_lead",
    "cancel_lead",
    "expire_leads",
    "delete_lead",
]
