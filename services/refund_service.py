"""
Refund request workflow.

Handles:
- Contractor refund requests against a completed payment, within the refund
  window, with an advisory risk score computed once at creation
- Reviewer actions: approve (issues the Stripe refund), deny, request more info
- Read models for reviewers and contractors

Concurrency:
- Creating a request first claims the Payment (refund_status none -> requested)
  with a conditional update, so two simultaneous requests for the same
  purchase cannot both pass. The partial unique index on pending requests is
  the storage-level backstop.
- Approval claims the request (approval_started_at) before calling Stripe,
  so a reviewer who loses a deny/approve race never reaches the gateway.
  Stripe is called with an idempotency key derived from the request id, so a
  claimed request can be approved again after a crash.
- Approval and denial store the request and its payment in one Postgres
  function; there is no state where only one of the two rows changed.
- Review writes are conditional on the status observed when the request was
  read.

Audit entries and contractor notifications are best-effort side effects.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Union
from uuid import UUID, uuid4

from domain.payment import LeadType, Payment, PaymentRefundStatus
from domain.refund import (
    REFUND_WINDOW_DAYS,
    REVIEWABLE_STATUSES,
    InvalidRefundTransitionError,
    RefundReasonCategory,
    RefundRequest,
    RefundStatus,
    is_within_refund_window,
)
from domain.refund_risk import RECENT_WINDOW_DAYS, ContractorRefundHistory, calculate_refund_risk
from domain.time import as_utc, days_between
from repositories import payment_repository, refund_repository
from repositories.refund_repository import RefundQueryFilters
from repositories.rows import RepositoryError
from services import audit_log_service, notification_service, payment_gateway
from services.errors import ConflictError, InternalError, NotFoundError, ValidationError, storage_errors
from services.payment_gateway import ChargeStatus, PaymentGatewayError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ContractorRefundStats:
    """Context shown to a reviewer alongside a refund request."""
    total_purchased: int
    previous_refund_requests: int
    previous_refund_approvals: int
    avg_lead_value: Decimal


@dataclass(frozen=True, slots=True)
class RefundRequestDetails:
    """A refund request enriched for admin review."""
    request: RefundRequest
    amount: Decimal
    contractor_stats: ContractorRefundStats


def _now(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {field_name}. Must be one of: {allowed}") from None


def _clean_text(value: Optional[str]) -> Optional[str]:
    text = (value or "").strip()
    return text or None


def _require_request(request_id: UUID) -> RefundRequest:
    with storage_errors("get refund request"):
        request = refund_repository.get_refund_request_by_id(request_id)
    if request is None:
        raise NotFoundError("Refund request", request_id)
    return request


def _require_payment(payment_id: UUID) -> Payment:
    with storage_errors("get payment"):
        payment = payment_repository.get_payment_by_id(payment_id)
    if payment is None:
        raise NotFoundError("Payment", payment_id)
    return payment


def _contractor_history(contractor_id: UUID, now: datetime) -> ContractorRefundHistory:
    since = now - timedelta(days=RECENT_WINDOW_DAYS)
    with storage_errors("read contractor refund history"):
        return ContractorRefundHistory(
            recent_requests=refund_repository.count_refund_requests(contractor_id, since=since),
            lifetime_requests=refund_repository.count_refund_requests(contractor_id),
            lifetime_purchases=payment_repository.count_completed_payments(contractor_id),
        )


def _save_review(current: RefundRequest, reviewed: RefundRequest, action: str) -> RefundRequest:
    with storage_errors(f"{action} refund request"):
        saved = refund_repository.update_refund_request_if_status(
            current.request_id, refund_repository.review_payload(reviewed), current.status
        )
    if saved is None:
        logger.warning(
            "Refund request changed during review",
            extra={"refund_request_id": str(current.request_id), "action": action},
        )
        raise ConflictError("Refund request was modified by another reviewer")
    return saved


def calculate_refund_risk_for(
    contractor_id: UUID,
    amount: Decimal,
    days_since_purchase: float,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> int:
    """Score a prospective refund request using the contractor's stored history."""

    history = _contractor_history(contractor_id, _now(now))
    return calculate_refund_risk(history, amount, days_since_purchase, notes)


def request_refund(
    contractor_id: UUID,
    lead_id: UUID,
    lead_type: Union[LeadType, str],
    reason: str,
    reason_category: Union[RefundReasonCategory, str],
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RefundRequest:
    """
    Open a refund request for a purchased lead.

    Raises:
        ValidationError: empty reason, unknown lead type or category, or the
            refund window has passed
        NotFoundError: the contractor has no completed payment for the lead
        ConflictError: the payment already has a refund in progress or decided,
            or a pending request already exists
    """

    requested_at = _now(now)
    clean_reason = _clean_text(reason)
    if clean_reason is None:
        raise ValidationError("Reason is required")
    kind = _parse_enum(LeadType, lead_type, "lead_type")
    category = _parse_enum(RefundReasonCategory, reason_category, "reason_category")
    clean_notes = _clean_text(notes)

    with storage_errors("find payment"):
        payment = payment_repository.find_latest_completed_payment(contractor_id, lead_id, kind)
    if payment is None:
        raise NotFoundError("Payment for this lead")

    if not payment.is_refundable:
        raise ConflictError(f"A refund has already been {payment.refund_status.value} for this lead")

    if not is_within_refund_window(payment.created_at, requested_at):
        raise ValidationError(
            f"Refund window has expired. Refunds must be requested within {REFUND_WINDOW_DAYS} days of purchase."
        )

    with storage_errors("check pending refund requests"):
        existing = refund_repository.find_pending_request(contractor_id, lead_id)
    if existing is not None:
        raise ConflictError("A refund request is already pending for this lead")

    days_since_purchase = days_between(payment.created_at, requested_at)
    risk_score = calculate_refund_risk_for(
        contractor_id, payment.amount, days_since_purchase, clean_notes, now=requested_at
    )

    with storage_errors("claim payment for refund"):
        claimed = payment_repository.claim_for_refund(payment.payment_id)
    if not claimed:
        raise ConflictError("A refund request is already in progress for this lead")

    request = RefundRequest(
        request_id=uuid4(),
        payment_id=payment.payment_id,
        contractor_id=contractor_id,
        lead_id=lead_id,
        lead_type=kind,
        reason=clean_reason,
        reason_category=category,
        notes=clean_notes,
        risk_score=risk_score,
        status=RefundStatus.PENDING,
        requested_date=requested_at,
    )

    try:
        stored = refund_repository.insert_refund_request(request)
    except RuntimeError as e:
        with storage_errors("release refund claim"):
            payment_repository.release_refund_claim(payment.payment_id)
        if isinstance(e, RepositoryError) and e.is_unique_violation:
            raise ConflictError("A refund request is already pending for this lead") from e
        logger.exception(
            "Failed to create refund request",
            extra={"contractor_id": str(contractor_id), "lead_id": str(lead_id)},
        )
        raise InternalError("Failed to create refund request") from e

    # The request row exists from here on, so the claim is kept even if linking fails.
    with storage_errors("link refund request to payment"):
        payment_repository.link_refund_request(payment.payment_id, stored.request_id)

    logger.info(
        "Refund requested",
        extra={
            "refund_request_id": str(stored.request_id),
            "contractor_id": str(contractor_id),
            "risk_score": risk_score,
        },
    )

    audit_log_service.log_refund_requested(contractor_id, stored.request_id)
    notification_service.send_refund_requested(contractor_id, lead_id, stored.request_id)

    return stored


def _verify_settled(charge_reference: str, request_id: UUID) -> None:
    try:
        settled = payment_gateway.verify_charge(charge_reference)
    except PaymentGatewayError as e:
        logger.error(
            "Charge could not be verified; request left unchanged",
            extra={"refund_request_id": str(request_id), "gateway_error": str(e)},
        )
        raise InternalError("Payment processor could not verify the charge") from e
    if settled is not ChargeStatus.SUCCEEDED:
        raise ConflictError(f'Cannot refund a payment whose charge is "{settled.value}"')


def _issue_refund(charge_reference: str, request_id: UUID) -> str:
    try:
        return payment_gateway.refund_charge(charge_reference, payment_gateway.refund_idempotency_key(request_id))
    except PaymentGatewayError as e:
        if e.outcome_unknown:
            # The refund may exist at Stripe; only a retried approval may finish this request.
            logger.error(
                "Refund outcome unknown; request stays claimed for approval",
                extra={"refund_request_id": str(request_id), "gateway_error": str(e)},
            )
        else:
            with storage_errors("release approval claim"):
                refund_repository.release_approval_claim(request_id)
            logger.error(
                "Refund not issued; request left unchanged",
                extra={"refund_request_id": str(request_id), "gateway_error": str(e)},
            )
        raise InternalError("Payment processor could not issue the refund") from e


def _store_approval(approved: RefundRequest, amount: Decimal) -> RefundRequest:
    with storage_errors("approve refund request"):
        saved = refund_repository.save_approval(approved, amount)
    if saved is None:
        logger.warning(
            "Refund request changed during approval",
            extra={"refund_request_id": str(approved.request_id)},
        )
        raise ConflictError("Refund request was modified by another reviewer")
    return saved


def approve_refund(
    request_id: UUID,
    reviewer_id: UUID,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RefundRequest:
    """
    Approve a pending (or more-info) request and refund the payment.

    Steps:
    1. Verify the charge settled (read only).
    2. Claim the request for approval; deny and more-info are refused from here on.
    3. Issue the Stripe refund with the request's idempotency key.
    4. Store the approval and the refunded payment in one transaction.

    A request left claimed by a failed attempt is resumed by calling this
    again; Stripe returns the original refund for the same key. A request
    already approved whose payment was never marked refunded only has the
    payment write finished.
    """

    reviewed_at = _now(now)
    current = _require_request(request_id)

    if current.status is RefundStatus.APPROVED:
        payment = _require_payment(current.payment_id)
        if payment.refund_status is PaymentRefundStatus.REFUNDED:
            raise ConflictError('Cannot approve a refund with status "approved"')
        logger.warning(
            "Finishing payment write for an approved refund",
            extra={"refund_request_id": str(request_id)},
        )
        return _store_approval(current, payment.amount)

    if current.status not in REVIEWABLE_STATUSES:
        raise ConflictError(f'Cannot approve a refund with status "{current.status.value}"')

    payment = _require_payment(current.payment_id)
    charge_reference = payment.stripe_payment_intent_id
    if charge_reference:
        _verify_settled(charge_reference, request_id)

    claimed = current
    if current.approval_started_at is None:
        with storage_errors("claim refund request for approval"):
            claimed = refund_repository.claim_for_approval(request_id, current.status, reviewed_at)
        if claimed is None:
            logger.warning(
                "Refund request changed before approval",
                extra={"refund_request_id": str(request_id)},
            )
            raise ConflictError("Refund request was modified by another reviewer")

    refund_reference = _issue_refund(charge_reference, request_id) if charge_reference else None

    approved = claimed.approved(reviewer_id, reviewed_at, _clean_text(notes), refund_reference)
    saved = _store_approval(approved, payment.amount)

    logger.info(
        "Refund approved",
        extra={"refund_request_id": str(request_id), "amount": str(payment.amount)},
    )

    audit_log_service.log_refund_approved(reviewer_id, request_id, payment.amount)
    notification_service.send_refund_approved(current.contractor_id, payment.amount)

    return saved


def deny_refund(
    request_id: UUID,
    reviewer_id: UUID,
    reason: str,
    now: Optional[datetime] = None,
) -> RefundRequest:
    """Deny a pending (or more-info) request. The reason is stored as admin notes."""

    reviewed_at = _now(now)
    current = _require_request(request_id)
    if current.status not in REVIEWABLE_STATUSES:
        raise ConflictError(f'Cannot deny a refund with status "{current.status.value}"')
    if current.approval_in_progress:
        raise ConflictError("Refund request is already being approved")

    clean_reason = _clean_text(reason)
    if clean_reason is None:
        raise ValidationError("Denial reason is required")

    reviewed = current.denied(reviewer_id, reviewed_at, clean_reason)
    with storage_errors("deny refund request"):
        saved = refund_repository.save_denial(reviewed)
    if saved is None:
        logger.warning(
            "Refund request changed during review",
            extra={"refund_request_id": str(request_id), "action": "deny"},
        )
        raise ConflictError("Refund request was modified by another reviewer")

    logger.info("Refund denied", extra={"refund_request_id": str(request_id)})

    audit_log_service.log_refund_denied(reviewer_id, request_id, clean_reason)
    notification_service.send_refund_denied(current.contractor_id, clean_reason)

    return saved


def request_more_info(
    request_id: UUID,
    reviewer_id: UUID,
    question: str,
    now: Optional[datetime] = None,
) -> RefundRequest:
    """Ask the contractor for more information. Only allowed while pending."""

    asked_at = _now(now)
    clean_question = _clean_text(question)
    if clean_question is None:
        raise ValidationError("Question is required")

    current = _require_request(request_id)
    if current.approval_in_progress:
        raise ConflictError("Refund request is already being approved")
    try:
        reviewed = current.info_requested_by(reviewer_id, asked_at, clean_question)
    except InvalidRefundTransitionError as e:
        raise ConflictError(str(e)) from None

    saved = _save_review(current, reviewed, "request info for")

    logger.info("Refund info requested", extra={"refund_request_id": str(request_id)})

    audit_log_service.log_refund_info_requested(reviewer_id, request_id, clean_question)
    notification_service.send_refund_more_info(current.contractor_id, clean_question)

    return saved


def get_refund_request(request_id: UUID) -> RefundRequest:
    return _require_request(request_id)


def get_contractor_stats(contractor_id: UUID) -> ContractorRefundStats:
    with storage_errors("read contractor stats"):
        amounts = payment_repository.list_completed_amounts(contractor_id)
        previous = refund_repository.count_refund_requests(contractor_id)
        approvals = refund_repository.count_refund_requests(contractor_id, status=RefundStatus.APPROVED)

    total = len(amounts)
    average = (sum(amounts, Decimal("0")) / total) if total else Decimal("0")
    return ContractorRefundStats(
        total_purchased=total,
        previous_refund_requests=previous,
        previous_refund_approvals=approvals,
        avg_lead_value=average.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP),
    )


def get_refund_request_with_details(request_id: UUID) -> RefundRequestDetails:
    request = _require_request(request_id)
    payment = _require_payment(request.payment_id)
    return RefundRequestDetails(
        request=request,
        amount=payment.amount,
        contractor_stats=get_contractor_stats(request.contractor_id),
    )


def list_refund_requests(filters: Optional[RefundQueryFilters] = None) -> List[RefundRequest]:
    """
    List refund requests newest first; status, contractor and date range are optional.

    Date bounds with any UTC offset are accepted and converted; naive bounds
    are a ValidationError.
    """

    filters = filters or RefundQueryFilters()
    try:
        filters = replace(
            filters,
            date_from=as_utc("date_from", filters.date_from) if filters.date_from else None,
            date_to=as_utc("date_to", filters.date_to) if filters.date_to else None,
        )
    except ValueError as e:
        raise ValidationError(str(e)) from None

    with storage_errors("list refund requests"):
        return refund_repository.list_refund_requests(filters)


def list_contractor_refunds(contractor_id: UUID) -> List[RefundRequest]:
    return list_refund_requests(RefundQueryFilters(contractor_id=contractor_id))


__all__ = [
    "ContractorRefundStats",
    "RefundRequestDetails",
    "calculate_refund_risk_for",
    "request_refund",
    "approve_refund",
    "deny_refund",
    "request_more_info",
    "get_refund_request",
    "get_contractor_stats",
    "get_refund_request_with_details",
    "list_refund_requests",
    "list_contractor_refunds",
]
