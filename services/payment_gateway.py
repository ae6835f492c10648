"""
Payment gateway (Stripe).

Only two calls are needed by the marketplace core:
- refund_charge(charge_reference, idempotency_key) -> refund reference
- verify_charge(charge_reference) -> succeeded | pending | failed

Refunds are issued with an idempotency key, so re-issuing after a crash
between the Stripe call and the local write returns the original refund
instead of creating a second one.

Environment variables required:
- STRIPE_SECRET_KEY: Stripe secret API key (server-side only)
"""

from __future__ import annotations

import logging
import os
from enum import Enum
from pathlib import Path

import stripe
from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

logger = logging.getLogger(__name__)


class ChargeStatus(str, Enum):
    SUCCEEDED = "succeeded"
    PENDING = "pending"
    FAILED = "failed"


# Stripe PaymentIntent statuses that are neither settled nor dead.
_PENDING_INTENT_STATUSES = frozenset(
    {"processing", "requires_action", "requires_capture", "requires_confirmation", "requires_payment_method"}
)


class PaymentGatewayError(RuntimeError):
    """
    The payment processor rejected or failed a call.

    `outcome_unknown` is True when Stripe could not be reached or answered
    with a server error, so the call may still have taken effect.
    """

    def __init__(self, message: str, outcome_unknown: bool = False) -> None:
        super().__init__(message)
        self.outcome_unknown = outcome_unknown


def _configure() -> None:
    api_key = os.getenv("STRIPE_SECRET_KEY")
    if not api_key:
        raise PaymentGatewayError(
            "Missing environment variable: STRIPE_SECRET_KEY. "
            "Set STRIPE_SECRET_KEY to your Stripe secret key."
        )
    stripe.api_key = api_key


def refund_idempotency_key(refund_request_id: object) -> str:
    """Idempotency key tying a Stripe refund to exactly one refund request."""

    return f"refund-request-{refund_request_id}"


def refund_charge(charge_reference: str, idempotency_key: str) -> str:
    """
    Refund the full amount of a captured payment intent.

    Args:
        charge_reference: Stripe PaymentIntent ID recorded on the payment
        idempotency_key: Stable key for this refund (see refund_idempotency_key)

    Returns:
        Stripe refund ID

    Raises:
        PaymentGatewayError: if Stripe rejects the refund or is unreachable
    """

    _configure()
    try:
        refund = stripe.Refund.create(payment_intent=charge_reference, idempotency_key=idempotency_key)
    except stripe.StripeError as e:
        logger.error(
            "Stripe refund failed",
            extra={"charge_reference": charge_reference, "stripe_error": str(e)},
        )
        raise PaymentGatewayError(
            f"Refund failed: {e.user_message or e}",
            outcome_unknown=isinstance(e, (stripe.APIConnectionError, stripe.APIError)),
        ) from e

    return str(refund.id)


def verify_charge(charge_reference: str) -> ChargeStatus:
    """Report whether a payment intent has settled."""

    _configure()
    try:
        intent = stripe.PaymentIntent.retrieve(charge_reference)
    except stripe.StripeError as e:
        raise PaymentGatewayError(f"Could not verify payment: {e.user_message or e}") from e

    if intent.status == "succeeded":
        return ChargeStatus.SUCCEEDED
    if intent.status in _PENDING_INTENT_STATUSES:
        return ChargeStatus.PENDING
    return ChargeStatus.FAILED


__all__ = [
    "ChargeStatus",
    "PaymentGatewayError",
    "refund_idempotency_key",
    "refund_charge",
    "verify_charge",
]
