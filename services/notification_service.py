"""
Contractor notifications for the refund workflow.

Notifications are queued in the outbox table; a separate mailer delivers them.
Queueing is best-effort and never fails the calling operation.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from repositories.activity_repository import insert_notification

logger = logging.getLogger(__name__)


def notify(recipient_id: UUID, template: str, context: Mapping[str, Any]) -> bool:
    """
    Queue a notification for `recipient_id`.

    Returns:
        True if queued, False if queueing failed (already logged).
    """

    try:
        insert_notification(recipient_id, template, context)
    except Exception:
        logger.exception(
            "Notification could not be queued",
            extra={"recipient_id": str(recipient_id), "template": template},
        )
        return False
    return True


def send_refund_requested(contractor_id: UUID, lead_id: UUID, refund_request_id: UUID) -> bool:
    return notify(
        contractor_id,
        "refund_requested",
        {"lead_id": str(lead_id), "refund_request_id": str(refund_request_id)},
    )


def send_refund_approved(contractor_id: UUID, amount: Decimal) -> bool:
    return notify(contractor_id, "refund_approved", {"amount": str(amount)})


def send_refund_denied(contractor_id: UUID, reason: str) -> bool:
    return notify(contractor_id, "refund_denied", {"reason": reason})


def send_refund_more_info(contractor_id: UUID, question: str) -> bool:
    return notify(contractor_id, "refund_more_info", {"question": question})


__all__ = [
    "notify",
    "send_refund_requested",
    "send_refund_approved",
    "send_refund_denied",
    "send_refund_more_info",
]
