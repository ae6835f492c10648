"""
Audit logging for admin and contractor actions.

Audit writes are best-effort: a failure is logged and never propagates, so it
cannot roll back or fail the state transition being audited.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Mapping, Optional
from uuid import UUID

from repositories.activity_repository import insert_audit_log

logger = logging.getLogger(__name__)

_REFUND_RESOURCE: str = "refund_request"


def log_action(
    action: str,
    actor_id: UUID,
    actor_role: str,
    resource_type: str,
    resource_id: UUID,
    changes: Optional[Mapping[str, Any]] = None,
    details: Optional[str] = None,
) -> bool:
    """
    Record an audit entry.

    Returns:
        True if the entry was written, False if the write failed (already logged).
    """

    try:
        insert_audit_log(action, actor_id, actor_role, resource_type, resource_id, changes, details)
    except Exception:
        logger.exception(
            "Audit log write failed",
            extra={
                "action": action,
                "actor_id": str(actor_id),
                "resource_type": resource_type,
                "resource_id": str(resource_id),
            },
        )
        return False
    return True


def log_refund_requested(contractor_id: UUID, refund_request_id: UUID) -> bool:
    return log_action(
        "refund_requested",
        contractor_id,
        "contractor",
        _REFUND_RESOURCE,
        refund_request_id,
        details="Contractor submitted a refund request",
    )


def log_refund_approved(admin_id: UUID, refund_request_id: UUID, amount: Decimal) -> bool:
    return log_action(
        "refund_approved",
        admin_id,
        "admin",
        _REFUND_RESOURCE,
        refund_request_id,
        changes={"amount": str(amount)},
        details="Admin approved refund request",
    )


def log_refund_denied(admin_id: UUID, refund_request_id: UUID, reason: str) -> bool:
    return log_action(
        "refund_denied",
        admin_id,
        "admin",
        _REFUND_RESOURCE,
        refund_request_id,
        changes={"reason": reason},
        details="Admin denied refund request",
    )


def log_refund_info_requested(admin_id: UUID, refund_request_id: UUID, question: str) -> bool:
    return log_action(
        "refund_info_requested",
        admin_id,
        "admin",
        _REFUND_RESOURCE,
        refund_request_id,
        changes={"question": question},
        details="Admin requested more info for refund",
    )


__all__ = [
    "log_action",
    "log_refund_requested",
    "log_refund_approved",
    "log_refund_denied",
    "log_refund_info_requested",
]
