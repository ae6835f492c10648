"""
Activity repository (persistence).

Append-only writes for the audit trail (`audit_logs`) and the contractor
notification outbox (`notifications`). Delivery of notifications (email) is
handled outside this codebase by whatever drains the outbox.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional
from uuid import UUID

from repositories.client import get_supabase
from repositories.rows import execute

_AUDIT_LOGS_TABLE: str = "audit_logs"
_NOTIFICATIONS_TABLE: str = "notifications"


def insert_audit_log(
    action: str,
    actor_id: UUID,
    actor_role: str,
    resource_type: str,
    resource_id: UUID,
    changes: Optional[Mapping[str, Any]] = None,
    details: Optional[str] = None,
) -> None:
    payload: dict[str, Any] = {
        "action": action,
        "actor_id": str(actor_id),
        "actor_role": actor_role,
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "changes": dict(changes) if changes is not None else None,
        "details": details,
    }
    execute(get_supabase().table(_AUDIT_LOGS_TABLE).insert(payload), "write audit log")


def insert_notification(
    recipient_id: UUID,
    template: str,
    context: Mapping[str, Any],
) -> None:
    payload: dict[str, Any] = {
        "recipient_id": str(recipient_id),
        "template": template,
        "context": dict(context),
        "status": "queued",
    }
    execute(get_supabase().table(_NOTIFICATIONS_TABLE).insert(payload), "queue notification")


__all__ = ["insert_audit_log", "insert_notification"]
