"""
Pytest configuration.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api modules, and
provides the in-memory Supabase fixture used by repository, service and
API tests.
"""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from uuid import UUID, uuid4

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from fake_supabase import FakeSupabase, install_refund_review_functions  # noqa: E402

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def fake_db(monkeypatch) -> FakeSupabase:
    """Replace the shared Supabase client with an in-memory fake."""

    import repositories.client as client_module

    db = FakeSupabase()
    db.add_unique_index(
        "refund_requests",
        ("contractor_id", "lead_id"),
        where=lambda row: row.get("status") == "pending",
    )
    install_refund_review_functions(db)
    monkeypatch.setattr(client_module, "_client", db)
    return db


@pytest.fixture
def job_id(fake_db) -> UUID:
    job = uuid4()
    fake_db.seed("admin_jobs", {"id": str(job), "title": "Whole-home energy audit"})
    return job


def seed_payment(
    db: FakeSupabase,
    contractor_id: UUID,
    lead_id: UUID,
    created_at: datetime,
    amount: str = "50.00",
    lead_column: str = "system_lead_id",
    intent: str = "pi_test_123",
    status: str = "completed",
    refund_status: str = "none",
) -> UUID:
    payment_id = uuid4()
    db.seed(
        "payments",
        {
            "id": str(payment_id),
            "contractor_id": str(contractor_id),
            lead_column: str(lead_id),
            "amount": amount,
            "status": status,
            "refund_status": refund_status,
            "stripe_payment_intent_id": intent,
            "created_at": created_at.isoformat(),
        },
    )
    return payment_id


def days_ago(days: float, reference: datetime = NOW) -> datetime:
    return reference - timedelta(days=days)
