"""
HTTP tests for the FastAPI application.

Requests run through the real routers and services against the Supabase fake.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from api import __version__
from api.main import app
from conftest import seed_payment
from services import payment_gateway
from services.payment_gateway import ChargeStatus

API = "/api/v1"


@pytest.fixture
def client(fake_db) -> TestClient:
    return TestClient(app)


def _create_lead(client, job_id, price="45.00"):
    response = client.post(f"{API}/admin/leads", json={"job_id": str(job_id), "price": price})
    assert response.status_code == 201
    return response.json()


def test_health_and_root(client) -> None:
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"
    assert health.json()["version"] == __version__

    assert client.get("/").json()["docs"] == "/docs"


def test_lead_lifecycle_over_http(client, job_id) -> None:
    lead = _create_lead(client, job_id)
    assert lead["status"] == "draft"

    posted = client.post(f"{API}/admin/leads/{lead['lead_id']}/post")
    assert posted.status_code == 200
    assert posted.json()["status"] == "active"

    buyer = str(uuid4())
    bought = client.post(f"{API}/leads/{lead['lead_id']}/purchase", json={"buyer_id": buyer})
    assert bought.status_code == 200
    assert bought.json()["buyer_id"] == buyer
    assert bought.json()["buyer_type"] == "contractor"

    again = client.post(f"{API}/leads/{lead['lead_id']}/purchase", json={"buyer_id": str(uuid4())})
    assert again.status_code == 409


def test_create_lead_errors(client, job_id) -> None:
    assert client.post(f"{API}/admin/leads", json={"job_id": str(job_id), "price": "-5"}).status_code == 400

    missing = client.post(f"{API}/admin/leads", json={"job_id": str(uuid4()), "price": "5"})
    assert missing.status_code == 404
    assert missing.json()["detail"].startswith("Job not found")


def test_update_and_list_leads(client, job_id) -> None:
    lead = _create_lead(client, job_id)
    expires = (datetime.now(timezone.utc) + timedelta(days=7)).isoformat()

    patched = client.patch(f"{API}/admin/leads/{lead['lead_id']}", json={"price": "60.00", "expires_at": expires})
    assert patched.status_code == 200
    assert patched.json()["price"] == "60.00"

    assert client.patch(f"{API}/admin/leads/{lead['lead_id']}", json={}).status_code == 400
    assert client.patch(f"{API}/admin/leads/{lead['lead_id']}", json={"status": "sold"}).status_code == 409

    listing = client.get(f"{API}/admin/leads", params={"status": "draft"})
    assert listing.status_code == 200
    assert listing.json()["total"] == 1
    assert listing.json()["items"][0]["lead_id"] == lead["lead_id"]

    assert client.get(f"{API}/admin/leads", params={"status": "archived"}).status_code == 400


def test_cancel_get_and_delete_lead(client, job_id) -> None:
    lead = _create_lead(client, job_id)

    assert client.post(f"{API}/admin/leads/{lead['lead_id']}/cancel").json()["status"] == "canceled"
    assert client.get(f"{API}/admin/leads/{lead['lead_id']}").json()["status"] == "canceled"

    assert client.delete(f"{API}/admin/leads/{lead['lead_id']}").status_code == 204
    assert client.get(f"{API}/admin/leads/{lead['lead_id']}").status_code == 404


def test_refund_flow_over_http(client, fake_db, monkeypatch) -> None:
    monkeypatch.setattr(payment_gateway, "verify_charge", lambda ref: ChargeStatus.SUCCEEDED)
    monkeypatch.setattr(payment_gateway, "refund_charge", lambda ref, idempotency_key: "re_http_1")

    contractor, lead_id = uuid4(), uuid4()
    seed_payment(fake_db, contractor, lead_id, datetime.now(timezone.utc) - timedelta(days=2), amount="80.00")

    body = {
        "contractor_id": str(contractor),
        "lead_type": "system_lead",
        "reason": "Homeowner never answered",
        "reason_category": "no_response",
    }
    created = client.post(f"{API}/contractor/leads/{lead_id}/request-refund", json=body)
    assert created.status_code == 201
    request_id = created.json()["request_id"]
    assert created.json()["reason_label"] == "No homeowner response"

    duplicate = client.post(f"{API}/contractor/leads/{lead_id}/request-refund", json=body)
    assert duplicate.status_code == 409

    mine = client.get(f"{API}/contractor/refunds", params={"contractor_id": str(contractor)})
    assert [r["request_id"] for r in mine.json()] == [request_id]

    details = client.get(f"{API}/admin/refund-requests/{request_id}")
    assert details.status_code == 200
    assert details.json()["amount"] == "80.00"
    assert details.json()["contractor_stats"]["total_purchased"] == 1

    admin = str(uuid4())
    info = client.post(f"{API}/admin/refund-requests/{request_id}/request-info", json={"admin_id": admin, "question": "Dates?"})
    assert info.json()["status"] == "more_info_requested"

    approved = client.post(f"{API}/admin/refund-requests/{request_id}/approve", json={"admin_id": admin})
    assert approved.status_code == 200
    assert approved.json()["status"] == "approved"
    assert approved.json()["refund_reference"] == "re_http_1"

    denied = client.post(f"{API}/admin/refund-requests/{request_id}/deny", json={"admin_id": admin, "reason": "late"})
    assert denied.status_code == 409

    queue = client.get(f"{API}/admin/refund-requests", params={"status": "approved"})
    assert [r["request_id"] for r in queue.json()] == [request_id]
    assert client.get(f"{API}/admin/refund-requests", params={"status": "lost"}).status_code == 400


def test_refund_request_without_payment(client) -> None:
    response = client.post(
        f"{API}/contractor/leads/{uuid4()}/request-refund",
        json={
            "contractor_id": str(uuid4()),
            "lead_type": "hes_request",
            "reason": "Duplicate",
            "reason_category": "duplicate",
        },
    )
    assert response.status_code == 404


def test_broker_health_endpoints(client, fake_db) -> None:
    broker_id = str(uuid4())
    now = datetime.now(timezone.utc)
    broker = {
        "id": broker_id,
        "company_name": "Keystone Brokers",
        "created_at": (now - timedelta(days=120)).isoformat(),
        "leads_posted": 35,
        "leads_closed": 20,
        "revenue_earned": "6400.00",
        "contractor_count": 8,
        "hes_assessor_count": 2,
        "inspector_count": 2,
        "last_activity": (now - timedelta(days=1)).isoformat(),
    }
    fake_db.rpc_handlers["broker_summaries"] = lambda params: [broker]
    fake_db.rpc_handlers["broker_health_snapshot"] = lambda params: (
        {"broker": broker, "leads_last_30_days": 9, "leads_last_7_days": 3, "leads": [], "contractors": []}
        if params["p_broker_id"] == broker_id
        else None
    )

    listing = client.get(f"{API}/admin/brokers/health")
    assert listing.status_code == 200
    assert listing.json()[0]["health_score"]["overall"] == 100
    assert listing.json()[0]["health_score"]["risk_level"] == "low"

    audit = client.get(f"{API}/admin/brokers/{broker_id}/health")
    assert audit.status_code == 200
    assert audit.json()["leads_last_30_days"] == 9
    assert audit.json()["avg_days_to_close"] == 0
    assert audit.json()["alerts"][0]["type"] == "success"

    assert client.get(f"{API}/admin/brokers/{uuid4()}/health").status_code == 404


def test_list_date_filters_accept_offsets_and_reject_naive(client, job_id) -> None:
    lead = _create_lead(client, job_id)
    client.post(f"{API}/admin/leads/{lead['lead_id']}/post")

    offset = client.get(f"{API}/admin/leads", params={"posted_after": "2000-01-01T00:00:00+02:00"})
    assert offset.status_code == 200
    assert offset.json()["total"] == 1

    naive = client.get(f"{API}/admin/leads", params={"posted_after": "2025-06-01T00:00:00"})
    assert naive.status_code == 400
    assert "timezone-aware" in naive.json()["detail"]

    refunds = client.get(f"{API}/admin/refund-requests", params={"date_from": "2025-06-01T00:00:00+02:00"})
    assert refunds.status_code == 200
    assert refunds.json() == []

    assert client.get(f"{API}/admin/refund-requests", params={"date_to": "2025-06-01T00:00:00"}).status_code == 400
