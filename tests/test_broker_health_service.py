"""
Tests for `services/broker_health_service.py`.

The snapshot functions are registered as rpc handlers on the Supabase fake.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from domain.broker_health import RiskLevel
from repositories.broker_repository import BrokerLeadRecord
from services import broker_health_service
from services.errors import InternalError, NotFoundError

BROKER = UUID("00000000-0000-0000-0000-00000000b001")


def _broker_row(now, **overrides):
    row = {
        "id": str(BROKER),
        "company_name": "Bright Homes Realty",
        "created_at": (now - timedelta(days=90)).isoformat(),
        "leads_posted": 20,
        "leads_closed": 8,
        "revenue_earned": 1200,
        "contractor_count": 4,
        "hes_assessor_count": 1,
        "inspector_count": 1,
        "last_activity": (now - timedelta(days=3)).isoformat(),
    }
    row.update(overrides)
    return row


def _lead(now, status, system_type, commission, created_days_ago, sold_days_ago=None):
    return {
        "id": str(uuid4()),
        "status": status,
        "broker_commission": commission,
        "system_type": system_type,
        "created_at": (now - timedelta(days=created_days_ago)).isoformat(),
        "sold_at": (now - timedelta(days=sold_days_ago)).isoformat() if sold_days_ago is not None else None,
    }


@pytest.fixture
def snapshot_calls(fake_db, now):
    calls = []
    contractor = uuid4()

    def broker_health_snapshot(params):
        calls.append(params)
        if params["p_broker_id"] != str(BROKER):
            return None
        return {
            "broker": _broker_row(now),
            "leads_last_30_days": 5,
            "leads_last_7_days": 2,
            "leads": [
                _lead(now, "closed", "Heat pump", "100.00", 20, 10),
                _lead(now, "closed", "Heat pump", "150.00", 15, 10),
                _lead(now, "open", "Heat pump", None, 5),
                _lead(now, "closed", None, "50.00", 8, 8),
                _lead(now, "closed", "Solar", "75.00", 3),
            ],
            "contractors": [
                {
                    "contractor_id": str(contractor),
                    "provider_type": "contractor",
                    "full_name": "Dana Ortiz",
                    "company_name": "Ortiz HVAC",
                    "leads_sent": 6,
                    "leads_closed": 2,
                },
                {
                    "contractor_id": str(uuid4()),
                    "provider_type": "inspector",
                    "full_name": None,
                    "company_name": None,
                    "leads_sent": 0,
                    "leads_closed": 0,
                },
            ],
        }

    fake_db.rpc_handlers["broker_health_snapshot"] = broker_health_snapshot
    return calls


def test_health_audit(fake_db, now, snapshot_calls) -> None:
    audit = broker_health_service.get_broker_health_audit(BROKER, now=now)

    assert snapshot_calls == [{"p_broker_id": str(BROKER), "p_as_of": now.isoformat()}]
    assert audit.broker.company_name == "Bright Homes Realty"
    assert audit.health_score.overall == 86
    assert audit.health_score.risk_level is RiskLevel.LOW
    assert audit.leads_last_30_days == 5
    assert audit.leads_last_7_days == 2

    # Closed with sold_at: 10, 5 and 0 days to close -> mean 5. The closed lead
    # without sold_at is left out.
    assert audit.avg_days_to_close == 5

    by_type = {r.type: r for r in audit.revenue_by_type}
    assert list(by_type) == ["Heat pump", "Other", "Solar"]
    assert (by_type["Heat pump"].count, by_type["Heat pump"].closed) == (3, 2)
    assert by_type["Heat pump"].revenue == Decimal("250.00")
    assert by_type["Other"].revenue == Decimal("50.00")
    assert by_type["Solar"].revenue == Decimal("75.00")

    first, second = audit.contractors
    assert (first.name, first.company_name, first.leads_sent, first.leads_closed) == ("Dana Ortiz", "Ortiz HVAC", 6, 2)
    assert second.name == str(second.contractor_id)
    assert second.provider_type == "inspector"

    assert [a.message for a in audit.alerts] == [
        "Broker is performing well across all metrics",
        "Strong 40% conversion rate",
    ]


def test_unknown_broker_is_not_found(fake_db, snapshot_calls) -> None:
    with pytest.raises(NotFoundError, match="Broker not found"):
        broker_health_service.get_broker_health_audit(uuid4())


def test_average_days_to_close_rounds_half_up(now) -> None:
    def closed(created_days, sold_days):
        return BrokerLeadRecord(
            lead_id=uuid4(),
            status="closed",
            broker_commission=Decimal("0"),
            system_type=None,
            created_at=now - timedelta(days=created_days),
            sold_at=now - timedelta(days=sold_days),
        )

    assert broker_health_service.average_days_to_close([]) == 0
    # 1 and 2 days -> 1.5 -> 2
    assert broker_health_service.average_days_to_close([closed(1, 0), closed(2, 0)]) == 2
    # A sale recorded before creation counts as zero days.
    assert broker_health_service.average_days_to_close([closed(0, 3)]) == 0


def test_list_brokers_with_health(fake_db, now) -> None:
    quiet = _broker_row(
        now,
        id=str(uuid4()),
        leads_posted=0,
        leads_closed=0,
        revenue_earned=0,
        contractor_count=0,
        hes_assessor_count=0,
        inspector_count=0,
        last_activity=None,
    )
    fake_db.rpc_handlers["broker_summaries"] = lambda params: [_broker_row(now), quiet]

    results = broker_health_service.list_brokers_with_health(now=now)

    assert [r.broker.broker_id for r in results] == [BROKER, UUID(quiet["id"])]
    assert [r.health_score.risk_level for r in results] == [RiskLevel.LOW, RiskLevel.HIGH]


def test_snapshot_failure_is_internal_error(fake_db) -> None:
    # No handler registered: the fake reports the function as missing.
    with pytest.raises(InternalError):
        broker_health_service.get_broker_health_audit(BROKER)
