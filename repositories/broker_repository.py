"""
Broker aggregate repository (read-only).

Broker health is computed from several aggregates (lead counts, closes,
revenue, network composition, recency). Reading them with independent queries
could mix data from different instants, so every aggregate comes from one
Postgres function call executed in a single statement snapshot:

- broker_health_snapshot(p_broker_id, p_as_of) -> json | null
- broker_summaries() -> json array

Both functions are defined in migrations/001_marketplace_core.sql.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Mapping, Optional
from uuid import UUID

from domain.broker_health import BrokerSummary
from repositories.client import get_supabase
from repositories.rows import (
    execute,
    parse_optional_datetime,
    parse_utc_datetime,
    to_decimal,
    to_iso_utc,
)

# broker_leads.status value for a lead that converted.
BROKER_LEAD_CLOSED: str = "closed"


@dataclass(frozen=True, slots=True)
class BrokerLeadRecord:
    """A lead posted by the broker, as needed for close-time and revenue breakdowns."""
    lead_id: UUID
    status: str
    broker_commission: Decimal
    system_type: Optional[str]
    created_at: datetime
    sold_at: Optional[datetime]

    @property
    def is_closed(self) -> bool:
        return self.status == BROKER_LEAD_CLOSED


@dataclass(frozen=True, slots=True)
class NetworkMemberRecord:
    """A provider in the broker's network with the leads they received and closed."""
    contractor_id: UUID
    provider_type: str
    name: Optional[str]
    company_name: Optional[str]
    leads_sent: int
    leads_closed: int


@dataclass(frozen=True, slots=True)
class BrokerHealthSnapshot:
    """All inputs for a broker health audit, read at one point in time."""
    summary: BrokerSummary
    leads_last_30_days: int
    leads_last_7_days: int
    leads: List[BrokerLeadRecord]
    network: List[NetworkMemberRecord]


def _row_to_summary(row: Mapping[str, Any]) -> BrokerSummary:
    return BrokerSummary(
        broker_id=UUID(str(row["id"])),
        company_name=row.get("company_name"),
        created_at=parse_utc_datetime(row["created_at"]),
        leads_posted=int(row.get("leads_posted") or 0),
        leads_closed=int(row.get("leads_closed") or 0),
        revenue_earned=to_decimal(row.get("revenue_earned")),
        contractor_count=int(row.get("contractor_count") or 0),
        hes_assessor_count=int(row.get("hes_assessor_count") or 0),
        inspector_count=int(row.get("inspector_count") or 0),
        last_activity=parse_optional_datetime(row.get("last_activity")),
    )


def _row_to_lead_record(row: Mapping[str, Any]) -> BrokerLeadRecord:
    return BrokerLeadRecord(
        lead_id=UUID(str(row["id"])),
        status=str(row["status"]),
        broker_commission=to_decimal(row.get("broker_commission")),
        system_type=row.get("system_type"),
        created_at=parse_utc_datetime(row["created_at"]),
        sold_at=parse_optional_datetime(row.get("sold_at")),
    )


def _row_to_network_member(row: Mapping[str, Any]) -> NetworkMemberRecord:
    return NetworkMemberRecord(
        contractor_id=UUID(str(row["contractor_id"])),
        provider_type=str(row.get("provider_type") or "contractor"),
        name=row.get("full_name"),
        company_name=row.get("company_name"),
        leads_sent=int(row.get("leads_sent") or 0),
        leads_closed=int(row.get("leads_closed") or 0),
    )


def fetch_broker_health_snapshot(broker_id: UUID, as_of: datetime) -> Optional[BrokerHealthSnapshot]:
    """
    Read every health-audit input for one broker in a single snapshot.

    Args:
        broker_id: Broker identifier
        as_of: UTC time the 30/7-day windows are measured back from

    Returns:
        BrokerHealthSnapshot or None if the broker does not exist
    """

    query = get_supabase().rpc(
        "broker_health_snapshot",
        {"p_broker_id": str(broker_id), "p_as_of": to_iso_utc(as_of, name="as_of")},
    )
    data = getattr(execute(query, "read broker health snapshot"), "data", None)
    if not data:
        return None

    return BrokerHealthSnapshot(
        summary=_row_to_summary(data["broker"]),
        leads_last_30_days=int(data.get("leads_last_30_days") or 0),
        leads_last_7_days=int(data.get("leads_last_7_days") or 0),
        leads=[_row_to_lead_record(row) for row in data.get("leads") or []],
        network=[_row_to_network_member(row) for row in data.get("contractors") or []],
    )


def fetch_broker_summaries() -> List[BrokerSummary]:
    """Summaries for every broker, newest first, read in a single snapshot."""

    data = getattr(execute(get_supabase().rpc("broker_summaries", {}), "read broker summaries"), "data", None)
    return [_row_to_summary(row) for row in data or []]


__all__ = [
    "BROKER_LEAD_CLOSED",
    "BrokerLeadRecord",
    "NetworkMemberRecord",
    "BrokerHealthSnapshot",
    "fetch_broker_health_snapshot",
    "fetch_broker_summaries",
]
