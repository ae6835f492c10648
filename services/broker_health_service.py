"""
Broker health audit service.

Reads one consistent snapshot of a broker's aggregates and derives:
- health score and risk level (domain.broker_health)
- average days from lead creation to close
- lead and revenue breakdown per service type
- per-provider performance in the broker's network
- advisory alerts

Nothing computed here is persisted; every call recomputes from the snapshot.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from domain.broker_health import (
    BrokerSummary,
    HealthAlert,
    HealthScore,
    build_health_alerts,
    calculate_health_score,
)
from domain.time import days_between
from repositories import broker_repository
from repositories.broker_repository import BrokerLeadRecord, NetworkMemberRecord
from services.errors import NotFoundError, storage_errors

logger = logging.getLogger(__name__)

UNTYPED_SERVICE: str = "Other"


@dataclass(frozen=True, slots=True)
class RevenueByType:
    type: str
    count: int
    closed: int
    revenue: Decimal


@dataclass(frozen=True, slots=True)
class ContractorPerformance:
    contractor_id: UUID
    name: str
    company_name: Optional[str]
    provider_type: str
    leads_sent: int
    leads_closed: int


@dataclass(frozen=True, slots=True)
class BrokerHealthAudit:
    broker: BrokerSummary
    health_score: HealthScore
    contractors: List[ContractorPerformance]
    leads_last_30_days: int
    leads_last_7_days: int
    avg_days_to_close: int
    revenue_by_type: List[RevenueByType]
    alerts: List[HealthAlert]


@dataclass(frozen=True, slots=True)
class BrokerHealthSummary:
    broker: BrokerSummary
    health_score: HealthScore


def average_days_to_close(leads: Sequence[BrokerLeadRecord]) -> int:
    """Mean whole days from creation to sale over closed leads; 0 when none have closed."""

    closed = [lead for lead in leads if lead.is_closed and lead.sold_at is not None]
    if not closed:
        return 0
    total = sum(max(0.0, days_between(lead.created_at, lead.sold_at)) for lead in closed)
    mean = Decimal(str(total / len(closed)))
    return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def revenue_by_service_type(leads: Sequence[BrokerLeadRecord]) -> List[RevenueByType]:
    """
    Group broker leads by service type.

    Leads without a type are grouped under "Other". Revenue counts commission
    on closed leads only. Groups keep first-seen order.
    """

    groups: Dict[str, List[BrokerLeadRecord]] = {}
    for lead in leads:
        groups.setdefault(lead.system_type or UNTYPED_SERVICE, []).append(lead)

    breakdown: List[RevenueByType] = []
    for service_type, members in groups.items():
        closed = [lead for lead in members if lead.is_closed]
        breakdown.append(
            RevenueByType(
                type=service_type,
                count=len(members),
                closed=len(closed),
                revenue=sum((lead.broker_commission for lead in closed), Decimal("0")),
            )
        )
    return breakdown


def _contractor_performance(member: NetworkMemberRecord) -> ContractorPerformance:
    return ContractorPerformance(
        contractor_id=member.contractor_id,
        name=member.name or str(member.contractor_id),
        company_name=member.company_name,
        provider_type=member.provider_type,
        leads_sent=member.leads_sent,
        leads_closed=member.leads_closed,
    )


def get_broker_health_audit(broker_id: UUID, now: Optional[datetime] = None) -> BrokerHealthAudit:
    """
    Full health audit for one broker.

    Raises:
        NotFoundError: broker does not exist
    """

    as_of = now if now is not None else datetime.now(timezone.utc)

    with storage_errors("read broker health snapshot"):
        snapshot = broker_repository.fetch_broker_health_snapshot(broker_id, as_of)
    if snapshot is None:
        raise NotFoundError("Broker", broker_id)

    score = calculate_health_score(snapshot.summary, as_of)

    logger.info(
        "Broker health audited",
        extra={
            "broker_id": str(broker_id),
            "overall": score.overall,
            "risk_level": score.risk_level.value,
        },
    )

    return BrokerHealthAudit(
        broker=snapshot.summary,
        health_score=score,
        contractors=[_contractor_performance(member) for member in snapshot.network],
        leads_last_30_days=snapshot.leads_last_30_days,
        leads_last_7_days=snapshot.leads_last_7_days,
        avg_days_to_close=average_days_to_close(snapshot.leads),
        revenue_by_type=revenue_by_service_type(snapshot.leads),
        alerts=build_health_alerts(snapshot.summary, score),
    )


def list_brokers_with_health(now: Optional[datetime] = None) -> List[BrokerHealthSummary]:
    as_of = now if now is not None else datetime.now(timezone.utc)

    with storage_errors("read broker summaries"):
        summaries = broker_repository.fetch_broker_summaries()

    return [
        BrokerHealthSummary(broker=summary, health_score=calculate_health_score(summary, as_of))
        for summary in summaries
    ]


__all__ = [
    "RevenueByType",
    "ContractorPerformance",
    "BrokerHealthAudit",
    "BrokerHealthSummary",
    "average_days_to_close",
    "revenue_by_service_type",
    "get_broker_health_audit",
    "list_brokers_with_health",
]
