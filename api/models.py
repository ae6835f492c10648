"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.broker_health import BrokerSummary, HealthScore
from domain.lead import Lead
from domain.refund import RefundRequest
from services.broker_health_service import BrokerHealthAudit, BrokerHealthSummary
from services.refund_service import ContractorRefundStats, RefundRequestDetails


# ============================================================================
# Lead Models
# ============================================================================

class LeadCreateRequest(BaseModel):
    """Request to create a draft lead from a job."""
    job_id: UUID = Field(..., description="Job the lead is created from")
    price: Decimal = Field(..., description="Asking price (non-negative)")
    notes: Optional[str] = None
    service_tags: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "job_id": "123e4567-e89b-12d3-a456-426614174000",
                "price": "45.00",
                "notes": "Attic insulation + heat pump quote",
                "service_tags": ["insulation", "hvac"]
            }
        }


class LeadUpdateRequest(BaseModel):
    """Partial lead update. Omitted fields are left unchanged."""
    status: Optional[str] = None
    price: Optional[Decimal] = None
    notes: Optional[str] = None
    posted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    service_tags: Optional[List[str]] = None

    class Config:
        json_schema_extra = {
            "example": {
                "price": "55.00",
                "expires_at": "2025-02-01T00:00:00Z"
            }
        }


class LeadPurchaseRequest(BaseModel):
    """Request to buy an active lead."""
    buyer_id: UUID = Field(..., description="Purchasing contractor or broker")
    buyer_type: str = Field("contractor", description="contractor, broker or other")

    class Config:
        json_schema_extra = {
            "example": {
                "buyer_id": "123e4567-e89b-12d3-a456-426614174002",
                "buyer_type": "contractor"
            }
        }


class LeadResponse(BaseModel):
    """Single lead in API response."""
    lead_id: UUID
    job_id: UUID
    status: str
    price: Decimal
    created_at: datetime
    posted_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    buyer_id: Optional[UUID] = None
    buyer_type: Optional[str] = None
    sold_at: Optional[datetime] = None
    notes: Optional[str] = None
    service_tags: List[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    @classmethod
    def from_lead(cls, lead: Lead) -> "LeadResponse":
        return cls(
            lead_id=lead.lead_id,
            job_id=lead.job_id,
            status=lead.status.value,
            price=lead.price,
            created_at=lead.created_at,
            posted_at=lead.posted_at,
            expires_at=lead.expires_at,
            buyer_id=lead.buyer_id,
            buyer_type=lead.buyer_type.value if lead.buyer_type else None,
            sold_at=lead.sold_at,
            notes=lead.notes,
            service_tags=sorted(lead.service_tags),
            updated_at=lead.updated_at,
        )


class LeadListResponse(BaseModel):
    """Paginated lead listing."""
    items: List[LeadResponse]
    total: int
    page: int
    per_page: int


# ============================================================================
# Refund Models
# ============================================================================

class RefundCreateRequest(BaseModel):
    """Contractor request to refund a purchased lead."""
    contractor_id: UUID
    lead_type: str = Field(..., description="system_lead or hes_request")
    reason: str = Field(..., min_length=1)
    reason_category: str = Field(..., description="no_response, competitor, bad_quality, not_interested, duplicate, other")
    notes: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "contractor_id": "123e4567-e89b-12d3-a456-426614174002",
                "lead_type": "system_lead",
                "reason": "Homeowner never answered after five attempts",
                "reason_category": "no_response",
                "notes": "Called Mon-Fri, left voicemails"
            }
        }


class RefundApproveRequest(BaseModel):
    admin_id: UUID
    notes: Optional[str] = None


class RefundDenyRequest(BaseModel):
    admin_id: UUID
    reason: str = Field(..., description="Shown to the contractor")


class RefundInfoRequest(BaseModel):
    admin_id: UUID
    question: str = Field(..., description="What the contractor needs to clarify")


class RefundRequestResponse(BaseModel):
    """Single refund request in API response."""
    request_id: UUID
    payment_id: UUID
    contractor_id: UUID
    lead_id: UUID
    lead_type: str
    reason: str
    reason_category: str
    reason_label: str
    notes: Optional[str] = None
    risk_score: int
    status: str
    requested_date: datetime
    info_requested: Optional[str] = None
    info_requested_date: Optional[datetime] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_date: Optional[datetime] = None
    refund_date: Optional[datetime] = None
    refund_reference: Optional[str] = None

    @classmethod
    def from_request(cls, request: RefundRequest) -> "RefundRequestResponse":
        return cls(
            request_id=request.request_id,
            payment_id=request.payment_id,
            contractor_id=request.contractor_id,
            lead_id=request.lead_id,
            lead_type=request.lead_type.value,
            reason=request.reason,
            reason_category=request.reason_category.value,
            reason_label=request.reason_category.label,
            notes=request.notes,
            risk_score=request.risk_score,
            status=request.status.value,
            requested_date=request.requested_date,
            info_requested=request.info_requested,
            info_requested_date=request.info_requested_date,
            admin_notes=request.admin_notes,
            reviewed_by=request.reviewed_by,
            reviewed_date=request.reviewed_date,
            refund_date=request.refund_date,
            refund_reference=request.refund_reference,
        )


class ContractorStatsResponse(BaseModel):
    total_purchased: int
    previous_refund_requests: int
    previous_refund_approvals: int
    avg_lead_value: Decimal

    @classmethod
    def from_stats(cls, stats: ContractorRefundStats) -> "ContractorStatsResponse":
        return cls(
            total_purchased=stats.total_purchased,
            previous_refund_requests=stats.previous_refund_requests,
            previous_refund_approvals=stats.previous_refund_approvals,
            avg_lead_value=stats.avg_lead_value,
        )


class RefundRequestDetailResponse(BaseModel):
    """Refund request with the context a reviewer needs."""
    request: RefundRequestResponse
    amount: Decimal
    contractor_stats: ContractorStatsResponse

    @classmethod
    def from_details(cls, details: RefundRequestDetails) -> "RefundRequestDetailResponse":
        return cls(
            request=RefundRequestResponse.from_request(details.request),
            amount=details.amount,
            contractor_stats=ContractorStatsResponse.from_stats(details.contractor_stats),
        )


# ============================================================================
# Broker Health Models
# ============================================================================

class HealthScoreResponse(BaseModel):
    overall: int
    activity: int
    conversion: int
    stickiness: int
    network_quality: int
    revenue_trend: int
    risk_level: str

    @classmethod
    def from_score(cls, score: HealthScore) -> "HealthScoreResponse":
        return cls(
            overall=score.overall,
            activity=score.activity,
            conversion=score.conversion,
            stickiness=score.stickiness,
            network_quality=score.network_quality,
            revenue_trend=score.revenue_trend,
            risk_level=score.risk_level.value,
        )


class BrokerSummaryResponse(BaseModel):
    broker_id: UUID
    company_name: Optional[str] = None
    created_at: datetime
    leads_posted: int
    leads_closed: int
    revenue_earned: Decimal
    contractor_count: int
    hes_assessor_count: int
    inspector_count: int
    last_activity: Optional[datetime] = None

    @classmethod
    def from_summary(cls, summary: BrokerSummary) -> "BrokerSummaryResponse":
        return cls(
            broker_id=summary.broker_id,
            company_name=summary.company_name,
            created_at=summary.created_at,
            leads_posted=summary.leads_posted,
            leads_closed=summary.leads_closed,
            revenue_earned=summary.revenue_earned,
            contractor_count=summary.contractor_count,
            hes_assessor_count=summary.hes_assessor_count,
            inspector_count=summary.inspector_count,
            last_activity=summary.last_activity,
        )


class BrokerHealthSummaryResponse(BaseModel):
    broker: BrokerSummaryResponse
    health_score: HealthScoreResponse

    @classmethod
    def from_summary(cls, item: BrokerHealthSummary) -> "BrokerHealthSummaryResponse":
        return cls(
            broker=BrokerSummaryResponse.from_summary(item.broker),
            health_score=HealthScoreResponse.from_score(item.health_score),
        )


class ContractorPerformanceResponse(BaseModel):
    contractor_id: UUID
    name: str
    company_name: Optional[str] = None
    provider_type: str
    leads_sent: int
    leads_closed: int


class RevenueByTypeResponse(BaseModel):
    type: str
    count: int
    closed: int
    revenue: Decimal


class HealthAlertResponse(BaseModel):
    type: str
    message: str


class BrokerHealthAuditResponse(BaseModel):
    """Full health audit for one broker."""
    broker: BrokerSummaryResponse
    health_score: HealthScoreResponse
    contractors: List[ContractorPerformanceResponse]
    leads_last_30_days: int
    leads_last_7_days: int
    avg_days_to_close: int
    revenue_by_type: List[RevenueByTypeResponse]
    alerts: List[HealthAlertResponse]

    @classmethod
    def from_audit(cls, audit: BrokerHealthAudit) -> "BrokerHealthAuditResponse":
        return cls(
            broker=BrokerSummaryResponse.from_summary(audit.broker),
            health_score=HealthScoreResponse.from_score(audit.health_score),
            contractors=[
                ContractorPerformanceResponse(
                    contractor_id=c.contractor_id,
                    name=c.name,
                    company_name=c.company_name,
                    provider_type=c.provider_type,
                    leads_sent=c.leads_sent,
                    leads_closed=c.leads_closed,
                )
                for c in audit.contractors
            ],
            leads_last_30_days=audit.leads_last_30_days,
            leads_last_7_days=audit.leads_last_7_days,
            avg_days_to_close=audit.avg_days_to_close,
            revenue_by_type=[
                RevenueByTypeResponse(type=r.type, count=r.count, closed=r.closed, revenue=r.revenue)
                for r in audit.revenue_by_type
            ],
            alerts=[HealthAlertResponse(type=a.type.value, message=a.message) for a in audit.alerts],
        )


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Lead not found: 123e4567-e89b-12d3-a456-426614174000"
            }
        }
