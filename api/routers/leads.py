"""
Leads API Endpoints.

Admin lead lifecycle (create, list, update, post, cancel, delete) and the
contractor-facing purchase endpoint.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query

from api.errors import http_error, unexpected_error
from api.models import (
    LeadCreateRequest,
    LeadListResponse,
    LeadPurchaseRequest,
    LeadResponse,
    LeadUpdateRequest,
)
from domain.lead import parse_status
from repositories.lead_repository import LeadQueryFilters
from services import lead_service
from services.errors import ServiceError

router = APIRouter()


@router.post(
    "/admin/leads",
    response_model=LeadResponse,
    status_code=201,
    summary="Create Lead",
    description="Create a draft lead from an existing job."
)
def create_lead(request: LeadCreateRequest):
    """
    Create a lead in draft status.

    **Example request:**
    ```json
    {
      "job_id": "123e4567-e89b-12d3-a456-426614174000",
      "price": "45.00",
      "service_tags": ["insulation"]
    }
    ```
    """
    try:
        lead = lead_service.create_lead(
            job_id=request.job_id,
            price=request.price,
            notes=request.notes,
            service_tags=request.service_tags,
        )
        return LeadResponse.from_lead(lead)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("create lead")


@router.get(
    "/admin/leads",
    response_model=LeadListResponse,
    summary="List Leads",
    description="Paginated lead listing, newest first, with optional filters."
)
def list_leads(
    status: Optional[str] = Query(None, description="draft, active, sold, expired or canceled"),
    job_id: Optional[UUID] = Query(None),
    price_min: Optional[Decimal] = Query(None),
    price_max: Optional[Decimal] = Query(None),
    posted_after: Optional[datetime] = Query(None),
    posted_before: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(lead_service.DEFAULT_PAGE_SIZE, ge=1, le=lead_service.MAX_PAGE_SIZE),
):
    """
    **Example usage:**
    - `GET /api/v1/admin/leads?status=active`
    - `GET /api/v1/admin/leads?price_min=20&price_max=60&page=2&per_page=50`
    """
    try:
        parsed_status = None
        if status:
            try:
                parsed_status = parse_status(status)
            except ValueError as e:
                raise HTTPException(status_code=400, detail=str(e))

        filters = LeadQueryFilters(
            status=parsed_status,
            job_id=job_id,
            price_min=price_min,
            price_max=price_max,
            posted_after=posted_after,
            posted_before=posted_before,
        )
        result = lead_service.list_leads(filters, page=page, per_page=per_page)
        return LeadListResponse(
            items=[LeadResponse.from_lead(lead) for lead in result.items],
            total=result.total,
            page=result.page,
            per_page=result.per_page,
        )
    except HTTPException:
        raise
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("list leads")


@router.get("/admin/leads/{lead_id}", response_model=LeadResponse, summary="Get Lead")
def get_lead(lead_id: UUID):
    try:
        return LeadResponse.from_lead(lead_service.get_lead(lead_id))
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("get lead")


@router.patch(
    "/admin/leads/{lead_id}",
    response_model=LeadResponse,
    summary="Update Lead",
    description="Update whitelisted lead fields. Status changes must follow the lead lifecycle."
)
def update_lead(lead_id: UUID, request: LeadUpdateRequest):
    """
    Only fields present in the request body are applied.

    **Lifecycle:** draft -> active -> expired/canceled. A lead only becomes
    sold through the purchase endpoint.
    """
    try:
        updates = request.model_dump(exclude_unset=True)
        lead = lead_service.update_lead(lead_id, updates)
        return LeadResponse.from_lead(lead)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("update lead")


@router.delete("/admin/leads/{lead_id}", status_code=204, summary="Delete Lead")
def delete_lead(lead_id: UUID):
    try:
        lead_service.delete_lead(lead_id)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("delete lead")


@router.post("/admin/leads/{lead_id}/post", response_model=LeadResponse, summary="Post Lead For Sale")
def post_lead(lead_id: UUID):
    try:
        return LeadResponse.from_lead(lead_service.post_lead(lead_id))
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("post lead")


@router.post("/admin/leads/{lead_id}/cancel", response_model=LeadResponse, summary="Cancel Lead")
def cancel_lead(lead_id: UUID):
    try:
        return LeadResponse.from_lead(lead_service.cancel_lead(lead_id))
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("cancel lead")


@router.post(
    "/leads/{lead_id}/purchase",
    response_model=LeadResponse,
    summary="Purchase Lead",
    description="Buy an active lead. Exactly one concurrent purchaser succeeds; the rest receive 409."
)
def purchase_lead(lead_id: UUID, request: LeadPurchaseRequest):
    """
    **Example request:**
    ```json
    {
      "buyer_id": "123e4567-e89b-12d3-a456-426614174002",
      "buyer_type": "contractor"
    }
    ```

    **Conflict response (already sold):**
    ```json
    {"detail": "Lead has already been purchased"}
    ```
    """
    try:
        lead = lead_service.purchase_lead(lead_id, request.buyer_id, request.buyer_type)
        return LeadResponse.from_lead(lead)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("purchase lead")
