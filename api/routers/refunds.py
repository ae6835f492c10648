"""
Refunds API Endpoints.

Contractor refund requests and the admin review queue.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, Query

from api.errors import http_error, unexpected_error
from api.models import (
    RefundApproveRequest,
    RefundCreateRequest,
    RefundDenyRequest,
    RefundInfoRequest,
    RefundRequestDetailResponse,
    RefundRequestResponse,
)
from domain.refund import RefundStatus
from repositories.refund_repository import RefundQueryFilters
from services import refund_service
from services.errors import ServiceError

router = APIRouter()


# ============================================================================
# Contractor endpoints
# ============================================================================

@router.post(
    "/contractor/leads/{lead_id}/request-refund",
    response_model=RefundRequestResponse,
    status_code=201,
    summary="Request Refund",
    description="Request a refund for a purchased lead within 30 days of purchase."
)
def request_refund(lead_id: UUID, request: RefundCreateRequest):
    """
    Open a refund request against the contractor's latest completed payment
    for the lead.

    **Example request:**
    ```json
    {
      "contractor_id": "123e4567-e89b-12d3-a456-426614174002",
      "lead_type": "system_lead",
      "reason": "Homeowner never answered after five attempts",
      "reason_category": "no_response"
    }
    ```

    **Errors:**
    - 400: missing reason, unknown category, or refund window expired
    - 404: no completed payment for this lead
    - 409: a refund is already pending or decided for this purchase
    """
    try:
        created = refund_service.request_refund(
            contractor_id=request.contractor_id,
            lead_id=lead_id,
            lead_type=request.lead_type,
            reason=request.reason,
            reason_category=request.reason_category,
            notes=request.notes,
        )
        return RefundRequestResponse.from_request(created)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("request refund")


@router.get(
    "/contractor/refunds",
    response_model=List[RefundRequestResponse],
    summary="List Contractor Refunds",
)
def list_contractor_refunds(contractor_id: UUID = Query(..., description="Contractor whose requests to list")):
    try:
        requests = refund_service.list_contractor_refunds(contractor_id)
        return [RefundRequestResponse.from_request(r) for r in requests]
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("list contractor refunds")


# ============================================================================
# Admin endpoints
# ============================================================================

@router.get(
    "/admin/refund-requests",
    response_model=List[RefundRequestResponse],
    summary="List Refund Requests",
    description="Refund requests newest first, optionally filtered by status, contractor and date range."
)
def list_refund_requests(
    status: Optional[str] = Query(None, description="pending, more_info_requested, approved or denied"),
    contractor_id: Optional[UUID] = Query(None),
    date_from: Optional[datetime] = Query(None),
    date_to: Optional[datetime] = Query(None),
):
    try:
        parsed_status = None
        if status:
            try:
                parsed_status = RefundStatus(status)
            except ValueError:
                allowed = ", ".join(s.value for s in RefundStatus)
                raise HTTPException(status_code=400, detail=f"Invalid status. Must be one of: {allowed}")

        filters = RefundQueryFilters(
            status=parsed_status,
            contractor_id=contractor_id,
            date_from=date_from,
            date_to=date_to,
        )
        return [RefundRequestResponse.from_request(r) for r in refund_service.list_refund_requests(filters)]
    except HTTPException:
        raise
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("list refund requests")


@router.get(
    "/admin/refund-requests/{request_id}",
    response_model=RefundRequestDetailResponse,
    summary="Get Refund Request",
    description="Refund request with payment amount and the contractor's refund history."
)
def get_refund_request(request_id: UUID):
    try:
        details = refund_service.get_refund_request_with_details(request_id)
        return RefundRequestDetailResponse.from_details(details)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("get refund request")


@router.post(
    "/admin/refund-requests/{request_id}/approve",
    response_model=RefundRequestResponse,
    summary="Approve Refund",
    description="Approve the request and refund the payment through Stripe."
)
def approve_refund(request_id: UUID, request: RefundApproveRequest):
    """
    If Stripe rejects the refund the request is left unchanged and a 500 is
    returned. Retrying is safe: the Stripe call is idempotent per request.
    """
    try:
        approved = refund_service.approve_refund(request_id, request.admin_id, request.notes)
        return RefundRequestResponse.from_request(approved)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("approve refund")


@router.post(
    "/admin/refund-requests/{request_id}/deny",
    response_model=RefundRequestResponse,
    summary="Deny Refund",
)
def deny_refund(request_id: UUID, request: RefundDenyRequest):
    try:
        denied = refund_service.deny_refund(request_id, request.admin_id, request.reason)
        return RefundRequestResponse.from_request(denied)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("deny refund")


@router.post(
    "/admin/refund-requests/{request_id}/request-info",
    response_model=RefundRequestResponse,
    summary="Request More Information",
)
def request_more_info(request_id: UUID, request: RefundInfoRequest):
    try:
        updated = refund_service.request_more_info(request_id, request.admin_id, request.question)
        return RefundRequestResponse.from_request(updated)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("request more information")
