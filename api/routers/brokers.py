"""
Broker Health API Endpoints.
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter

from api.errors import http_error, unexpected_error
from api.models import BrokerHealthAuditResponse, BrokerHealthSummaryResponse
from services import broker_health_service
from services.errors import ServiceError

router = APIRouter()


@router.get(
    "/admin/brokers/health",
    response_model=List[BrokerHealthSummaryResponse],
    summary="List Broker Health",
    description="Every broker with its current health score."
)
def list_brokers_with_health():
    try:
        return [
            BrokerHealthSummaryResponse.from_summary(item)
            for item in broker_health_service.list_brokers_with_health()
        ]
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("list broker health")


@router.get(
    "/admin/brokers/{broker_id}/health",
    response_model=BrokerHealthAuditResponse,
    summary="Broker Health Audit",
    description="Health score, network performance, revenue breakdown and alerts for one broker."
)
def get_broker_health_audit(broker_id: UUID):
    """
    Scores are recomputed on every call from a single consistent snapshot.

    **Example response (abridged):**
    ```json
    {
      "health_score": {"overall": 82, "risk_level": "low", "activity": 80, "...": "..."},
      "avg_days_to_close": 12,
      "alerts": [{"type": "success", "message": "Broker is performing well across all metrics"}]
    }
    ```
    """
    try:
        audit = broker_health_service.get_broker_health_audit(broker_id)
        return BrokerHealthAuditResponse.from_audit(audit)
    except ServiceError as e:
        raise http_error(e)
    except Exception:
        raise unexpected_error("audit broker health")
