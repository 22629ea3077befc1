"""
FastAPI Router for Alert Review Endpoints.

Provides REST API for the alert review workflow:
- List pending alerts
- List all alerts
- Alert statistics
- Mark an alert reviewed
"""

from fastapi import APIRouter, Depends, HTTPException, Query

from core.exceptions import AlertNotFoundError, PersistenceError

from .models import AlertNotification
from .schemas import (
    AlertListResponse,
    AlertResponse,
    AlertStatisticsResponse,
    ReviewRequest,
)
from .service import AlertSystem

router = APIRouter(prefix="/veritas/alerts", tags=["Veritas Alerts"])


# =============================================================
# HELPER: Alert system dependency
# =============================================================

def get_alert_system() -> AlertSystem:
    """Overridden by the application (app.dependency_overrides)."""
    raise HTTPException(status_code=503, detail="Alert system not configured")


def _to_response(alert: AlertNotification) -> AlertResponse:
    return AlertResponse.model_validate(alert.to_dict())


# =============================================================
# QUERY ENDPOINTS
# =============================================================

@router.get("/pending", response_model=AlertListResponse)
async def list_pending_alerts(
    limit: int = Query(50, ge=1, le=500),
    alerts: AlertSystem = Depends(get_alert_system),
):
    """Unreviewed alerts, newest first."""
    pending = await alerts.get_pending_alerts(limit)
    return AlertListResponse(alerts=[_to_response(a) for a in pending], count=len(pending))


@router.get("/", response_model=AlertListResponse)
async def list_alerts(
    limit: int = Query(100, ge=1, le=1000),
    alerts: AlertSystem = Depends(get_alert_system),
):
    """All alerts, newest first."""
    items = await alerts.get_all_alerts(limit)
    return AlertListResponse(alerts=[_to_response(a) for a in items], count=len(items))


@router.get("/stats", response_model=AlertStatisticsResponse)
async def get_alert_stats(alerts: AlertSystem = Depends(get_alert_system)):
    stats = await alerts.get_alert_statistics()
    return AlertStatisticsResponse(**stats.to_dict())


# =============================================================
# REVIEW ENDPOINTS
# =============================================================

@router.post("/{alert_id}/review", response_model=AlertResponse)
async def review_alert(
    alert_id: int,
    request: ReviewRequest,
    alerts: AlertSystem = Depends(get_alert_system),
):
    """Mark an alert as reviewed by a human operator."""
    try:
        alert = await alerts.mark_as_reviewed(alert_id, request.reviewed_by, request.notes)
    except AlertNotFoundError:
        raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return _to_response(alert)
