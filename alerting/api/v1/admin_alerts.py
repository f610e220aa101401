"""
Admin Alert API Endpoints

Provides endpoints for:
- Creating, reading, updating and archiving alerts
- Running a reminder sweep on demand and reading scheduler status
- Dashboard analytics

All endpoints require the admin role.
"""
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from alerting.api.v1.dependencies import get_alert_service, require_admin
from alerting.core.database import get_db
from alerting.models.user import User
from alerting.schemas.alert import AlertCreate, AlertResponse, AlertUpdate
from alerting.services.alert_service import AlertService
from alerting.services.analytics_service import AnalyticsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class ReminderRunResponse(BaseModel):
    """Result of a manual reminder sweep."""
    skipped: bool
    result: Optional[Dict[str, Any]] = None


def _get_scheduler(request: Request):
    scheduler = getattr(request.app.state, "reminder_scheduler", None)
    if scheduler is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reminder scheduler is not configured",
        )
    return scheduler


@router.post("/alerts", response_model=AlertResponse, status_code=status.HTTP_201_CREATED)
async def create_alert(
    alert_data: AlertCreate,
    current_user: User = Depends(require_admin),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    """Create an alert and notify its audience."""
    alert = await service.create_alert(current_user.id, alert_data)
    return AlertResponse(**alert.to_dict())


@router.get("/alerts/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: str,
    current_user: User = Depends(require_admin),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    return AlertResponse(**service.get_alert(alert_id).to_dict())


@router.patch("/alerts/{alert_id}", response_model=AlertResponse)
async def update_alert(
    alert_id: str,
    patch: AlertUpdate,
    current_user: User = Depends(require_admin),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    """
    Partially update an alert.

    The current audience is notified again; recipients who already read or
    snoozed the alert are skipped.
    """
    alert = await service.update_alert(alert_id, patch)
    return AlertResponse(**alert.to_dict())


@router.post("/alerts/{alert_id}/archive", response_model=AlertResponse)
async def archive_alert(
    alert_id: str,
    current_user: User = Depends(require_admin),
    service: AlertService = Depends(get_alert_service),
) -> AlertResponse:
    alert = service.archive_alert(alert_id)
    logger.info(
        "Alert archived via API",
        extra={"event_type": "alert_archive_requested", "alert_id": alert_id, "admin_id": current_user.id}
    )
    return AlertResponse(**alert.to_dict())


@router.post("/reminders/run", response_model=ReminderRunResponse)
async def run_reminders(
    request: Request,
    current_user: User = Depends(require_admin),
) -> ReminderRunResponse:
    """Run a reminder sweep now. Reports skipped if one is already running."""
    scheduler = _get_scheduler(request)
    result = await scheduler.trigger_manual_run()
    if result is None:
        return ReminderRunResponse(skipped=True)
    return ReminderRunResponse(skipped=False, result=result.to_dict())


@router.get("/reminders/status")
async def reminder_status(
    request: Request,
    current_user: User = Depends(require_admin),
) -> Dict[str, Any]:
    return _get_scheduler(request).get_status().to_dict()


@router.get("/analytics")
async def get_analytics(
    current_user: User = Depends(require_admin),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    return AnalyticsService(db).get_basic_analytics().to_dict()


@router.get("/alerts/{alert_id}/deliveries")
async def get_alert_delivery_stats(
    alert_id: str,
    current_user: User = Depends(require_admin),
    service: AlertService = Depends(get_alert_service),
    db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Per-status delivery counts for one alert."""
    service.get_alert(alert_id)
    return AnalyticsService(db).get_alert_delivery_stats(alert_id)
