"""
User Alert API Endpoints

Provides endpoints for the calling user to:
- List the alerts visible to them with their current state
- Mark an alert as read
- Snooze and unsnooze an alert
- List their in-app notifications
"""
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from alerting.api.v1.dependencies import get_alert_service, get_current_user
from alerting.models.user import User
from alerting.schemas.alert import ActionResponse, SnoozeRequest, UserAlertViewResponse
from alerting.services.alert_service import AlertService

router = APIRouter(prefix="/me", tags=["user-alerts"])


@router.get("/alerts", response_model=List[UserAlertViewResponse])
async def list_my_alerts(
    current_user: User = Depends(get_current_user),
    service: AlertService = Depends(get_alert_service),
) -> List[UserAlertViewResponse]:
    """
    Alerts currently visible to the caller.

    Each entry carries the derived state (UNREAD, READ, SNOOZED) and the
    actions valid in that state.
    """
    views = service.get_alerts_for_user(current_user.id)
    return [UserAlertViewResponse(**view.to_dict()) for view in views]


@router.post("/alerts/{alert_id}/read", response_model=ActionResponse)
async def mark_alert_read(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    service: AlertService = Depends(get_alert_service),
) -> ActionResponse:
    service.mark_alert_as_read(current_user.id, alert_id)
    return ActionResponse(success=True, message="Alert marked as read")


@router.post("/alerts/{alert_id}/snooze", response_model=ActionResponse)
async def snooze_alert(
    alert_id: str,
    body: Optional[SnoozeRequest] = Body(None),
    current_user: User = Depends(get_current_user),
    service: AlertService = Depends(get_alert_service),
) -> ActionResponse:
    hours = body.hours if body else None
    service.snooze_alert(current_user.id, alert_id, hours)
    effective = hours or service.state_machine.default_snooze_hours
    return ActionResponse(success=True, message=f"Alert snoozed for {effective} hours")


@router.post("/alerts/{alert_id}/unsnooze", response_model=ActionResponse)
async def unsnooze_alert(
    alert_id: str,
    current_user: User = Depends(get_current_user),
    service: AlertService = Depends(get_alert_service),
) -> ActionResponse:
    service.unsnooze_alert(current_user.id, alert_id)
    return ActionResponse(success=True, message="Alert unsnoozed")


@router.get("/notifications")
async def list_my_notifications(
    limit: int = Query(50, ge=1, le=200, description="Number of notifications to return"),
    current_user: User = Depends(get_current_user),
    service: AlertService = Depends(get_alert_service),
) -> List[Dict[str, Any]]:
    """Most recent in-app deliveries for the caller."""
    in_app = service.registry.get_channel("In-App")
    return in_app.get_user_notifications(current_user.id, limit=limit) if in_app else []
