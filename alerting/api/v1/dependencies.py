"""
Shared FastAPI dependencies for the alert API.

The caller is identified by the X-User-Id header; authentication happens in
front of this service.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from alerting.core.clock import system_clock
from alerting.core.database import get_db
from alerting.core.exceptions import PermissionDeniedError
from alerting.models.user import User
from alerting.services.alert_service import AlertService


def get_clock(request: Request):
    return getattr(request.app.state, "clock", None) or system_clock


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> User:
    """
    Resolve the calling user.

    Raises:
        HTTPException: 401 if the header is missing or names no active user
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )

    user = db.query(User).filter(User.id == x_user_id).first()
    if user is None or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive user",
        )
    return user


def require_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise PermissionDeniedError("Admin role required", {"user_id": current_user.id})
    return current_user


def get_alert_service(db: Session = Depends(get_db), clock=Depends(get_clock)) -> AlertService:
    return AlertService(db, clock=clock)
