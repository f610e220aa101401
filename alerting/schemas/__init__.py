"""Pydantic schemas for request/response validation"""
from alerting.schemas.alert import (
    Visibility,
    AlertCreate,
    AlertUpdate,
    AlertResponse,
    PreferenceResponse,
    UserAlertViewResponse,
    SnoozeRequest,
    ActionResponse,
)

__all__ = [
    "Visibility",
    "AlertCreate",
    "AlertUpdate",
    "AlertResponse",
    "PreferenceResponse",
    "UserAlertViewResponse",
    "SnoozeRequest",
    "ActionResponse",
]
