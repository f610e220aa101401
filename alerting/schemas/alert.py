"""Alert API Pydantic schemas for request/response validation"""
from pydantic import BaseModel, Field, field_validator, model_validator
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional

from alerting.models.alert import (
    AlertSeverity,
    DeliveryType,
    VisibilityType,
    DEFAULT_REMINDER_FREQUENCY_MINUTES,
    MAX_REMINDER_FREQUENCY_MINUTES,
    MIN_REMINDER_FREQUENCY_MINUTES,
)
from alerting.core.clock import as_utc

MAX_SNOOZE_HOURS = 168  # 1 week


class Visibility(BaseModel):
    """Who an alert is addressed to"""
    type: VisibilityType = Field(..., description="Organization, Team or User")
    target_ids: List[str] = Field(
        default_factory=list,
        description="Team ids (Team scope) or user ids (User scope). Ignored for Organization."
    )

    @model_validator(mode='after')
    def check_targets(self):
        """Team and User scopes need at least one target; Organization stores none."""
        if self.type == VisibilityType.ORGANIZATION:
            self.target_ids = []
        elif not self.target_ids:
            raise ValueError(f"{self.type.value} visibility requires at least one target id")
        # Preserve order, drop duplicates
        self.target_ids = list(dict.fromkeys(self.target_ids))
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [{"type": "Team", "target_ids": ["0b1c4c1e-6f0e-4a53-9a55-0d0d0f6b0a11"]}]
        }
    }


def _check_window(start: Optional[datetime], expiry: Optional[datetime]) -> None:
    if start is not None and expiry is not None and as_utc(expiry) <= as_utc(start):
        raise ValueError("Expiry time must be after start time")


class AlertCreate(BaseModel):
    """Schema for creating an alert via POST /api/v1/admin/alerts"""
    title: str = Field(..., min_length=3, max_length=200, description="Alert title")
    message: str = Field(..., min_length=10, max_length=2000, description="Alert body")
    severity: AlertSeverity = Field(default=AlertSeverity.INFO, description="Info, Warning or Critical")
    delivery_type: DeliveryType = Field(default=DeliveryType.IN_APP, description="Notification channel")
    reminder_frequency_minutes: int = Field(
        default=DEFAULT_REMINDER_FREQUENCY_MINUTES,
        ge=MIN_REMINDER_FREQUENCY_MINUTES,
        le=MAX_REMINDER_FREQUENCY_MINUTES,
        description="Minutes between reminders to the same recipient (1-10080)"
    )
    start_time: Optional[datetime] = Field(None, description="When the alert becomes visible (default now)")
    expiry_time: Optional[datetime] = Field(None, description="When the alert expires (must be after start_time)")
    is_reminder_enabled: bool = Field(default=True, description="Whether reminders are sent")
    visibility: Visibility = Field(..., description="Audience of the alert")

    @field_validator('title', 'message')
    @classmethod
    def strip_text(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("Value cannot be blank")
        return stripped

    @model_validator(mode='after')
    def check_window(self):
        _check_window(self.start_time, self.expiry_time)
        return self

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "title": "Scheduled maintenance",
                    "message": "The VPN gateway will be offline from 22:00 to 23:00 UTC.",
                    "severity": "Warning",
                    "delivery_type": "In-App",
                    "reminder_frequency_minutes": 120,
                    "expiry_time": "2025-11-20T23:00:00Z",
                    "visibility": {"type": "Organization", "target_ids": []}
                }
            ]
        }
    }


class AlertUpdate(BaseModel):
    """Schema for updating an alert via PATCH /api/v1/admin/alerts/{id}"""
    title: Optional[str] = Field(None, min_length=3, max_length=200)
    message: Optional[str] = Field(None, min_length=10, max_length=2000)
    severity: Optional[AlertSeverity] = None
    delivery_type: Optional[DeliveryType] = None
    reminder_frequency_minutes: Optional[int] = Field(
        None,
        ge=MIN_REMINDER_FREQUENCY_MINUTES,
        le=MAX_REMINDER_FREQUENCY_MINUTES,
    )
    start_time: Optional[datetime] = None
    expiry_time: Optional[datetime] = None
    is_active: Optional[bool] = None
    is_reminder_enabled: Optional[bool] = None
    visibility: Optional[Visibility] = None

    # Only expiry can be cleared; every other field is omitted rather than nulled
    NULLABLE_FIELDS: ClassVar[frozenset] = frozenset({"expiry_time"})

    @model_validator(mode='after')
    def reject_explicit_nulls(self):
        nulled = sorted(
            name for name in self.model_fields_set
            if name not in self.NULLABLE_FIELDS and getattr(self, name) is None
        )
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        return self

    @model_validator(mode='after')
    def check_window(self):
        _check_window(self.start_time, self.expiry_time)
        return self

    def changes(self) -> Dict[str, Any]:
        """Fields explicitly set by the caller."""
        return self.model_dump(exclude_unset=True)

    model_config = {
        "json_schema_extra": {
            "examples": [{"severity": "Critical", "visibility": {"type": "User", "target_ids": ["u-1"]}}]
        }
    }


class AlertResponse(BaseModel):
    """Schema for alert API responses"""
    id: str
    title: str
    message: str
    severity: str
    delivery_type: str
    reminder_frequency_minutes: int
    start_time: Optional[datetime] = None
    expiry_time: Optional[datetime] = None
    is_active: bool
    is_reminder_enabled: bool
    visibility: Visibility
    created_by: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PreferenceResponse(BaseModel):
    """Per-recipient acknowledgment record"""
    id: str
    user_id: str
    alert_id: str
    is_read: bool
    is_snoozed: bool
    snoozed_until: Optional[datetime] = None
    last_reminder_sent: Optional[datetime] = None
    reminder_count: int


class UserAlertViewResponse(BaseModel):
    """An alert as seen by one recipient"""
    alert: AlertResponse
    preference: PreferenceResponse
    state: str = Field(..., description="UNREAD, READ or SNOOZED")
    available_actions: List[str] = Field(..., description="Subset of markAsRead, snooze, unsnooze")


class SnoozeRequest(BaseModel):
    """Body for POST /api/v1/me/alerts/{id}/snooze"""
    hours: Optional[int] = Field(
        None,
        ge=1,
        le=MAX_SNOOZE_HOURS,
        description="Snooze duration in hours (1-168). Defaults to DEFAULT_SNOOZE_HOURS."
    )


class ActionResponse(BaseModel):
    """Result of a read/snooze/unsnooze/archive action"""
    success: bool
    message: str
