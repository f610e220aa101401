"""Alert SQLAlchemy ORM model"""
from sqlalchemy import Column, String, Integer, Text, DateTime, Boolean, Index, JSON, CheckConstraint
from sqlalchemy.orm import validates
from alerting.core.clock import as_utc
from alerting.core.database import Base
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class AlertSeverity(str, Enum):
    INFO = "Info"
    WARNING = "Warning"
    CRITICAL = "Critical"


class DeliveryType(str, Enum):
    IN_APP = "In-App"
    EMAIL = "Email"
    SMS = "SMS"


class VisibilityType(str, Enum):
    ORGANIZATION = "Organization"
    TEAM = "Team"
    USER = "User"


class AlertStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    ARCHIVED = "archived"


MIN_REMINDER_FREQUENCY_MINUTES = 1
MAX_REMINDER_FREQUENCY_MINUTES = 10080  # 1 week
DEFAULT_REMINDER_FREQUENCY_MINUTES = 120


class Alert(Base):
    """
    Alert model for broadcast messages with a visibility scope and reminder policy.

    Attributes:
        id: UUID primary key
        title: Short title (max 200 chars)
        message: Body text (max 2000 chars)
        severity: Info, Warning or Critical
        delivery_type: Channel used for notifications and reminders
        reminder_frequency_minutes: Minimum gap between reminders to one user
        start_time: When the alert becomes visible
        expiry_time: Optional end of visibility, strictly after start_time
        is_active: Cleared on archive and on expiry
        is_reminder_enabled: Whether the reminder sweep considers this alert
        visibility_type: Organization, Team or User
        visibility_target_ids: JSON list of team or user ids (empty for Organization)
        created_by: User id of the administrator who created the alert
        status: active, expired or archived (archived is terminal)
        created_at: Record creation timestamp (UTC)
        updated_at: Record last update timestamp (UTC)
    """

    __tablename__ = "alerts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    title = Column(String(200), nullable=False)
    message = Column(Text, nullable=False)
    severity = Column(String(20), nullable=False, default=AlertSeverity.INFO.value)
    delivery_type = Column(String(20), nullable=False, default=DeliveryType.IN_APP.value)
    reminder_frequency_minutes = Column(Integer, nullable=False, default=DEFAULT_REMINDER_FREQUENCY_MINUTES)
    start_time = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    expiry_time = Column(DateTime(timezone=True), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_reminder_enabled = Column(Boolean, nullable=False, default=True)
    visibility_type = Column(String(20), nullable=False)
    visibility_target_ids = Column(JSON, nullable=False, default=list)
    created_by = Column(String(36), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=AlertStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        CheckConstraint("severity IN ('Info', 'Warning', 'Critical')", name='check_alert_severity'),
        CheckConstraint("delivery_type IN ('In-App', 'Email', 'SMS')", name='check_alert_delivery_type'),
        CheckConstraint("visibility_type IN ('Organization', 'Team', 'User')", name='check_alert_visibility_type'),
        CheckConstraint("status IN ('active', 'expired', 'archived')", name='check_alert_status'),
        CheckConstraint(
            "reminder_frequency_minutes >= 1 AND reminder_frequency_minutes <= 10080",
            name='check_reminder_frequency'
        ),
        Index('idx_alerts_status_active', 'status', 'is_active'),
        Index('idx_alerts_window', 'start_time', 'expiry_time'),
        Index('idx_alerts_visibility', 'visibility_type'),
    )

    @validates('start_time', 'expiry_time')
    def validate_schedule(self, key, value):
        """Expiry time, when both are known, must be strictly after start time."""
        other = self.expiry_time if key == 'start_time' else self.start_time
        if value is not None and other is not None:
            start, expiry = (value, other) if key == 'start_time' else (other, value)
            if as_utc(expiry) <= as_utc(start):
                raise ValueError("Expiry time must be after start time")
        return value

    @validates('reminder_frequency_minutes')
    def validate_reminder_frequency(self, key, value):
        if value is not None and not (
            MIN_REMINDER_FREQUENCY_MINUTES <= value <= MAX_REMINDER_FREQUENCY_MINUTES
        ):
            raise ValueError(
                f"Reminder frequency must be between {MIN_REMINDER_FREQUENCY_MINUTES} "
                f"and {MAX_REMINDER_FREQUENCY_MINUTES} minutes"
            )
        return value

    @property
    def target_ids(self) -> List[str]:
        return list(self.visibility_target_ids or [])

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_time is not None and as_utc(self.expiry_time) <= now

    def has_started(self, now: datetime) -> bool:
        return self.start_time is None or as_utc(self.start_time) <= now

    def is_currently_active(self, now: datetime) -> bool:
        """Active flag set, status active, started and not expired."""
        return (
            bool(self.is_active)
            and self.status == AlertStatus.ACTIVE.value
            and self.has_started(now)
            and not self.is_expired(now)
        )

    def reconcile_expiry(self, now: datetime) -> bool:
        """
        Move an active alert past its expiry time to the expired status.

        Returns:
            True if the status changed
        """
        if self.status == AlertStatus.ACTIVE.value and self.is_expired(now):
            self.status = AlertStatus.EXPIRED.value
            self.is_active = False
            return True
        return False

    def __repr__(self):
        return f"<Alert(id={self.id}, title={self.title}, status={self.status})>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert alert to dictionary for API responses and event payloads."""
        return {
            "id": self.id,
            "title": self.title,
            "message": self.message,
            "severity": self.severity,
            "delivery_type": self.delivery_type,
            "reminder_frequency_minutes": self.reminder_frequency_minutes,
            "start_time": _iso(self.start_time),
            "expiry_time": _iso(self.expiry_time),
            "is_active": self.is_active,
            "is_reminder_enabled": self.is_reminder_enabled,
            "visibility": {
                "type": self.visibility_type,
                "target_ids": self.target_ids,
            },
            "created_by": self.created_by,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None
