"""SQLAlchemy ORM models"""
from alerting.models.team import Team
from alerting.models.user import User, UserRole
from alerting.models.alert import (
    Alert,
    AlertSeverity,
    AlertStatus,
    DeliveryType,
    VisibilityType,
)
from alerting.models.user_alert_preference import UserAlertPreference
from alerting.models.notification_delivery import NotificationDelivery, NotificationStatus
from alerting.models.alert_audit_log import AlertAuditLog, AlertAuditAction

__all__ = [
    "Team",
    "User",
    "UserRole",
    "Alert",
    "AlertSeverity",
    "AlertStatus",
    "DeliveryType",
    "VisibilityType",
    "UserAlertPreference",
    "NotificationDelivery",
    "NotificationStatus",
    "AlertAuditLog",
    "AlertAuditAction",
]
