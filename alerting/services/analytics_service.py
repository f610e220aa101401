"""Dashboard counts for administrators"""
import logging
from dataclasses import dataclass, field
from typing import Dict

from sqlalchemy import func
from sqlalchemy.orm import Session as DBSession

from alerting.models.alert import Alert, AlertSeverity, AlertStatus
from alerting.models.notification_delivery import NotificationDelivery, NotificationStatus
from alerting.models.user_alert_preference import UserAlertPreference

logger = logging.getLogger(__name__)


@dataclass
class AlertAnalytics:
    total_alerts: int = 0
    alerts_delivered: int = 0
    alerts_read: int = 0
    snoozed_count: int = 0
    active_alerts: int = 0
    expired_alerts: int = 0
    archived_alerts: int = 0
    reminders_sent: int = 0
    severity_breakdown: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "total_alerts": self.total_alerts,
            "alerts_delivered": self.alerts_delivered,
            "alerts_read": self.alerts_read,
            "snoozed_count": self.snoozed_count,
            "active_alerts": self.active_alerts,
            "expired_alerts": self.expired_alerts,
            "archived_alerts": self.archived_alerts,
            "reminders_sent": self.reminders_sent,
            "severity_breakdown": dict(self.severity_breakdown),
        }


class AnalyticsService:
    """
    Aggregate counts over alerts and deliveries.

    Delivered counts include deliveries that were later read or snoozed,
    since both imply the notification arrived.
    """

    def __init__(self, db: DBSession):
        self.db = db

    def get_basic_analytics(self) -> AlertAnalytics:
        status_counts = dict(
            self.db.query(Alert.status, func.count(Alert.id)).group_by(Alert.status).all()
        )
        delivery_counts = dict(
            self.db.query(NotificationDelivery.status, func.count(NotificationDelivery.id))
            .group_by(NotificationDelivery.status)
            .all()
        )
        reminders_sent = self.db.query(func.coalesce(func.sum(UserAlertPreference.reminder_count), 0)).scalar()

        active = (
            self.db.query(func.count(Alert.id))
            .filter(Alert.status == AlertStatus.ACTIVE.value, Alert.is_active.is_(True))
            .scalar()
        )

        return AlertAnalytics(
            total_alerts=sum(status_counts.values()),
            alerts_delivered=sum(
                delivery_counts.get(s.value, 0)
                for s in (NotificationStatus.DELIVERED, NotificationStatus.READ, NotificationStatus.SNOOZED)
            ),
            alerts_read=delivery_counts.get(NotificationStatus.READ.value, 0),
            snoozed_count=delivery_counts.get(NotificationStatus.SNOOZED.value, 0),
            active_alerts=active or 0,
            expired_alerts=status_counts.get(AlertStatus.EXPIRED.value, 0),
            archived_alerts=status_counts.get(AlertStatus.ARCHIVED.value, 0),
            reminders_sent=int(reminders_sent or 0),
            severity_breakdown=self.get_severity_breakdown(),
        )

    def get_severity_breakdown(self) -> Dict[str, int]:
        """Alert counts per severity, with zero for severities never used."""
        breakdown = {s.value: 0 for s in AlertSeverity}
        for severity, count in self.db.query(Alert.severity, func.count(Alert.id)).group_by(Alert.severity):
            if severity in breakdown:
                breakdown[severity] = count
        return breakdown

    def get_alert_delivery_stats(self, alert_id: str) -> Dict[str, int]:
        """Per-status delivery counts and preference totals for one alert."""
        counts = dict(
            self.db.query(NotificationDelivery.status, func.count(NotificationDelivery.id))
            .filter(NotificationDelivery.alert_id == alert_id)
            .group_by(NotificationDelivery.status)
            .all()
        )
        preferences = self.db.query(UserAlertPreference).filter(UserAlertPreference.alert_id == alert_id)
        return {
            "total_recipients": preferences.count(),
            "read": preferences.filter(UserAlertPreference.is_read.is_(True)).count(),
            "snoozed": counts.get(NotificationStatus.SNOOZED.value, 0),
            "delivered": sum(counts.values()) - counts.get(NotificationStatus.PENDING.value, 0),
            "pending": counts.get(NotificationStatus.PENDING.value, 0),
        }
