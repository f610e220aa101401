"""
Alert event fan-out.

AlertEventPublisher delivers one lifecycle event (created, updated, reminder,
expired) to every registered subscriber concurrently. Each subscriber runs
inside its own failure boundary: an exception is logged and counted, and
neither its siblings nor the publisher's caller see it.

Subscribers:
- NotificationSubscriber: creates missing preferences, then bulk-dispatches
  to eligible recipients (created/updated events only)
- AnalyticsSubscriber: Prometheus counters plus a structured log line
- AuditSubscriber: one AlertAuditLog row per event
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.orm import Session as DBSession

from alerting.core.clock import system_clock
from alerting.core.exceptions import SubscriberFailure
from alerting.core.metrics import record_alert_event, record_subscriber_failure
from alerting.models.alert import Alert
from alerting.models.alert_audit_log import AlertAuditAction, AlertAuditLog
from alerting.models.user import User
from alerting.services.notifications.dispatch import NotificationDispatcher
from alerting.services.preference_repository import PreferenceRepository

logger = logging.getLogger(__name__)


@dataclass
class AlertEventContext:
    """What happened to the alert, plus action-specific details."""

    action: AlertAuditAction
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        self.action = AlertAuditAction(self.action)


class AlertSubscriber(ABC):
    """Receives alert lifecycle events from the publisher."""

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    async def handle(self, alert: Alert, recipients: Sequence[User], context: AlertEventContext) -> None:
        ...


class AlertEventPublisher:
    """Ordered list of subscribers notified concurrently on publish()."""

    def __init__(self, subscribers: Optional[List[AlertSubscriber]] = None):
        self._subscribers: List[AlertSubscriber] = list(subscribers or [])

    def add_subscriber(self, subscriber: AlertSubscriber) -> None:
        self._subscribers.append(subscriber)
        logger.debug(
            f"Subscriber added: {subscriber.name}",
            extra={"event_type": "subscriber_added", "subscriber_count": len(self._subscribers)}
        )

    def remove_subscriber(self, subscriber: AlertSubscriber) -> bool:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)
            return True
        logger.warning(f"Subscriber not registered: {subscriber.name}")
        return False

    def clear_subscribers(self) -> None:
        self._subscribers = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscriber_names(self) -> List[str]:
        return [s.name for s in self._subscribers]

    async def publish(self, alert: Alert, recipients: Sequence[User], context: AlertEventContext) -> None:
        """Notify every subscriber. Never raises."""
        if not self._subscribers:
            logger.warning(
                "No subscribers registered for alert event",
                extra={"event_type": "alert_event_unhandled", "alert_id": alert.id, "action": context.action.value}
            )
            return

        recipients = list(recipients)
        await asyncio.gather(
            *(self._deliver(s, alert, recipients, context) for s in list(self._subscribers))
        )
        logger.info(
            f"Alert event '{context.action.value}' published to {len(self._subscribers)} subscribers",
            extra={
                "event_type": "alert_event_published",
                "alert_id": alert.id,
                "action": context.action.value,
                "recipient_count": len(recipients),
            }
        )

    async def _deliver(
        self,
        subscriber: AlertSubscriber,
        alert: Alert,
        recipients: List[User],
        context: AlertEventContext,
    ) -> None:
        try:
            await subscriber.handle(alert, recipients, context)
        except Exception as e:
            failure = SubscriberFailure(subscriber.name, context.action.value, e)
            logger.error(
                failure.message,
                extra={
                    "event_type": "subscriber_failed",
                    "subscriber": subscriber.name,
                    "alert_id": alert.id,
                    "action": context.action.value,
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            record_subscriber_failure(subscriber.name)


class NotificationSubscriber(AlertSubscriber):
    """
    Creates preferences for every recipient and sends the alert to those
    still eligible (not read, not snoozed, active).

    Reminder and expired events only create missing preferences: reminder
    sends are made by the reminder service itself. Alerts that are not live
    (expired, deactivated or not yet started) are not sent; the first reminder
    sweep after the start time picks up a scheduled alert.
    """

    DISPATCH_ACTIONS = {AlertAuditAction.CREATED, AlertAuditAction.UPDATED}

    def __init__(self, db: DBSession, dispatcher: NotificationDispatcher, clock=None):
        self.preferences = PreferenceRepository(db)
        self.dispatcher = dispatcher
        self.clock = clock or system_clock

    async def handle(self, alert, recipients, context):
        if not recipients:
            return

        preferences = self.preferences.ensure_preferences(alert.id, [u.id for u in recipients])
        if context.action not in self.DISPATCH_ACTIONS:
            return
        now = self.clock.now()
        if not alert.is_currently_active(now):
            logger.info(
                "Alert is not live, notification skipped",
                extra={"event_type": "notification_skipped", "alert_id": alert.id, "status": alert.status}
            )
            return

        eligible = []
        for user in recipients:
            preference = preferences.get(user.id)
            if not user.is_active:
                continue
            if preference is not None and (preference.is_read or preference.is_currently_snoozed(now)):
                continue
            eligible.append(user)

        if not eligible:
            logger.info(
                "No eligible recipients for notification",
                extra={"event_type": "notification_skipped", "alert_id": alert.id, "action": context.action.value}
            )
            return

        await self.dispatcher.send_bulk_notifications(alert, eligible, alert.delivery_type)


class AnalyticsSubscriber(AlertSubscriber):
    """Counts events and targeted recipients in Prometheus."""

    async def handle(self, alert, recipients, context):
        record_alert_event(context.action.value, alert.severity, len(recipients))
        logger.info(
            "Alert analytics recorded",
            extra={
                "event_type": "alert_analytics",
                "alert_id": alert.id,
                "action": context.action.value,
                "severity": alert.severity,
                "delivery_type": alert.delivery_type,
                "visibility_type": alert.visibility_type,
                "target_user_count": len(recipients),
                "created_by": alert.created_by,
            }
        )


class AuditSubscriber(AlertSubscriber):
    """Appends an AlertAuditLog row for every event."""

    def __init__(self, db: DBSession):
        self.db = db

    async def handle(self, alert, recipients, context):
        user_ids = [u.id for u in recipients]
        snapshot = alert.to_dict()
        entry = AlertAuditLog(
            action=context.action.value,
            alert_id=alert.id,
            actor_id=alert.created_by,
            target_user_ids=user_ids,
            target_count=len(user_ids),
            details={
                "title": alert.title,
                "severity": alert.severity,
                "delivery_type": alert.delivery_type,
                "visibility_type": alert.visibility_type,
                "reminder_enabled": alert.is_reminder_enabled,
                "reminder_frequency_minutes": alert.reminder_frequency_minutes,
                "start_time": snapshot["start_time"],
                "expiry_time": snapshot["expiry_time"],
                "metadata": context.metadata,
            },
        )
        self.db.add(entry)
        try:
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Audit log written for '{context.action.value}'",
            extra={
                "event_type": "alert_audit_logged",
                "alert_id": alert.id,
                "action": context.action.value,
                "target_count": len(user_ids),
            }
        )


def build_default_publisher(db: DBSession, dispatcher: NotificationDispatcher, clock=None) -> AlertEventPublisher:
    return AlertEventPublisher([
        NotificationSubscriber(db, dispatcher, clock=clock),
        AnalyticsSubscriber(),
        AuditSubscriber(db),
    ])
