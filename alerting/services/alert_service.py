"""
Alert Lifecycle Service

Entry point for everything that happens to an alert:

    create_alert / update_alert
        validate -> persist -> resolve audience -> publish created/updated
    archive_alert
        terminal status, no fan-out
    get_alerts_for_user
        visible alerts with found-or-created, auto-transitioned preferences
    mark_alert_as_read / snooze_alert / unsnooze_alert
        state machine on the preference, mirrored onto the in-app delivery
    process_reminders
        one reminder sweep: expire overdue alerts, then remind per alert

Fan-out is best-effort: an alert is committed before subscribers run, so a
create or update succeeds even if every notification fails.
"""
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

import pydantic
from sqlalchemy import or_
from sqlalchemy.orm import Session as DBSession

from alerting.core.clock import as_utc, system_clock
from alerting.core.exceptions import NotFoundError, SchedulerTickFailure, ValidationError
from alerting.models.alert import Alert, AlertStatus, DeliveryType
from alerting.models.alert_audit_log import AlertAuditAction
from alerting.models.user_alert_preference import UserAlertPreference
from alerting.schemas.alert import AlertCreate, AlertUpdate
from alerting.services.alert_events import AlertEventContext, AlertEventPublisher, build_default_publisher
from alerting.services.audience_resolver import AudienceResolver
from alerting.services.notifications.channels import InAppChannel
from alerting.services.notifications.dispatch import NotificationDispatcher
from alerting.services.notifications.registry import ChannelRegistry, build_default_registry
from alerting.services.preference_repository import PreferenceRepository
from alerting.services.preference_state import PreferenceState, PreferenceStateMachine
from alerting.services.reminder_service import ReminderService, ReminderSweepResult
from alerting.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)

# Fields compared when building the update diff
UPDATABLE_FIELDS = (
    "title",
    "message",
    "severity",
    "delivery_type",
    "reminder_frequency_minutes",
    "start_time",
    "expiry_time",
    "is_active",
    "is_reminder_enabled",
)


@dataclass
class UserAlertView:
    """An alert as seen by one recipient."""

    alert: Alert
    preference: UserAlertPreference
    state: PreferenceState
    available_actions: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert": self.alert.to_dict(),
            "preference": self.preference.to_dict(),
            "state": self.state.value,
            "available_actions": list(self.available_actions),
        }


class AlertService:
    """
    Alert lifecycle operations bound to one database session.

    Collaborators default to the standard wiring (in-app/email/SMS channels,
    notification/analytics/audit subscribers) and can be replaced in tests.
    """

    def __init__(
        self,
        db: DBSession,
        clock=None,
        registry: Optional[ChannelRegistry] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        publisher: Optional[AlertEventPublisher] = None,
        default_snooze_hours: Optional[int] = None,
    ):
        self.db = db
        self.clock = clock or system_clock
        self.registry = registry or build_default_registry(db, clock=self.clock)
        self.dispatcher = dispatcher or NotificationDispatcher(self.registry)
        self.publisher = publisher or build_default_publisher(db, self.dispatcher, clock=self.clock)
        self.directory = UserDirectory(db)
        self.resolver = AudienceResolver(db, self.directory)
        self.preferences = PreferenceRepository(db)
        self.state_machine = PreferenceStateMachine(clock=self.clock, default_snooze_hours=default_snooze_hours)
        self.reminders = ReminderService(db, self.dispatcher, self.state_machine, clock=self.clock)

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def create_alert(self, creator_id: str, alert_data: Union[AlertCreate, Dict[str, Any]]) -> Alert:
        """
        Create an alert and notify its audience.

        Raises:
            ValidationError: Invalid fields, schedule or visibility targets
        """
        data = _parse(AlertCreate, alert_data)
        target_ids = self.resolver.validate_visibility_targets(data.visibility.type, data.visibility.target_ids)

        now = self.clock.now()
        start_time = as_utc(data.start_time) or now
        expiry_time = as_utc(data.expiry_time)
        if expiry_time is not None and expiry_time <= start_time:
            raise ValidationError("Expiry time must be after start time")

        alert = Alert(
            title=data.title,
            message=data.message,
            severity=data.severity.value,
            delivery_type=data.delivery_type.value,
            reminder_frequency_minutes=data.reminder_frequency_minutes,
            start_time=start_time,
            expiry_time=expiry_time,
            is_active=True,
            is_reminder_enabled=data.is_reminder_enabled,
            visibility_type=data.visibility.type.value,
            visibility_target_ids=target_ids,
            created_by=creator_id,
            status=AlertStatus.ACTIVE.value,
        )
        # A window entirely in the past is stored as expired and never sent
        expired_now = alert.reconcile_expiry(now)
        self.db.add(alert)
        self.db.commit()
        self.db.refresh(alert)

        logger.info(
            f"Alert created: {alert.title}",
            extra={
                "event_type": "alert_created",
                "alert_id": alert.id,
                "created_by": creator_id,
                "severity": alert.severity,
                "visibility_type": alert.visibility_type,
                "status": alert.status,
            }
        )

        recipients = self.resolver.resolve_for_alert(alert)
        await self.publisher.publish(
            alert,
            recipients,
            AlertEventContext(AlertAuditAction.CREATED, {"recipient_count": len(recipients)}),
        )
        if expired_now:
            await self._publish_expired(alert)
        return alert

    async def update_alert(self, alert_id: str, patch: Union[AlertUpdate, Dict[str, Any]]) -> Alert:
        """
        Apply a partial update and notify the (possibly new) audience.

        Preferences of users no longer in scope are left untouched.

        Raises:
            NotFoundError: Alert does not exist
            ValidationError: Empty patch, archived alert, bad schedule or targets
        """
        data = _parse(AlertUpdate, patch)
        changes = data.changes()
        if not changes:
            raise ValidationError("At least one field must be provided for update")

        alert = self.get_alert(alert_id)
        if alert.status == AlertStatus.ARCHIVED.value:
            raise ValidationError("Archived alerts cannot be modified", {"alert_id": alert_id})

        new_start = as_utc(changes["start_time"]) if "start_time" in changes else as_utc(alert.start_time)
        new_expiry = as_utc(changes["expiry_time"]) if "expiry_time" in changes else as_utc(alert.expiry_time)
        if new_start is None:
            raise ValidationError("Start time cannot be cleared")
        if new_expiry is not None and new_expiry <= new_start:
            raise ValidationError("Expiry time must be after start time")

        now = self.clock.now()
        still_expired = new_expiry is not None and new_expiry <= now
        if changes.get("is_active") and alert.status == AlertStatus.EXPIRED.value and still_expired:
            raise ValidationError(
                "Expired alert cannot be re-enabled without moving its expiry time into the future",
                {"alert_id": alert_id}
            )

        diff: Dict[str, Dict[str, Any]] = {}

        if "visibility" in changes:
            visibility = data.visibility
            target_ids = self.resolver.validate_visibility_targets(visibility.type, visibility.target_ids)
            old = {"type": alert.visibility_type, "target_ids": alert.target_ids}
            new = {"type": visibility.type.value, "target_ids": target_ids}
            if old != new:
                diff["visibility"] = {"old": old, "new": new}
                alert.visibility_type = new["type"]
                alert.visibility_target_ids = new["target_ids"]

        values = dict(changes)
        values["start_time"] = new_start
        values["expiry_time"] = new_expiry
        for field_name in UPDATABLE_FIELDS:
            if field_name not in changes:
                continue
            new_value = _normalize(values[field_name])
            old_value = _normalize(getattr(alert, field_name))
            if isinstance(old_value, datetime):
                old_value = as_utc(old_value)
            if new_value != old_value:
                diff[field_name] = {"old": _serialize(old_value), "new": _serialize(new_value)}

        if "start_time" in diff or "expiry_time" in diff:
            # Clear expiry first so the model validator never sees a transient inverted window
            alert.expiry_time = None
            alert.start_time = new_start
            alert.expiry_time = new_expiry
        for field_name in diff:
            if field_name in ("visibility", "start_time", "expiry_time"):
                continue
            setattr(alert, field_name, _normalize(values[field_name]))

        if alert.status == AlertStatus.EXPIRED.value and "expiry_time" in diff and not alert.is_expired(now):
            # Expiry moved into the future: the alert is live again unless the patch disables it
            alert.status = AlertStatus.ACTIVE.value
            alert.is_active = changes.get("is_active", True)
        expired_now = alert.reconcile_expiry(now)

        self.db.commit()
        self.db.refresh(alert)

        logger.info(
            f"Alert updated: {alert.title}",
            extra={
                "event_type": "alert_updated",
                "alert_id": alert.id,
                "changed_fields": sorted(diff),
            }
        )

        recipients = self.resolver.resolve_for_alert(alert)
        await self.publisher.publish(
            alert,
            recipients,
            AlertEventContext(AlertAuditAction.UPDATED, {"changes": diff}),
        )
        if expired_now:
            await self._publish_expired(alert)
        return alert

    def archive_alert(self, alert_id: str) -> Alert:
        """Move an alert to the terminal archived state. No fan-out."""
        alert = self.get_alert(alert_id)
        alert.status = AlertStatus.ARCHIVED.value
        alert.is_active = False
        self.db.commit()
        self.db.refresh(alert)

        logger.info(
            f"Alert archived: {alert.title}",
            extra={"event_type": "alert_archived", "alert_id": alert.id}
        )
        return alert

    def get_alert(self, alert_id: str) -> Alert:
        alert = self.db.query(Alert).filter(Alert.id == alert_id).first()
        if alert is None:
            raise NotFoundError(f"Alert {alert_id} not found", {"alert_id": alert_id})
        return alert

    # ------------------------------------------------------------------
    # Recipient operations
    # ------------------------------------------------------------------

    def get_alerts_for_user(self, user_id: str) -> List[UserAlertView]:
        """
        Alerts currently visible to the user, newest first.

        Each preference is created if missing and has any elapsed snooze
        cleared before its state is derived.

        Raises:
            NotFoundError: User does not exist
        """
        user = self.directory.get_user(user_id)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", {"user_id": user_id})
        if not user.is_active:
            return []

        now = self.clock.now()
        views = []
        changed = False
        for alert in self.resolver.alerts_visible_to(user, now):
            preference = self.preferences.find_or_create(user.id, alert.id)
            changed |= self.state_machine.process_automatic_transitions(preference)
            views.append(UserAlertView(
                alert=alert,
                preference=preference,
                state=self.state_machine.derive_state(preference),
                available_actions=self.state_machine.available_actions(preference),
            ))

        if changed:
            self.db.commit()
        return views

    def mark_alert_as_read(self, user_id: str, alert_id: str) -> bool:
        preference = self._get_preference(user_id, alert_id)
        self.state_machine.mark_as_read(preference)
        self.db.commit()

        in_app = self._in_app_channel()
        if in_app is not None:
            in_app.mark_as_read(alert_id, user_id)

        logger.info(
            "Alert marked as read",
            extra={"event_type": "alert_marked_read", "alert_id": alert_id, "user_id": user_id}
        )
        return True

    def snooze_alert(self, user_id: str, alert_id: str, hours: Optional[int] = None) -> bool:
        """
        Raises:
            NotFoundError: No preference for (user, alert)
            ValidationError: hours <= 0
        """
        preference = self._get_preference(user_id, alert_id)
        state = self.state_machine.snooze(preference, hours)
        self.db.commit()

        in_app = self._in_app_channel()
        if in_app is not None and state == PreferenceState.SNOOZED:
            in_app.snooze(alert_id, user_id, as_utc(preference.snoozed_until))

        logger.info(
            "Alert snoozed",
            extra={
                "event_type": "alert_snoozed",
                "alert_id": alert_id,
                "user_id": user_id,
                "hours": hours or self.state_machine.default_snooze_hours,
                "state": state.value,
            }
        )
        return True

    def unsnooze_alert(self, user_id: str, alert_id: str) -> bool:
        preference = self._get_preference(user_id, alert_id)
        self.state_machine.unsnooze(preference)
        self.db.commit()

        in_app = self._in_app_channel()
        if in_app is not None:
            in_app.unsnooze(alert_id, user_id)

        logger.info(
            "Alert unsnoozed",
            extra={"event_type": "alert_unsnoozed", "alert_id": alert_id, "user_id": user_id}
        )
        return True

    # ------------------------------------------------------------------
    # Reminder sweep
    # ------------------------------------------------------------------

    async def process_reminders(self) -> ReminderSweepResult:
        """
        Run one reminder sweep.

        A failure while processing one alert is logged, counted and rolled
        back; the sweep moves on to the next alert.
        """
        start = time.perf_counter()
        result = ReminderSweepResult()
        result.alerts_expired = await self.reconcile_expired_alerts()

        now = self.clock.now()
        alerts = (
            self.db.query(Alert)
            .filter(
                Alert.is_active.is_(True),
                Alert.status == AlertStatus.ACTIVE.value,
                Alert.is_reminder_enabled.is_(True),
                Alert.start_time <= now,
                or_(Alert.expiry_time.is_(None), Alert.expiry_time > now),
            )
            .order_by(Alert.created_at)
            .all()
        )
        alerts = [a for a in alerts if a.is_currently_active(now)]
        result.alerts_scanned = len(alerts)

        for alert in alerts:
            alert_id = alert.id
            try:
                outcome = await self.reminders.process_alert(alert)
            except Exception as e:
                self.db.rollback()
                failure = SchedulerTickFailure(alert_id, e)
                logger.error(
                    failure.message,
                    extra={"event_type": "reminder_alert_failed", "alert_id": alert_id, "error": str(e)},
                    exc_info=True
                )
                result.alerts_failed += 1
                continue

            result.reminders_sent += outcome.sent
            result.reminders_failed += outcome.failed
            if outcome.sent or outcome.failed:
                await self.publisher.publish(
                    alert,
                    outcome.notified,
                    AlertEventContext(
                        AlertAuditAction.REMINDER,
                        {"reminders_sent": outcome.sent, "reminders_failed": outcome.failed},
                    ),
                )

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Reminder sweep processed {result.alerts_scanned} alerts",
            extra={"event_type": "reminder_sweep_processed", **result.to_dict()}
        )
        return result

    async def reconcile_expired_alerts(self) -> int:
        """
        Mark active alerts past their expiry time as expired and publish 'expired'.

        Returns:
            Number of alerts that changed status
        """
        now = self.clock.now()
        candidates = (
            self.db.query(Alert)
            .filter(
                Alert.status == AlertStatus.ACTIVE.value,
                Alert.expiry_time.isnot(None),
                Alert.expiry_time <= now,
            )
            .all()
        )
        expired = [alert for alert in candidates if alert.reconcile_expiry(now)]
        if not expired:
            return 0

        self.db.commit()
        for alert in expired:
            logger.info(
                f"Alert expired: {alert.title}",
                extra={"event_type": "alert_expired", "alert_id": alert.id}
            )
            await self._publish_expired(alert)
        return len(expired)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _publish_expired(self, alert: Alert) -> None:
        recipients = self.resolver.resolve_for_alert(alert)
        await self.publisher.publish(
            alert,
            recipients,
            AlertEventContext(AlertAuditAction.EXPIRED, {"expiry_time": alert.to_dict()["expiry_time"]}),
        )

    def _get_preference(self, user_id: str, alert_id: str) -> UserAlertPreference:
        preference = self.preferences.get(user_id, alert_id)
        if preference is None:
            raise NotFoundError(
                "Alert preference not found",
                {"user_id": user_id, "alert_id": alert_id}
            )
        return preference

    def _in_app_channel(self) -> Optional[InAppChannel]:
        channel = self.registry.get_channel(DeliveryType.IN_APP)
        return channel if isinstance(channel, InAppChannel) else None


def _parse(schema, data):
    if isinstance(data, schema):
        return data
    try:
        return schema.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid alert data",
            {"errors": e.errors(include_url=False, include_context=False, include_input=False)}
        )


def _normalize(value):
    # Enum members are stored by value
    return getattr(value, "value", value)


def _serialize(value):
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    return value
