"""
Reminder Service

One step of a reminder sweep: for a single alert, find the recipients due a
reminder, re-send through the alert's channel and record the reminder on
each preference whose send succeeded. Failed sends are left untouched so the
next sweep retries them.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List

from sqlalchemy.orm import Session as DBSession

from alerting.core.clock import system_clock
from alerting.core.metrics import record_reminder_sent
from alerting.models.alert import Alert
from alerting.models.user import User
from alerting.services.notifications.dispatch import NotificationDispatcher
from alerting.services.preference_repository import PreferenceRepository
from alerting.services.preference_state import PreferenceStateMachine

logger = logging.getLogger(__name__)


@dataclass
class AlertReminderOutcome:
    """Result of reminding one alert's recipients."""

    alert_id: str
    notified: List[User] = field(default_factory=list)
    failed_user_ids: List[str] = field(default_factory=list)

    @property
    def sent(self) -> int:
        return len(self.notified)

    @property
    def failed(self) -> int:
        return len(self.failed_user_ids)


@dataclass
class ReminderSweepResult:
    """Summary of one reminder sweep.

    Attributes:
        alerts_scanned: Active reminder-enabled alerts considered
        alerts_failed: Alerts whose processing raised
        reminders_sent: Reminders recorded after a successful send
        reminders_failed: Sends that failed and will be retried next sweep
        alerts_expired: Alerts moved to the expired status at sweep start
    """

    alerts_scanned: int = 0
    alerts_failed: int = 0
    reminders_sent: int = 0
    reminders_failed: int = 0
    alerts_expired: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> Dict:
        return {
            "alerts_scanned": self.alerts_scanned,
            "alerts_failed": self.alerts_failed,
            "reminders_sent": self.reminders_sent,
            "reminders_failed": self.reminders_failed,
            "alerts_expired": self.alerts_expired,
            "duration_ms": round(self.duration_ms, 2),
        }


class ReminderService:
    """Sends due reminders for one alert at a time."""

    def __init__(
        self,
        db: DBSession,
        dispatcher: NotificationDispatcher,
        state_machine: PreferenceStateMachine = None,
        clock=None,
    ):
        self.db = db
        self.clock = clock or system_clock
        self.dispatcher = dispatcher
        self.state_machine = state_machine or PreferenceStateMachine(clock=self.clock)
        self.preferences = PreferenceRepository(db)

    async def process_alert(self, alert: Alert) -> AlertReminderOutcome:
        now = self.clock.now()
        outcome = AlertReminderOutcome(alert_id=alert.id)

        due = self.preferences.find_needing_reminder(alert, now)
        if not due:
            return outcome

        users = {
            u.id: u
            for u in self.db.query(User).filter(User.id.in_([p.user_id for p in due]))
        }

        for preference in due:
            # Clears an elapsed snooze as a side effect
            if not self.state_machine.can_receive_reminder(preference):
                continue

            user = users.get(preference.user_id)
            if user is None:
                continue

            sent = await self.dispatcher.send_notification(alert, user, alert.delivery_type)
            if sent:
                self.preferences.record_reminder_sent(preference, now)
                record_reminder_sent()
                outcome.notified.append(user)
            else:
                outcome.failed_user_ids.append(user.id)

        # Persist snooze clean-up on preferences that were skipped or failed
        self.db.commit()

        logger.info(
            f"Reminders for alert {alert.id}: {outcome.sent} sent, {outcome.failed} failed",
            extra={
                "event_type": "alert_reminders_processed",
                "alert_id": alert.id,
                "due": len(due),
                "sent": outcome.sent,
                "failed": outcome.failed,
            }
        )
        return outcome
