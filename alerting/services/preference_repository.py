"""
Preference Repository

Find-or-create of UserAlertPreference rows and the reminder-due query.

Preferences are created lazily the first time a recipient is resolved for an
alert. The (user_id, alert_id) unique constraint is the guard against
duplicates: an insert that loses a race is rolled back and treated as
"already exists".
"""
import logging
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession

from alerting.models.alert import Alert
from alerting.models.user import User
from alerting.models.user_alert_preference import UserAlertPreference

logger = logging.getLogger(__name__)


class PreferenceRepository:
    """Persistence operations on user_alert_preferences."""

    def __init__(self, db: DBSession):
        self.db = db

    def get(self, user_id: str, alert_id: str) -> Optional[UserAlertPreference]:
        return (
            self.db.query(UserAlertPreference)
            .filter(UserAlertPreference.user_id == user_id, UserAlertPreference.alert_id == alert_id)
            .first()
        )

    def find_or_create(self, user_id: str, alert_id: str) -> UserAlertPreference:
        """Return the preference for (user, alert), creating an UNREAD one if absent."""
        preference = self.get(user_id, alert_id)
        if preference is not None:
            return preference

        preference = UserAlertPreference(user_id=user_id, alert_id=alert_id)
        self.db.add(preference)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.get(user_id, alert_id)
            if existing is None:
                raise
            logger.debug(
                "Preference already exists",
                extra={"event_type": "preference_exists", "user_id": user_id, "alert_id": alert_id}
            )
            return existing

        self.db.refresh(preference)
        return preference

    def ensure_preferences(self, alert_id: str, user_ids: Iterable[str]) -> Dict[str, UserAlertPreference]:
        """
        Find or create preferences for many recipients of one alert.

        Existing rows are loaded with one query and the missing ones inserted
        in a single commit. If that commit hits the unique constraint the
        batch falls back to per-row find_or_create.

        Returns:
            Mapping of user id to preference
        """
        ids = list(dict.fromkeys(user_ids))
        if not ids:
            return {}

        existing = {
            p.user_id: p
            for p in self.db.query(UserAlertPreference).filter(
                UserAlertPreference.alert_id == alert_id,
                UserAlertPreference.user_id.in_(ids),
            )
        }
        missing = [uid for uid in ids if uid not in existing]
        if not missing:
            return existing

        created = [UserAlertPreference(user_id=uid, alert_id=alert_id) for uid in missing]
        self.db.add_all(created)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Concurrent preference creation detected, retrying per recipient",
                extra={"event_type": "preference_batch_conflict", "alert_id": alert_id, "count": len(missing)}
            )
            return {uid: self.find_or_create(uid, alert_id) for uid in ids}

        existing.update({p.user_id: p for p in created})
        logger.debug(
            f"Created {len(created)} preferences",
            extra={"event_type": "preferences_created", "alert_id": alert_id, "count": len(created)}
        )
        return existing

    def find_needing_reminder(self, alert: Alert, now: datetime) -> List[UserAlertPreference]:
        """
        Preferences of active users due a reminder for this alert.

        Due means: not read, not inside an active snooze window, and either
        never reminded or last reminded at least reminder_frequency_minutes ago.
        """
        cutoff = now - timedelta(minutes=alert.reminder_frequency_minutes)
        return (
            self.db.query(UserAlertPreference)
            .join(User, User.id == UserAlertPreference.user_id)
            .filter(
                UserAlertPreference.alert_id == alert.id,
                UserAlertPreference.is_read.is_(False),
                User.is_active.is_(True),
                or_(
                    UserAlertPreference.is_snoozed.is_(False),
                    UserAlertPreference.snoozed_until.is_(None),
                    UserAlertPreference.snoozed_until <= now,
                ),
                or_(
                    UserAlertPreference.last_reminder_sent.is_(None),
                    UserAlertPreference.last_reminder_sent <= cutoff,
                ),
            )
            .order_by(UserAlertPreference.created_at, UserAlertPreference.id)
            .all()
        )

    def record_reminder_sent(self, preference: UserAlertPreference, now: datetime) -> None:
        preference.record_reminder_sent(now)
        self.db.commit()

    def list_for_alert(self, alert_id: str) -> List[UserAlertPreference]:
        return self.db.query(UserAlertPreference).filter(UserAlertPreference.alert_id == alert_id).all()
