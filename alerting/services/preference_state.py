"""
Preference State Machine

Per-recipient acknowledgment state for an alert.

States:
    UNREAD  - initial state, eligible for reminders
    READ    - acknowledged, terminal for reminders
    SNOOZED - temporarily dismissed until snoozed_until

The current state is never stored. It is derived from the preference's
is_read / is_snoozed / snoozed_until fields and the current time on every
call, so an elapsed snooze reads as UNREAD even before anything rewrites the
stored flags. process_automatic_transitions() reconciles the stored fields
with the derived state.

Transitions:
    mark_as_read: UNREAD|SNOOZED -> READ (READ is a logged no-op)
    snooze:       UNREAD|SNOOZED -> SNOOZED (READ is a no-op with a warning)
    unsnooze:     SNOOZED -> UNREAD (clears stale snooze fields otherwise)
"""
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

from alerting.core.clock import system_clock
from alerting.core.config import settings
from alerting.core.exceptions import ValidationError
from alerting.models.user_alert_preference import UserAlertPreference

logger = logging.getLogger(__name__)


class PreferenceState(str, Enum):
    UNREAD = "UNREAD"
    READ = "READ"
    SNOOZED = "SNOOZED"


class PreferenceAction(str, Enum):
    MARK_AS_READ = "markAsRead"
    SNOOZE = "snooze"
    UNSNOOZE = "unsnooze"


def derive_state(preference: UserAlertPreference, now: datetime) -> PreferenceState:
    """is_read wins; an active snooze window means SNOOZED; everything else is UNREAD."""
    if preference.is_read:
        return PreferenceState.READ
    if preference.is_currently_snoozed(now):
        return PreferenceState.SNOOZED
    return PreferenceState.UNREAD


class BaseAlertState(ABC):
    """Behaviour of a preference while it is in one state."""

    state: PreferenceState

    def __init__(self, clock):
        self.clock = clock

    @abstractmethod
    def mark_as_read(self, preference: UserAlertPreference) -> None:
        ...

    @abstractmethod
    def snooze(self, preference: UserAlertPreference, hours: int) -> None:
        ...

    @abstractmethod
    def unsnooze(self, preference: UserAlertPreference) -> None:
        ...

    @abstractmethod
    def can_receive_reminder(self, preference: UserAlertPreference) -> bool:
        ...

    def _log_transition(self, preference: UserAlertPreference, action: str, to_state: PreferenceState) -> None:
        logger.info(
            f"Preference {action}: {self.state.value} -> {to_state.value}",
            extra={
                "event_type": "preference_transition",
                "user_id": preference.user_id,
                "alert_id": preference.alert_id,
                "action": action,
                "from_state": self.state.value,
                "to_state": to_state.value,
            }
        )


class UnreadState(BaseAlertState):
    state = PreferenceState.UNREAD

    def mark_as_read(self, preference):
        preference.is_read = True
        preference.clear_snooze()
        self._log_transition(preference, "mark_as_read", PreferenceState.READ)

    def snooze(self, preference, hours):
        preference.is_snoozed = True
        preference.snoozed_until = self.clock.now() + timedelta(hours=hours)
        self._log_transition(preference, f"snooze {hours}h", PreferenceState.SNOOZED)

    def unsnooze(self, preference):
        # Already unread; drop any stale snooze fields
        preference.clear_snooze()
        self._log_transition(preference, "unsnooze", PreferenceState.UNREAD)

    def can_receive_reminder(self, preference):
        now = self.clock.now()
        if preference.is_currently_snoozed(now):
            return False
        if preference.is_snooze_expired(now):
            preference.clear_snooze()
        return True


class ReadState(BaseAlertState):
    state = PreferenceState.READ

    def mark_as_read(self, preference):
        logger.debug(
            "Preference already read",
            extra={"event_type": "preference_noop", "user_id": preference.user_id, "alert_id": preference.alert_id}
        )

    def snooze(self, preference, hours):
        logger.warning(
            "Cannot snooze a read alert",
            extra={"event_type": "preference_noop", "user_id": preference.user_id, "alert_id": preference.alert_id}
        )

    def unsnooze(self, preference):
        preference.clear_snooze()
        self._log_transition(preference, "unsnooze", PreferenceState.READ)

    def can_receive_reminder(self, preference):
        return False


class SnoozedState(BaseAlertState):
    state = PreferenceState.SNOOZED

    def mark_as_read(self, preference):
        preference.is_read = True
        preference.clear_snooze()
        self._log_transition(preference, "mark_as_read", PreferenceState.READ)

    def snooze(self, preference, hours):
        # Extends or shortens the current window
        preference.is_snoozed = True
        preference.snoozed_until = self.clock.now() + timedelta(hours=hours)
        self._log_transition(preference, f"snooze {hours}h", PreferenceState.SNOOZED)

    def unsnooze(self, preference):
        preference.clear_snooze()
        self._log_transition(preference, "unsnooze", PreferenceState.UNREAD)

    def can_receive_reminder(self, preference):
        if preference.is_snooze_expired(self.clock.now()):
            self.unsnooze(preference)
            return True
        return False


class PreferenceStateMachine:
    """
    Dispatches preference operations to the state object for the derived state.

    Args:
        clock: Object with now() returning an aware UTC datetime
        default_snooze_hours: Snooze length when the caller gives none
    """

    def __init__(self, clock=None, default_snooze_hours: Optional[int] = None):
        self.clock = clock or system_clock
        self.default_snooze_hours = default_snooze_hours or settings.DEFAULT_SNOOZE_HOURS
        self._states: Dict[PreferenceState, BaseAlertState] = {
            PreferenceState.UNREAD: UnreadState(self.clock),
            PreferenceState.READ: ReadState(self.clock),
            PreferenceState.SNOOZED: SnoozedState(self.clock),
        }

    def derive_state(self, preference: UserAlertPreference) -> PreferenceState:
        return derive_state(preference, self.clock.now())

    def current_state(self, preference: UserAlertPreference) -> BaseAlertState:
        return self._states[self.derive_state(preference)]

    def mark_as_read(self, preference: UserAlertPreference) -> PreferenceState:
        self.current_state(preference).mark_as_read(preference)
        return self.derive_state(preference)

    def snooze(self, preference: UserAlertPreference, hours: Optional[float] = None) -> PreferenceState:
        if hours is None:
            hours = self.default_snooze_hours
        if hours <= 0:
            raise ValidationError("Snooze hours must be greater than 0", {"hours": hours})
        self.current_state(preference).snooze(preference, hours)
        return self.derive_state(preference)

    def unsnooze(self, preference: UserAlertPreference) -> PreferenceState:
        self.current_state(preference).unsnooze(preference)
        return self.derive_state(preference)

    def can_receive_reminder(self, preference: UserAlertPreference) -> bool:
        return self.current_state(preference).can_receive_reminder(preference)

    def process_automatic_transitions(self, preference: UserAlertPreference) -> bool:
        """
        Clear a snooze whose window has elapsed.

        Returns:
            True if the stored fields changed
        """
        if preference.is_snooze_expired(self.clock.now()):
            preference.clear_snooze()
            logger.debug(
                "Snooze window elapsed",
                extra={
                    "event_type": "preference_snooze_elapsed",
                    "user_id": preference.user_id,
                    "alert_id": preference.alert_id,
                }
            )
            return True
        return False

    def available_actions(self, preference: UserAlertPreference) -> List[str]:
        state = self.derive_state(preference)
        if state == PreferenceState.UNREAD:
            return [PreferenceAction.MARK_AS_READ.value, PreferenceAction.SNOOZE.value]
        if state == PreferenceState.SNOOZED:
            return [PreferenceAction.MARK_AS_READ.value, PreferenceAction.UNSNOOZE.value]
        return []
