"""UserAlertPreference SQLAlchemy ORM model (per-recipient acknowledgment state)"""
from sqlalchemy import Column, String, Integer, DateTime, Boolean, Index, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.orm import relationship
from alerting.core.clock import as_utc
from alerting.core.database import Base
import uuid
from datetime import datetime, timezone


class UserAlertPreference(Base):
    """
    Acknowledgment record for one (user, alert) pair.

    The stored flags are raw inputs: the logical state (unread, read, snoozed)
    is derived from them and the current time by the preference state machine.
    A snooze whose snoozed_until has passed counts as unread even while
    is_snoozed is still set.

    Attributes:
        id: UUID primary key
        user_id: Recipient (FK to users)
        alert_id: Alert (FK to alerts)
        is_read: Set by mark-as-read
        is_snoozed: Set by snooze, cleared by unsnooze/read/auto-expiry
        snoozed_until: End of the snooze window
        last_reminder_sent: When the last reminder was recorded
        reminder_count: Reminders recorded so far (never decreases)
    """

    __tablename__ = "user_alert_preferences"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    alert_id = Column(String(36), ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    is_read = Column(Boolean, nullable=False, default=False)
    is_snoozed = Column(Boolean, nullable=False, default=False)
    snoozed_until = Column(DateTime(timezone=True), nullable=True)
    last_reminder_sent = Column(DateTime(timezone=True), nullable=True)
    reminder_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    alert = relationship("Alert")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('user_id', 'alert_id', name='uq_preference_user_alert'),
        CheckConstraint("reminder_count >= 0", name='check_reminder_count_non_negative'),
        Index('idx_preferences_alert_read', 'alert_id', 'is_read'),
        Index('idx_preferences_reminder', 'alert_id', 'last_reminder_sent'),
    )

    def is_currently_snoozed(self, now: datetime) -> bool:
        """True only while snoozed and the window has not elapsed."""
        return bool(self.is_snoozed) and self.snoozed_until is not None and as_utc(self.snoozed_until) > now

    def is_snooze_expired(self, now: datetime) -> bool:
        """True when the stored flag says snoozed but the window has elapsed."""
        return bool(self.is_snoozed) and (self.snoozed_until is None or as_utc(self.snoozed_until) <= now)

    def clear_snooze(self) -> None:
        self.is_snoozed = False
        self.snoozed_until = None

    def record_reminder_sent(self, now: datetime) -> None:
        self.last_reminder_sent = now
        self.reminder_count = (self.reminder_count or 0) + 1

    def __repr__(self):
        return (
            f"<UserAlertPreference(user_id={self.user_id}, alert_id={self.alert_id}, "
            f"read={self.is_read}, snoozed={self.is_snoozed})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "alert_id": self.alert_id,
            "is_read": self.is_read,
            "is_snoozed": self.is_snoozed,
            "snoozed_until": as_utc(self.snoozed_until).isoformat() if self.snoozed_until else None,
            "last_reminder_sent": as_utc(self.last_reminder_sent).isoformat() if self.last_reminder_sent else None,
            "reminder_count": self.reminder_count,
        }
