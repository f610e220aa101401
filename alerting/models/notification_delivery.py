"""NotificationDelivery SQLAlchemy ORM model (per-channel delivery record)"""
from sqlalchemy import Column, String, DateTime, Index, ForeignKey, UniqueConstraint, CheckConstraint, JSON
from sqlalchemy.orm import relationship
from alerting.core.clock import as_utc
from alerting.core.database import Base
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


class NotificationStatus(str, Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    READ = "read"
    SNOOZED = "snoozed"


class NotificationDelivery(Base):
    """
    Record of an alert sent to one user over one channel.

    Distinct from UserAlertPreference: the preference tracks acknowledgment
    across channels, the delivery tracks what happened on a single channel.

    Attributes:
        id: UUID primary key
        alert_id: Alert (FK to alerts)
        user_id: Recipient (FK to users)
        delivery_type: In-App, Email or SMS
        status: pending, delivered, read or snoozed
        delivered_at: When the channel reported delivery
        read_at: When the user read it on this channel
        snoozed_until: End of a channel-level snooze
        delivery_metadata: Channel-specific details (formatted title, etc.)
    """

    __tablename__ = "notification_deliveries"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    alert_id = Column(String(36), ForeignKey("alerts.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    delivery_type = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default=NotificationStatus.PENDING.value)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    snoozed_until = Column(DateTime(timezone=True), nullable=True)
    delivery_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc)
    )

    alert = relationship("Alert")

    __table_args__ = (
        UniqueConstraint('alert_id', 'user_id', 'delivery_type', name='uq_delivery_alert_user_type'),
        CheckConstraint("delivery_type IN ('In-App', 'Email', 'SMS')", name='check_delivery_type'),
        CheckConstraint("status IN ('pending', 'delivered', 'read', 'snoozed')", name='check_delivery_status'),
        Index('idx_deliveries_user_status', 'user_id', 'status'),
        Index('idx_deliveries_created', 'created_at'),
    )

    def mark_delivered(self, now: datetime) -> None:
        self.status = NotificationStatus.DELIVERED.value
        self.delivered_at = now

    def mark_read(self, now: datetime) -> None:
        self.status = NotificationStatus.READ.value
        self.read_at = now
        self.snoozed_until = None

    def snooze(self, until: datetime) -> None:
        self.status = NotificationStatus.SNOOZED.value
        self.snoozed_until = until

    def unsnooze(self) -> None:
        # A snoozed record has already been delivered
        self.status = NotificationStatus.DELIVERED.value
        self.snoozed_until = None

    def is_snoozed(self, now: datetime) -> bool:
        return (
            self.status == NotificationStatus.SNOOZED.value
            and self.snoozed_until is not None
            and as_utc(self.snoozed_until) > now
        )

    def __repr__(self):
        return (
            f"<NotificationDelivery(alert_id={self.alert_id}, user_id={self.user_id}, "
            f"type={self.delivery_type}, status={self.status})>"
        )

    def to_dict(self):
        return {
            "id": self.id,
            "alert_id": self.alert_id,
            "user_id": self.user_id,
            "delivery_type": self.delivery_type,
            "status": self.status,
            "delivered_at": _iso(self.delivered_at),
            "read_at": _iso(self.read_at),
            "snoozed_until": _iso(self.snoozed_until),
            "metadata": self.delivery_metadata or {},
        }


def _iso(value: Optional[datetime]) -> Optional[str]:
    return as_utc(value).isoformat() if value else None
