"""Alert Audit Log SQLAlchemy ORM model

Append-only trail of alert lifecycle events, written by the audit subscriber.
"""
from sqlalchemy import Column, String, Integer, DateTime, Index, JSON
from alerting.core.database import Base
import uuid
from datetime import datetime, timezone
from enum import Enum


class AlertAuditAction(str, Enum):
    """Alert lifecycle actions recorded in the audit trail"""
    CREATED = "created"
    UPDATED = "updated"
    REMINDER = "reminder"
    EXPIRED = "expired"


class AlertAuditLog(Base):
    """
    Alert audit log entry.

    Attributes:
        id: UUID primary key
        action: Lifecycle action (created, updated, reminder, expired)
        alert_id: Alert the event concerns (kept after alert changes, no FK cascade)
        actor_id: Creator of the alert
        target_user_ids: JSON list of recipients attached to the event
        target_count: Number of recipients
        details: JSON with alert metadata and the event metadata
        created_at: When the event was recorded (UTC)
    """

    __tablename__ = "alert_audit_logs"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    action = Column(String(20), nullable=False, index=True)
    alert_id = Column(String(36), nullable=False, index=True)
    actor_id = Column(String(36), nullable=True)
    target_user_ids = Column(JSON, nullable=False, default=list)
    target_count = Column(Integer, nullable=False, default=0)
    details = Column(JSON, nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True
    )

    __table_args__ = (
        Index('idx_alert_audit_alert_created', 'alert_id', 'created_at'),
    )

    def __repr__(self):
        return f"<AlertAuditLog(id={self.id}, action={self.action}, alert_id={self.alert_id})>"
