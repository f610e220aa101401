"""User SQLAlchemy ORM model (alert recipients and administrators)"""
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import validates, relationship
from alerting.core.database import Base
import uuid
from datetime import datetime, timezone
from enum import Enum
import re
import logging

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class UserRole(str, Enum):
    """Roles known to the alerting platform"""
    ADMIN = "admin"
    USER = "user"


class User(Base):
    """
    User model

    Attributes:
        id: UUID primary key
        name: Display name (max 100 chars)
        email: Unique, lowercased email address
        phone_number: Optional number for the SMS channel
        role: admin or user
        team_id: Team membership (nullable)
        is_active: Inactive users never receive alerts
        created_at: Record creation timestamp (UTC)
    """

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone_number = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default=UserRole.USER.value)
    team_id = Column(String(36), ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    team = relationship("Team", back_populates="members")

    __table_args__ = (
        CheckConstraint("role IN ('admin', 'user')", name='check_user_role'),
    )

    @validates('email')
    def validate_email(self, key, value):
        """Require a plausible address and normalize to lowercase."""
        if not value or not EMAIL_PATTERN.match(value.strip()):
            raise ValueError("Please enter a valid email")
        return value.strip().lower()

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, active={self.is_active})>"
