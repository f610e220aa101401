"""Team SQLAlchemy ORM model for team-scoped alert visibility"""
from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from alerting.core.database import Base
import uuid
from datetime import datetime, timezone


class Team(Base):
    """
    Team model used as a visibility target.

    Attributes:
        id: UUID primary key
        name: Unique team name (max 100 chars)
        description: Optional description (max 500 chars)
        is_active: Whether the team is in use
        created_at: Record creation timestamp (UTC)
    """

    __tablename__ = "teams"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False)

    members = relationship("User", back_populates="team")

    def __repr__(self):
        return f"<Team(id={self.id}, name={self.name}, active={self.is_active})>"
