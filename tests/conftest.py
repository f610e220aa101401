"""Pytest fixtures and configuration for test suite

This module provides:
1. Database session fixtures for test isolation
2. Factory functions for creating test objects with sensible defaults
3. A fixed clock and an AlertService wired to recording channels

Factory Functions:
    - make_team(**overrides) -> Team
    - make_user(**overrides) -> User
    - make_alert(**overrides) -> Alert
    - make_preference(**overrides) -> UserAlertPreference

Each factory accepts an optional db_session parameter to persist objects.
"""
import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from alerting.core.clock import FixedClock
from alerting.core.database import Base, init_db
from alerting.models.alert import Alert, AlertStatus, AlertSeverity, DeliveryType, VisibilityType
from alerting.models.team import Team
from alerting.models.user import User, UserRole
from alerting.models.user_alert_preference import UserAlertPreference
from alerting.services.alert_events import build_default_publisher
from alerting.services.alert_service import AlertService
from alerting.services.notifications.dispatch import NotificationDispatcher
from alerting.services.notifications.registry import ChannelRegistry
from tests.mocks import create_recording_channels

# Reference "now" for the fixed clock; default alert start is one hour earlier
BASE_TIME = datetime(2024, 1, 15, 9, 0, 0, tzinfo=timezone.utc)
DEFAULT_START = datetime(2024, 1, 15, 8, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Factory Functions for Test Objects
# =============================================================================

def _persist(db_session, obj):
    if db_session is not None:
        db_session.add(obj)
        db_session.commit()
        db_session.refresh(obj)
    return obj


def make_team(db_session=None, id: str = None, name: str = None, **overrides) -> Team:
    """
    Factory function to create Team instances for testing.

    Example:
        team = make_team(db_session=session, name="Platform")
    """
    team = Team(
        id=id or str(uuid.uuid4()),
        name=name or f"team-{uuid.uuid4().hex[:8]}",
        **overrides
    )
    return _persist(db_session, team)


def make_user(
    db_session=None,
    id: str = None,
    name: str = "Test User",
    email: str = None,
    role: str = UserRole.USER.value,
    team_id: str = None,
    phone_number: str = None,
    is_active: bool = True,
    **overrides
) -> User:
    """
    Factory function to create User instances for testing.

    Args:
        db_session: Optional SQLAlchemy session. If provided, adds and commits the user.
        id: UUID string. If None, generates a new UUID.
        email: Unique email. If None, derived from the id.
        role: 'admin' or 'user'.
        team_id: Team membership.
        **overrides: Any additional User model fields.

    Example:
        admin = make_user(db_session=session, role="admin")
        member = make_user(db_session=session, team_id=team.id)
    """
    if id is None:
        id = str(uuid.uuid4())
    user = User(
        id=id,
        name=name,
        email=email or f"user-{id[:8]}@example.com",
        role=role,
        team_id=team_id,
        phone_number=phone_number,
        is_active=is_active,
        **overrides
    )
    return _persist(db_session, user)


def make_alert(
    db_session=None,
    id: str = None,
    title: str = "Scheduled maintenance",
    message: str = "The VPN gateway will be offline tonight.",
    severity: str = AlertSeverity.INFO.value,
    delivery_type: str = DeliveryType.IN_APP.value,
    reminder_frequency_minutes: int = 120,
    start_time: datetime = None,
    expiry_time: datetime = None,
    visibility_type: str = VisibilityType.ORGANIZATION.value,
    visibility_target_ids: list = None,
    created_by: str = "admin-001",
    status: str = AlertStatus.ACTIVE.value,
    is_active: bool = True,
    is_reminder_enabled: bool = True,
    **overrides
) -> Alert:
    """
    Factory function to create Alert instances for testing.

    start_time defaults to one hour before BASE_TIME so the alert is live
    under the fixed clock.

    Example:
        alert = make_alert(db_session=session, visibility_type="Team", visibility_target_ids=[team.id])
    """
    alert = Alert(
        id=id or str(uuid.uuid4()),
        title=title,
        message=message,
        severity=severity,
        delivery_type=delivery_type,
        reminder_frequency_minutes=reminder_frequency_minutes,
        start_time=start_time or DEFAULT_START,
        expiry_time=expiry_time,
        visibility_type=visibility_type,
        visibility_target_ids=visibility_target_ids or [],
        created_by=created_by,
        status=status,
        is_active=is_active,
        is_reminder_enabled=is_reminder_enabled,
        **overrides
    )
    return _persist(db_session, alert)


def make_preference(
    db_session=None,
    user_id: str = "user-001",
    alert_id: str = "alert-001",
    is_read: bool = False,
    is_snoozed: bool = False,
    snoozed_until: datetime = None,
    last_reminder_sent: datetime = None,
    reminder_count: int = 0,
    **overrides
) -> UserAlertPreference:
    """Factory function to create UserAlertPreference instances for testing."""
    preference = UserAlertPreference(
        user_id=user_id,
        alert_id=alert_id,
        is_read=is_read,
        is_snoozed=is_snoozed,
        snoozed_until=snoozed_until,
        last_reminder_sent=last_reminder_sent,
        reminder_count=reminder_count,
        **overrides
    )
    return _persist(db_session, preference)


# =============================================================================
# Database Session Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_session():
    """
    Create an in-memory SQLite database for testing

    StaticPool keeps one connection so the API client and the test share the
    same in-memory database.

    Yields:
        SQLAlchemy Session for test database
    """
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)

    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = SessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def clock():
    """Clock frozen at BASE_TIME; advance it with clock.advance(hours=...)."""
    return FixedClock(BASE_TIME)


@pytest.fixture
def channels():
    """Recording In-App, Email and SMS channels keyed by delivery type."""
    return {channel.channel_type: channel for channel in create_recording_channels()}


@pytest.fixture
def alert_service(db_session, clock, channels):
    """AlertService whose notifications land in the recording channels."""
    registry = ChannelRegistry(list(channels.values()))
    dispatcher = NotificationDispatcher(registry, batch_size=10, batch_delay_seconds=0)
    return AlertService(
        db_session,
        clock=clock,
        registry=registry,
        dispatcher=dispatcher,
        publisher=build_default_publisher(db_session, dispatcher, clock=clock),
    )
