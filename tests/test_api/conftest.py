"""
Shared pytest fixtures for API tests.

The app's get_db dependency is pointed at the per-test in-memory session so
that rows created through factories are visible to requests and vice versa.
The lifespan is not run; the clock and reminder scheduler are installed on
app.state directly.
"""
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from main import app
from alerting.core.database import get_db
from alerting.services.reminder_scheduler import ReminderScheduler
from alerting.services.reminder_service import ReminderSweepResult
from tests.conftest import make_user


@pytest.fixture
def sweep():
    """Stand-in for the reminder sweep used by the manual-run endpoint."""
    return AsyncMock(return_value=ReminderSweepResult(alerts_scanned=2, reminders_sent=1))


@pytest.fixture
def client(db_session, clock, sweep):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.state.clock = clock
    app.state.reminder_scheduler = ReminderScheduler(sweep=sweep, clock=clock)

    yield TestClient(app)

    app.dependency_overrides.clear()
    app.state.clock = None
    app.state.reminder_scheduler = None


@pytest.fixture
def admin(db_session):
    return make_user(db_session, name="Admin", role="admin")


@pytest.fixture
def member(db_session):
    return make_user(db_session, name="Member")
