"""
Unit tests for ReminderService

Tests cover:
- Reminders recorded only after a successful send
- Failed sends left untouched for the next sweep
- Read / snoozed / not-yet-due recipients skipped
"""
from datetime import timedelta

import pytest

from alerting.models.alert import DeliveryType
from alerting.services.notifications.dispatch import NotificationDispatcher
from alerting.services.notifications.registry import ChannelRegistry
from alerting.services.reminder_service import ReminderService, ReminderSweepResult
from tests.conftest import BASE_TIME, make_alert, make_preference, make_user
from tests.mocks import RecordingChannel


@pytest.fixture
def email_channel():
    return RecordingChannel(DeliveryType.EMAIL)


@pytest.fixture
def reminder_service(db_session, clock, email_channel):
    dispatcher = NotificationDispatcher(ChannelRegistry([email_channel]), batch_delay_seconds=0)
    return ReminderService(db_session, dispatcher, clock=clock)


@pytest.mark.asyncio
async def test_sends_and_records(db_session, reminder_service, email_channel):
    alert = make_alert(db_session, delivery_type="Email")
    user = make_user(db_session)
    pref = make_preference(db_session, user_id=user.id, alert_id=alert.id)

    outcome = await reminder_service.process_alert(alert)

    assert outcome.sent == 1
    assert outcome.failed == 0
    assert [u.id for u in outcome.notified] == [user.id]
    assert email_channel.sent == [(alert.id, user.id)]
    db_session.refresh(pref)
    assert pref.reminder_count == 1
    assert pref.last_reminder_sent is not None


@pytest.mark.asyncio
async def test_failed_send_not_recorded(db_session, reminder_service, email_channel):
    alert = make_alert(db_session, delivery_type="Email")
    user = make_user(db_session)
    pref = make_preference(db_session, user_id=user.id, alert_id=alert.id)
    email_channel.fail_for.add(user.id)

    outcome = await reminder_service.process_alert(alert)

    assert outcome.sent == 0
    assert outcome.failed_user_ids == [user.id]
    db_session.refresh(pref)
    assert pref.reminder_count == 0
    assert pref.last_reminder_sent is None


@pytest.mark.asyncio
async def test_skips_ineligible_recipients(db_session, reminder_service, email_channel):
    alert = make_alert(db_session, delivery_type="Email", reminder_frequency_minutes=60)
    reader, sleeper, recent = (make_user(db_session) for _ in range(3))
    make_preference(db_session, user_id=reader.id, alert_id=alert.id, is_read=True)
    make_preference(db_session, user_id=sleeper.id, alert_id=alert.id,
                    is_snoozed=True, snoozed_until=BASE_TIME + timedelta(hours=1))
    make_preference(db_session, user_id=recent.id, alert_id=alert.id,
                    last_reminder_sent=BASE_TIME - timedelta(minutes=10), reminder_count=1)

    outcome = await reminder_service.process_alert(alert)

    assert outcome.sent == 0
    assert outcome.failed == 0
    assert email_channel.sent == []


@pytest.mark.asyncio
async def test_elapsed_snooze_cleared_and_reminded(db_session, reminder_service):
    alert = make_alert(db_session, delivery_type="Email")
    user = make_user(db_session)
    pref = make_preference(db_session, user_id=user.id, alert_id=alert.id,
                           is_snoozed=True, snoozed_until=BASE_TIME - timedelta(minutes=1))

    outcome = await reminder_service.process_alert(alert)

    assert outcome.sent == 1
    db_session.refresh(pref)
    assert pref.is_snoozed is False
    assert pref.snoozed_until is None


@pytest.mark.asyncio
async def test_second_pass_within_interval_sends_nothing(db_session, reminder_service, email_channel, clock):
    alert = make_alert(db_session, delivery_type="Email", reminder_frequency_minutes=30)
    user = make_user(db_session)
    make_preference(db_session, user_id=user.id, alert_id=alert.id)

    await reminder_service.process_alert(alert)
    clock.advance(minutes=29)
    second = await reminder_service.process_alert(alert)
    clock.advance(minutes=1)
    third = await reminder_service.process_alert(alert)

    assert second.sent == 0
    assert third.sent == 1
    assert len(email_channel.sent) == 2


def test_sweep_result_to_dict():
    result = ReminderSweepResult(alerts_scanned=2, reminders_sent=3, duration_ms=1.5)
    assert result.to_dict() == {
        "alerts_scanned": 2,
        "alerts_failed": 0,
        "reminders_sent": 3,
        "reminders_failed": 0,
        "alerts_expired": 0,
        "duration_ms": 1.5,
    }
