"""
Unit tests for ReminderScheduler

Tests:
- interval_to_cron conversion, including the fallback for odd intervals
- start/stop/restart idempotence against a patched APScheduler
- Custom cron schedules
- Tick serialisation: a tick arriving while one is in flight is skipped
- Error handling and status reporting
"""
import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from alerting.services.reminder_scheduler import (
    FALLBACK_INTERVAL_MINUTES,
    REMINDER_JOB_ID,
    ReminderScheduler,
    interval_to_cron,
)
from alerting.services.reminder_service import ReminderSweepResult


class TestIntervalToCron:
    """Tests for interval_to_cron()."""

    @pytest.mark.parametrize("minutes,expected", [
        (1, "*/1 * * * *"),
        (15, "*/15 * * * *"),
        (20, "*/20 * * * *"),
        (30, "*/30 * * * *"),
        (60, "0 * * * *"),
        (120, "0 */2 * * *"),
        (360, "0 */6 * * *"),
        (1440, "0 0 * * *"),
    ])
    def test_aligned_intervals(self, minutes, expected):
        assert interval_to_cron(minutes) == expected

    @pytest.mark.parametrize("minutes,expected", [
        (7, "*/6 * * * *"),
        (25, "*/20 * * * *"),
        (45, "*/30 * * * *"),
        (59, "*/30 * * * *"),
    ])
    def test_uneven_sub_hour_rounds_down_to_divisor(self, minutes, expected):
        assert interval_to_cron(minutes) == expected

    @pytest.mark.parametrize("minutes", [90, 61, 1500, 2880, 10080])
    def test_fallback(self, minutes):
        assert interval_to_cron(minutes) == f"*/{FALLBACK_INTERVAL_MINUTES} * * * *"

    @pytest.mark.parametrize("minutes", [0, -5])
    def test_rejects_non_positive(self, minutes):
        with pytest.raises(ValueError):
            interval_to_cron(minutes)


class TestSchedulerLifecycle:
    """Tests for start/stop/restart."""

    def test_instantiation(self):
        scheduler = ReminderScheduler(interval_minutes=15)
        assert scheduler.cron_expression == "*/15 * * * *"
        assert scheduler.is_running() is False
        assert isinstance(scheduler._scheduler, AsyncIOScheduler)

    def test_zero_interval_rejected(self):
        with pytest.raises(ValueError):
            ReminderScheduler(interval_minutes=0)

    def test_start_adds_job(self):
        scheduler = ReminderScheduler(interval_minutes=60)
        with patch.object(scheduler._scheduler, 'start') as mock_start, \
                patch.object(scheduler._scheduler, 'add_job') as mock_add_job:
            scheduler.start()
            scheduler.start()

        mock_start.assert_called_once()
        mock_add_job.assert_called_once()
        kwargs = mock_add_job.call_args.kwargs
        assert kwargs["id"] == REMINDER_JOB_ID
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        assert kwargs["replace_existing"] is True
        assert scheduler.is_running() is True

    def test_stop_scheduler(self):
        scheduler = ReminderScheduler()
        scheduler._running = True
        old = scheduler._scheduler
        with patch.object(old, 'get_job', return_value=MagicMock()), \
                patch.object(old, 'remove_job') as mock_remove, \
                patch.object(old, 'shutdown') as mock_shutdown:
            scheduler.stop()

        mock_remove.assert_called_once_with(REMINDER_JOB_ID)
        mock_shutdown.assert_called_once_with(wait=False)
        assert scheduler.is_running() is False
        assert scheduler._scheduler is not old

    def test_stop_scheduler_not_running(self):
        scheduler = ReminderScheduler()
        with patch.object(scheduler._scheduler, 'shutdown') as mock_shutdown:
            scheduler.stop()
        mock_shutdown.assert_not_called()

    def test_restart_with_new_interval(self):
        scheduler = ReminderScheduler(interval_minutes=120)
        with patch.object(scheduler, 'stop') as mock_stop, patch.object(scheduler, 'start') as mock_start:
            scheduler.restart(interval_minutes=30)
        mock_stop.assert_called_once()
        mock_start.assert_called_once()
        assert scheduler.interval_minutes == 30
        assert scheduler.cron_expression == "*/30 * * * *"

    def test_restart_rejects_bad_interval(self):
        scheduler = ReminderScheduler(interval_minutes=120)
        with pytest.raises(ValueError):
            scheduler.restart(interval_minutes=0)
        assert scheduler.interval_minutes == 120


class TestCustomSchedule:
    """Tests for set_custom_schedule()."""

    def test_valid_expression(self):
        scheduler = ReminderScheduler()
        scheduler.set_custom_schedule("15 9 * * 1-5")
        assert scheduler.cron_expression == "15 9 * * 1-5"

    def test_invalid_expression(self):
        scheduler = ReminderScheduler()
        with pytest.raises(ValueError):
            scheduler.set_custom_schedule("every tuesday")
        assert scheduler.cron_expression == interval_to_cron(scheduler.interval_minutes)

    def test_running_scheduler_replaces_job(self):
        scheduler = ReminderScheduler()
        scheduler._running = True
        with patch.object(scheduler._scheduler, 'add_job') as mock_add_job:
            scheduler.set_custom_schedule("*/5 * * * *")
        mock_add_job.assert_called_once()


class TestRunTick:
    """Tests for run_tick() and trigger_manual_run()."""

    @pytest.mark.asyncio
    async def test_successful_tick_updates_status(self):
        result = ReminderSweepResult(alerts_scanned=2, reminders_sent=3)
        scheduler = ReminderScheduler(sweep=AsyncMock(return_value=result))

        with patch("alerting.services.reminder_scheduler.record_reminder_sweep") as record:
            returned = await scheduler.trigger_manual_run()

        assert returned is result
        record.assert_called_once()
        status = scheduler.get_status()
        assert status.last_status == "success"
        assert status.last_run is not None
        assert status.last_result["reminders_sent"] == 3
        assert status.to_dict()["last_error"] is None

    @pytest.mark.asyncio
    async def test_partial_failure_status(self):
        scheduler = ReminderScheduler(sweep=AsyncMock(return_value=ReminderSweepResult(alerts_failed=1)))
        await scheduler.run_tick()
        assert scheduler.get_status().last_status == "partial_failure"

    @pytest.mark.asyncio
    async def test_sweep_error_is_contained(self):
        scheduler = ReminderScheduler(sweep=AsyncMock(side_effect=RuntimeError("database locked")))

        assert await scheduler.run_tick() is None

        status = scheduler.get_status()
        assert status.last_status == "error"
        assert status.last_error == "database locked"

    @pytest.mark.asyncio
    async def test_overlapping_tick_skipped(self):
        release = asyncio.Event()
        calls = []

        async def slow_sweep():
            calls.append(1)
            await release.wait()
            return ReminderSweepResult()

        scheduler = ReminderScheduler(sweep=slow_sweep)
        first = asyncio.create_task(scheduler.run_tick())
        await asyncio.sleep(0)

        assert await scheduler.run_tick() is None

        release.set()
        assert isinstance(await first, ReminderSweepResult)
        assert calls == [1]

    @pytest.mark.asyncio
    async def test_in_flight_tick_survives_cancellation(self):
        release = asyncio.Event()
        finished = []

        async def slow_sweep():
            await release.wait()
            finished.append(True)
            return ReminderSweepResult()

        scheduler = ReminderScheduler(sweep=slow_sweep)
        job = asyncio.create_task(scheduler._scheduled_tick())
        await asyncio.sleep(0)

        job.cancel()
        with pytest.raises(asyncio.CancelledError):
            await job

        release.set()
        await scheduler._current_tick
        assert finished == [True]

    @pytest.mark.asyncio
    async def test_default_sweep_uses_alert_service(self):
        scheduler = ReminderScheduler()
        expected = ReminderSweepResult(alerts_scanned=1)
        session = MagicMock()

        with patch("alerting.services.reminder_scheduler.get_db_session") as mock_session, \
                patch("alerting.services.alert_service.AlertService") as mock_service:
            mock_session.return_value.__enter__.return_value = session
            mock_service.return_value.process_reminders = AsyncMock(return_value=expected)
            result = await scheduler.run_tick()

        assert result is expected
        mock_service.assert_called_once_with(session, clock=scheduler.clock)


def test_status_when_stopped():
    status = ReminderScheduler(interval_minutes=45).get_status().to_dict()
    assert status["running"] is False
    assert status["interval_minutes"] == 45
    assert status["cron_expression"] == "*/30 * * * *"
    assert status["next_run"] is None
    assert status["last_status"] == "never_run"
