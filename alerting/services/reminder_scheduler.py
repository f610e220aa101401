"""
Reminder Scheduler Service

Runs the reminder sweep on a cron schedule using APScheduler.

Architecture:
    APScheduler (cron trigger derived from REMINDER_INTERVAL_MINUTES)
        │
        ▼
    ReminderScheduler.run_tick()
        │
        ├── Skip if a tick is already in flight (asyncio.Lock)
        └── Open a DB session and call AlertService.process_reminders()
                    │
                    ├── Reconcile expired alerts
                    └── Per alert: ReminderService.process_alert()

One scheduler instance is built in the application lifespan and stored on
app.state; there is no module-level singleton.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from alerting.core.clock import system_clock
from alerting.core.config import settings
from alerting.core.database import get_db_session
from alerting.core.metrics import record_reminder_sweep
from alerting.services.reminder_service import ReminderSweepResult

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "reminder_sweep_job"

# Intervals that are neither sub-hourly nor whole hours up to a day run on this
FALLBACK_INTERVAL_MINUTES = 30

SweepCallable = Callable[[], Awaitable[ReminderSweepResult]]


def interval_to_cron(minutes: int) -> str:
    """
    Convert "every N minutes" into a five-field crontab expression.

    N < 60, N divides 60         -> every N minutes
    N < 60, otherwise            -> every D minutes, D the largest divisor of 60 below N
    N multiple of 60, N <= 1440  -> on the hour, every N/60 hours (1440 -> midnight)
    anything else                -> every 30 minutes

    A "*/N" minute field restarts every hour, so only divisors of 60 give
    evenly spaced sweeps. Rounding down keeps gaps no longer than requested.

    Raises:
        ValueError: If minutes < 1
    """
    if minutes < 1:
        raise ValueError(f"Reminder interval must be at least 1 minute, got {minutes}")

    if minutes < 60:
        step = max(d for d in range(1, minutes + 1) if 60 % d == 0)
        return f"*/{step} * * * *"

    hours, remainder = divmod(minutes, 60)
    if remainder == 0 and hours <= 24:
        if hours == 1:
            return "0 * * * *"
        if hours == 24:
            return "0 0 * * *"
        return f"0 */{hours} * * *"

    return f"*/{FALLBACK_INTERVAL_MINUTES} * * * *"


@dataclass
class ReminderSchedulerStatus:
    """Status information about the reminder scheduler."""
    running: bool
    interval_minutes: int
    cron_expression: str
    next_run: Optional[datetime] = None
    last_run: Optional[datetime] = None
    last_status: str = "never_run"
    last_error: Optional[str] = None
    last_duration_ms: Optional[float] = None
    last_result: Optional[dict] = None

    def to_dict(self) -> dict:
        return {
            "running": self.running,
            "interval_minutes": self.interval_minutes,
            "cron_expression": self.cron_expression,
            "next_run": self.next_run.isoformat() if self.next_run else None,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_status": self.last_status,
            "last_error": self.last_error,
            "last_duration_ms": self.last_duration_ms,
            "last_result": self.last_result,
        }


class ReminderScheduler:
    """
    Periodic trigger for the reminder sweep.

    Ticks never overlap: a tick that fires while the previous one is still
    running is skipped. stop() removes the job but lets an in-flight tick
    finish.

    Args:
        interval_minutes: Sweep interval (default REMINDER_INTERVAL_MINUTES)
        sweep: Coroutine function running one sweep; defaults to
            AlertService.process_reminders() on a fresh DB session
        clock: Time source passed to the default sweep
    """

    def __init__(
        self,
        interval_minutes: Optional[int] = None,
        sweep: Optional[SweepCallable] = None,
        clock=None,
    ):
        if interval_minutes is None:
            interval_minutes = settings.REMINDER_INTERVAL_MINUTES
        self.interval_minutes = interval_minutes
        self.cron_expression = interval_to_cron(self.interval_minutes)
        self.clock = clock or system_clock
        self._sweep = sweep or self._default_sweep
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._lock = asyncio.Lock()
        self._current_tick: Optional[asyncio.Future] = None
        self._running = False
        self._last_run: Optional[datetime] = None
        self._last_status = "never_run"
        self._last_error: Optional[str] = None
        self._last_duration_ms: Optional[float] = None
        self._last_result: Optional[ReminderSweepResult] = None

        logger.info(
            "ReminderScheduler initialized",
            extra={
                "event_type": "reminder_scheduler_init",
                "interval_minutes": self.interval_minutes,
                "cron_expression": self.cron_expression,
            }
        )

    def start(self) -> None:
        """Schedule the sweep job and start the scheduler. Idempotent."""
        if self._running:
            logger.debug("ReminderScheduler already running")
            return

        self._add_job()
        self._scheduler.start()
        self._running = True
        logger.info(
            f"ReminderScheduler started ({self.cron_expression})",
            extra={
                "event_type": "reminder_scheduler_started",
                "cron_expression": self.cron_expression,
            }
        )

    def stop(self) -> None:
        """Remove the job and shut the scheduler down without waiting. Idempotent."""
        if not self._running:
            return

        if self._scheduler.get_job(REMINDER_JOB_ID):
            self._scheduler.remove_job(REMINDER_JOB_ID)
        self._scheduler.shutdown(wait=False)
        self._running = False
        # A shut-down APScheduler instance is not reused
        self._scheduler = AsyncIOScheduler(timezone=timezone.utc)
        logger.info(
            "ReminderScheduler stopped",
            extra={"event_type": "reminder_scheduler_stopped"}
        )

    def restart(self, interval_minutes: Optional[int] = None) -> None:
        """Stop, optionally change the interval, and start again."""
        if interval_minutes is not None:
            self.cron_expression = interval_to_cron(interval_minutes)
            self.interval_minutes = interval_minutes
        self.stop()
        self.start()

    def set_custom_schedule(self, cron_expression: str) -> None:
        """
        Replace the schedule with a crontab expression.

        Raises:
            ValueError: If the expression is not a valid five-field crontab
        """
        CronTrigger.from_crontab(cron_expression, timezone=timezone.utc)
        self.cron_expression = cron_expression
        if self._running:
            self._add_job()
        logger.info(
            f"Reminder schedule set to {cron_expression}",
            extra={"event_type": "reminder_schedule_changed", "cron_expression": cron_expression}
        )

    def _add_job(self) -> None:
        self._scheduler.add_job(
            self._scheduled_tick,
            trigger=CronTrigger.from_crontab(self.cron_expression, timezone=timezone.utc),
            id=REMINDER_JOB_ID,
            name="Reminder Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    async def _scheduled_tick(self) -> None:
        # The executor cancels its futures on shutdown; shielding keeps an
        # in-flight sweep running to completion after stop()
        self._current_tick = asyncio.ensure_future(self.run_tick())
        await asyncio.shield(self._current_tick)

    async def trigger_manual_run(self) -> Optional[ReminderSweepResult]:
        """Run one sweep now. Returns None if a sweep is already running."""
        logger.info("Manual reminder sweep requested", extra={"event_type": "reminder_manual_run"})
        return await self.run_tick()

    async def run_tick(self) -> Optional[ReminderSweepResult]:
        """
        Run one sweep unless another is in flight.

        Errors are recorded in the status and logged, never raised, so the
        scheduler keeps running.
        """
        if self._lock.locked():
            logger.warning(
                "Reminder sweep already in progress, skipping tick",
                extra={"event_type": "reminder_tick_skipped"}
            )
            return None

        async with self._lock:
            self._last_run = datetime.now(timezone.utc)
            start = time.perf_counter()
            try:
                result = await self._sweep()
            except Exception as e:
                self._last_duration_ms = (time.perf_counter() - start) * 1000
                self._last_status = "error"
                self._last_error = str(e)
                logger.error(
                    f"Reminder sweep failed: {e}",
                    extra={"event_type": "reminder_sweep_error", "error": str(e)},
                    exc_info=True
                )
                return None

            duration = time.perf_counter() - start
            self._last_duration_ms = round(duration * 1000, 2)
            self._last_result = result
            self._last_status = "partial_failure" if result.alerts_failed else "success"
            self._last_error = None
            record_reminder_sweep(duration, result.alerts_failed)
            logger.info(
                f"Reminder sweep finished: {result.reminders_sent} reminders sent",
                extra={"event_type": "reminder_sweep_complete", **result.to_dict()}
            )
            return result

    async def _default_sweep(self) -> ReminderSweepResult:
        from alerting.services.alert_service import AlertService

        with get_db_session() as db:
            service = AlertService(db, clock=self.clock)
            return await service.process_reminders()

    def get_status(self) -> ReminderSchedulerStatus:
        next_run = None
        job = self._scheduler.get_job(REMINDER_JOB_ID) if self._running else None
        if job and job.next_run_time:
            next_run = job.next_run_time

        return ReminderSchedulerStatus(
            running=self._running,
            interval_minutes=self.interval_minutes,
            cron_expression=self.cron_expression,
            next_run=next_run,
            last_run=self._last_run,
            last_status=self._last_status,
            last_error=self._last_error,
            last_duration_ms=self._last_duration_ms,
            last_result=self._last_result.to_dict() if self._last_result else None,
        )

    def is_running(self) -> bool:
        return self._running
