"""
Prometheus Metrics Registry

Provides Prometheus-compatible metrics for:
- HTTP request counts and latencies
- Alert lifecycle events published to subscribers
- Notification sends per channel
- Reminder sweeps and per-alert sweep failures
"""
import time
import logging
from prometheus_client import (
    Counter, Histogram, Info,
    CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST
)

logger = logging.getLogger(__name__)

# Custom registry to avoid conflicts with the default registry
REGISTRY = CollectorRegistry()

_start_time = time.time()

# ============================================================================
# Application Info
# ============================================================================

app_info = Info(
    'app',
    'Application information',
    registry=REGISTRY
)

# ============================================================================
# HTTP Request Metrics
# ============================================================================

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'status_code'],
    registry=REGISTRY
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method'],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY
)

# ============================================================================
# Alert Lifecycle Metrics
# ============================================================================

alert_events_total = Counter(
    'alert_events_total',
    'Alert lifecycle events published to subscribers',
    ['action', 'severity'],
    registry=REGISTRY
)

alert_event_recipients_total = Counter(
    'alert_event_recipients_total',
    'Recipients targeted by alert lifecycle events',
    ['action'],
    registry=REGISTRY
)

subscriber_failures_total = Counter(
    'alert_subscriber_failures_total',
    'Fan-out subscriber failures',
    ['subscriber'],
    registry=REGISTRY
)

# ============================================================================
# Notification Metrics
# ============================================================================

notifications_sent_total = Counter(
    'notifications_sent_total',
    'Notification send attempts by channel and result',
    ['channel', 'status'],
    registry=REGISTRY
)

reminders_sent_total = Counter(
    'reminders_sent_total',
    'Reminders recorded after a successful send',
    registry=REGISTRY
)

# ============================================================================
# Reminder Sweep Metrics
# ============================================================================

reminder_sweep_duration_seconds = Histogram(
    'reminder_sweep_duration_seconds',
    'Reminder sweep duration in seconds',
    buckets=[0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=REGISTRY
)

reminder_sweep_alert_failures_total = Counter(
    'reminder_sweep_alert_failures_total',
    'Alerts whose reminder processing raised during a sweep',
    registry=REGISTRY
)


def init_metrics(version: str = "1.0.0"):
    """
    Initialize metrics with application info.

    Args:
        version: Application version string
    """
    global _start_time
    _start_time = time.time()

    app_info.info({
        'version': version,
        'name': 'alerting'
    })

    logger.info("Prometheus metrics initialized", extra={"version": version})


def record_request_metrics(method: str, status_code: int, response_time_seconds: float):
    """Record HTTP request metrics."""
    http_requests_total.labels(method=method, status_code=str(status_code)).inc()
    http_request_duration_seconds.labels(method=method).observe(response_time_seconds)


def record_alert_event(action: str, severity: str, recipient_count: int):
    """
    Record an alert lifecycle event published to subscribers.

    Args:
        action: created, updated, reminder or expired
        severity: Alert severity
        recipient_count: Number of recipients attached to the event
    """
    alert_events_total.labels(action=action, severity=severity).inc()
    alert_event_recipients_total.labels(action=action).inc(recipient_count)


def record_subscriber_failure(subscriber: str):
    """Record a fan-out subscriber failure."""
    subscriber_failures_total.labels(subscriber=subscriber).inc()


def record_notification_sent(channel: str, success: bool):
    """
    Record a notification send attempt.

    Args:
        channel: Delivery type value (In-App, Email, SMS)
        success: Whether the channel reported success
    """
    notifications_sent_total.labels(channel=channel, status="success" if success else "failure").inc()


def record_reminder_sent():
    """Record a reminder recorded on a preference."""
    reminders_sent_total.inc()


def record_reminder_sweep(duration_seconds: float, failed_alerts: int = 0):
    """
    Record a completed reminder sweep.

    Args:
        duration_seconds: Wall time of the sweep
        failed_alerts: Alerts whose processing raised
    """
    reminder_sweep_duration_seconds.observe(duration_seconds)
    if failed_alerts:
        reminder_sweep_alert_failures_total.inc(failed_alerts)


def get_uptime_seconds() -> float:
    """Seconds since init_metrics() was called."""
    return time.time() - _start_time


def get_metrics() -> bytes:
    """Generate Prometheus metrics output in text format."""
    return generate_latest(REGISTRY)


def get_content_type() -> str:
    """Get the content type for Prometheus metrics."""
    return CONTENT_TYPE_LATEST
