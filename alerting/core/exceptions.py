"""
Error taxonomy for the alert lifecycle engine.

ValidationError and NotFoundError are surfaced to callers (the API layer maps
them to 400/404). DispatchFailure, SubscriberFailure and SchedulerTickFailure
describe failures that are logged and counted but never propagated past the
component that observed them.
"""
from typing import Any, Dict, Optional


class AlertingError(Exception):
    """Base class for all alerting errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AlertingError):
    """Raised when input fails validation before persistence."""

    status_code = 400


class NotFoundError(AlertingError):
    """Raised when an alert, preference or user does not exist."""

    status_code = 404


class PermissionDeniedError(AlertingError):
    """Raised when the caller lacks the role required for an operation."""

    status_code = 403


class DispatchFailure(AlertingError):
    """A channel send returned False or raised."""

    def __init__(self, message: str, delivery_type: str, user_id: Optional[str] = None):
        super().__init__(message, {"delivery_type": delivery_type, "user_id": user_id})
        self.delivery_type = delivery_type
        self.user_id = user_id


class SubscriberFailure(AlertingError):
    """A fan-out subscriber raised while handling an alert event."""

    def __init__(self, subscriber: str, action: str, cause: BaseException):
        super().__init__(
            f"Subscriber {subscriber} failed on '{action}': {cause}",
            {"subscriber": subscriber, "action": action},
        )
        self.subscriber = subscriber
        self.action = action
        self.cause = cause


class SchedulerTickFailure(AlertingError):
    """Processing a single alert during a reminder sweep raised."""

    def __init__(self, alert_id: str, cause: BaseException):
        super().__init__(f"Reminder processing failed for alert {alert_id}: {cause}", {"alert_id": alert_id})
        self.alert_id = alert_id
        self.cause = cause
