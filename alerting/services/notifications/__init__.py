"""
Notification delivery package.

Provides the delivery channels (in-app, email, SMS), the channel registry and
the dispatcher used for single, multi-channel and bulk sends.
"""
from alerting.services.notifications.channels import (
    DeliveryChannel,
    EmailChannel,
    InAppChannel,
    SmsChannel,
)
from alerting.services.notifications.registry import ChannelRegistry, build_default_registry
from alerting.services.notifications.dispatch import (
    BulkDispatchResult,
    NotificationDispatcher,
    RecipientOutcome,
)

__all__ = [
    "DeliveryChannel",
    "EmailChannel",
    "InAppChannel",
    "SmsChannel",
    "ChannelRegistry",
    "build_default_registry",
    "BulkDispatchResult",
    "NotificationDispatcher",
    "RecipientOutcome",
]
