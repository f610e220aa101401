"""
Notification dispatch over the channel registry.

Features:
- Single sends that never raise (missing channel or exception -> False)
- Concurrent multi-channel sends for one recipient
- Batched bulk sends: asyncio.gather within a batch, a pause between batches
- Aggregated results per recipient
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from alerting.core.config import settings
from alerting.core.exceptions import DispatchFailure
from alerting.core.metrics import record_notification_sent
from alerting.models.alert import Alert, DeliveryType
from alerting.models.user import User
from alerting.services.notifications.registry import ChannelRegistry

logger = logging.getLogger(__name__)


@dataclass
class RecipientOutcome:
    """Result of one send to one recipient."""

    user_id: str
    success: bool


@dataclass
class BulkDispatchResult:
    """Aggregated result of a bulk send.

    Attributes:
        successful: Recipients the channel accepted
        failed: Recipients whose send returned False or raised
        results: Per-recipient outcomes, in recipient order
        duration_ms: Total dispatch duration in milliseconds
    """

    successful: int = 0
    failed: int = 0
    results: List[RecipientOutcome] = field(default_factory=list)
    duration_ms: float = 0.0

    @property
    def total(self) -> int:
        return self.successful + self.failed

    def succeeded_user_ids(self) -> List[str]:
        return [r.user_id for r in self.results if r.success]

    def to_dict(self) -> Dict:
        return {
            "successful": self.successful,
            "failed": self.failed,
            "results": [{"user_id": r.user_id, "success": r.success} for r in self.results],
            "duration_ms": round(self.duration_ms, 2),
        }


class NotificationDispatcher:
    """
    Sends alerts through registered channels.

    Usage:
        dispatcher = NotificationDispatcher(build_default_registry(db))
        result = await dispatcher.send_bulk_notifications(alert, users, DeliveryType.IN_APP)
    """

    def __init__(
        self,
        registry: ChannelRegistry,
        batch_size: Optional[int] = None,
        batch_delay_seconds: Optional[float] = None,
    ):
        self.registry = registry
        self.batch_size = batch_size or settings.NOTIFICATION_BATCH_SIZE
        self.batch_delay_seconds = (
            settings.NOTIFICATION_BATCH_DELAY_SECONDS if batch_delay_seconds is None else batch_delay_seconds
        )

    async def send_notification(self, alert: Alert, recipient: User, delivery_type: DeliveryType) -> bool:
        delivery_type = DeliveryType(delivery_type)
        channel = self.registry.get_channel(delivery_type)
        if channel is None:
            logger.warning(
                f"No channel registered for {delivery_type.value}",
                extra={"event_type": "channel_missing", "delivery_type": delivery_type.value, "alert_id": alert.id}
            )
            record_notification_sent(delivery_type.value, False)
            return False

        try:
            success = bool(await channel.send(alert, recipient))
        except Exception as e:
            failure = DispatchFailure(f"{delivery_type.value} send raised: {e}", delivery_type.value, recipient.id)
            logger.error(
                failure.message,
                extra={
                    "event_type": "dispatch_failed",
                    "delivery_type": delivery_type.value,
                    "alert_id": alert.id,
                    "user_id": recipient.id,
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            success = False
        else:
            if not success:
                logger.warning(
                    f"{delivery_type.value} channel reported failure",
                    extra={
                        "event_type": "dispatch_failed",
                        "delivery_type": delivery_type.value,
                        "alert_id": alert.id,
                        "user_id": recipient.id,
                    }
                )

        record_notification_sent(delivery_type.value, success)
        return success

    async def send_to_multiple_channels(
        self,
        alert: Alert,
        recipient: User,
        delivery_types: Sequence[DeliveryType],
    ) -> Dict[DeliveryType, bool]:
        types = [DeliveryType(t) for t in dict.fromkeys(delivery_types)]
        outcomes = await asyncio.gather(
            *(self.send_notification(alert, recipient, t) for t in types)
        )
        return dict(zip(types, outcomes))

    async def send_bulk_notifications(
        self,
        alert: Alert,
        recipients: Sequence[User],
        delivery_type: DeliveryType,
    ) -> BulkDispatchResult:
        """
        Send to many recipients in batches.

        Each batch runs concurrently; batches run one after another with
        batch_delay_seconds between them. A failing recipient never aborts
        its batch.
        """
        start = time.perf_counter()
        result = BulkDispatchResult()
        recipients = list(recipients)

        for offset in range(0, len(recipients), self.batch_size):
            if offset and self.batch_delay_seconds:
                await asyncio.sleep(self.batch_delay_seconds)

            batch = recipients[offset:offset + self.batch_size]
            outcomes = await asyncio.gather(
                *(self.send_notification(alert, user, delivery_type) for user in batch),
                return_exceptions=True
            )
            for user, outcome in zip(batch, outcomes):
                success = outcome is True
                result.results.append(RecipientOutcome(user_id=user.id, success=success))
                if success:
                    result.successful += 1
                else:
                    result.failed += 1

        result.duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            f"Bulk dispatch complete: {result.successful} sent, {result.failed} failed",
            extra={
                "event_type": "bulk_dispatch_complete",
                "alert_id": alert.id,
                "delivery_type": DeliveryType(delivery_type).value,
                "successful": result.successful,
                "failed": result.failed,
                "duration_ms": round(result.duration_ms, 2),
            }
        )
        return result
