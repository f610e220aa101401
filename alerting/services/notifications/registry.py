"""Delivery channel registry keyed by DeliveryType"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session as DBSession

from alerting.models.alert import DeliveryType
from alerting.services.notifications.channels import (
    DeliveryChannel,
    EmailChannel,
    EmailTransport,
    InAppChannel,
    SmsChannel,
    SmsTransport,
)

logger = logging.getLogger(__name__)


class ChannelRegistry:
    """Maps a delivery type to the channel that handles it (at most one per type)."""

    def __init__(self, channels: Optional[List[DeliveryChannel]] = None):
        self._channels: Dict[DeliveryType, DeliveryChannel] = {}
        for channel in channels or []:
            self.add_channel(channel)

    def add_channel(self, channel: DeliveryChannel) -> None:
        """Register a channel, replacing any previous channel of the same type."""
        if channel.channel_type in self._channels:
            logger.info(
                f"Replacing {channel.channel_type.value} channel",
                extra={"event_type": "channel_replaced", "delivery_type": channel.channel_type.value}
            )
        self._channels[channel.channel_type] = channel

    def remove_channel(self, delivery_type: DeliveryType) -> bool:
        return self._channels.pop(DeliveryType(delivery_type), None) is not None

    def get_channel(self, delivery_type: DeliveryType) -> Optional[DeliveryChannel]:
        return self._channels.get(DeliveryType(delivery_type))

    def has_channel(self, delivery_type: DeliveryType) -> bool:
        return DeliveryType(delivery_type) in self._channels

    def available_channels(self) -> List[DeliveryType]:
        return list(self._channels)


def build_default_registry(
    db: DBSession,
    clock=None,
    email_transport: Optional[EmailTransport] = None,
    sms_transport: Optional[SmsTransport] = None,
) -> ChannelRegistry:
    """In-app, email and SMS channels bound to one session."""
    return ChannelRegistry([
        InAppChannel(db, clock=clock),
        EmailChannel(transport=email_transport),
        SmsChannel(transport=sms_transport),
    ])
