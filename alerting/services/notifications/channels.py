"""
Delivery channels.

Every channel exposes channel_type and `async send(alert, recipient) -> bool`.
A channel reports failure by returning False; the dispatcher also treats an
exception as failure, so channels only catch what they can describe better.

Email and SMS render their content and hand it to an optional async
transport. Without a transport the rendered message is logged and the send
counts as delivered.
"""
import logging
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session as DBSession

from alerting.core.clock import as_utc, system_clock
from alerting.core.config import settings
from alerting.models.alert import Alert, AlertSeverity, DeliveryType
from alerting.models.notification_delivery import NotificationDelivery, NotificationStatus
from alerting.models.user import User

logger = logging.getLogger(__name__)

EmailTransport = Callable[[MIMEMultipart], Awaitable[None]]
SmsTransport = Callable[[str, str], Awaitable[None]]

SMS_MAX_LENGTH = 150

SEVERITY_SYMBOLS = {
    AlertSeverity.CRITICAL.value: "🚨",
    AlertSeverity.WARNING.value: "⚠️",
    AlertSeverity.INFO.value: "ℹ️",
}


class DeliveryChannel(ABC):
    """Base class for delivery channels"""

    channel_type: DeliveryType

    @abstractmethod
    async def send(self, alert: Alert, recipient: User) -> bool:
        ...

    def format_title(self, alert: Alert) -> str:
        symbol = SEVERITY_SYMBOLS.get(alert.severity, "🔔")
        return f"{symbol} {alert.severity}: {alert.title}"

    def format_message(self, alert: Alert, recipient: User) -> str:
        lines = [
            f"{alert.severity} Alert: {alert.title}",
            "",
            f"Hi {recipient.name},",
            "",
            alert.message,
            "",
            f"Severity: {alert.severity}",
        ]
        if alert.created_at:
            lines.append(f"Created: {as_utc(alert.created_at).strftime('%Y-%m-%d %H:%M UTC')}")
        if alert.expiry_time:
            lines.append(f"Expires: {as_utc(alert.expiry_time).strftime('%Y-%m-%d %H:%M UTC')}")
        lines += ["", "---", "This is an automated notification from the Alerting Platform."]
        return "\n".join(lines)


class InAppChannel(DeliveryChannel):
    """
    In-app notifications stored as NotificationDelivery rows.

    send() is idempotent per (alert, user): a pending record is promoted to
    delivered, an existing delivered/read/snoozed record is left as is, and a
    missing record is created as delivered.
    """

    channel_type = DeliveryType.IN_APP

    def __init__(self, db: DBSession, clock=None):
        self.db = db
        self.clock = clock or system_clock

    def _get_delivery(self, alert_id: str, user_id: str) -> Optional[NotificationDelivery]:
        return (
            self.db.query(NotificationDelivery)
            .filter(
                NotificationDelivery.alert_id == alert_id,
                NotificationDelivery.user_id == user_id,
                NotificationDelivery.delivery_type == self.channel_type.value,
            )
            .first()
        )

    async def send(self, alert: Alert, recipient: User) -> bool:
        try:
            delivery = self._get_delivery(alert.id, recipient.id)
            if delivery is not None:
                if delivery.status == NotificationStatus.PENDING.value:
                    delivery.mark_delivered(self.clock.now())
                    self.db.commit()
                return True

            delivery = NotificationDelivery(
                alert_id=alert.id,
                user_id=recipient.id,
                delivery_type=self.channel_type.value,
                delivery_metadata={
                    "formatted_title": self.format_title(alert),
                    "formatted_message": self.format_message(alert, recipient),
                    "severity": alert.severity,
                },
            )
            delivery.mark_delivered(self.clock.now())
            self.db.add(delivery)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to store in-app notification: {e}",
                extra={
                    "event_type": "inapp_notification_failed",
                    "alert_id": alert.id,
                    "user_id": recipient.id,
                    "error_type": type(e).__name__,
                }
            )
            return False

        logger.info(
            "In-app notification delivered",
            extra={"event_type": "inapp_notification_sent", "alert_id": alert.id, "user_id": recipient.id}
        )
        return True

    def mark_as_read(self, alert_id: str, user_id: str) -> bool:
        """Returns False if there is no record or it is already read."""
        delivery = self._get_delivery(alert_id, user_id)
        if delivery is None or delivery.status == NotificationStatus.READ.value:
            return False
        delivery.mark_read(self.clock.now())
        self.db.commit()
        return True

    def snooze(self, alert_id: str, user_id: str, until) -> bool:
        delivery = self._get_delivery(alert_id, user_id)
        if delivery is None:
            return False
        delivery.snooze(until)
        self.db.commit()
        return True

    def unsnooze(self, alert_id: str, user_id: str) -> bool:
        delivery = self._get_delivery(alert_id, user_id)
        if delivery is None or delivery.status != NotificationStatus.SNOOZED.value:
            return False
        delivery.unsnooze()
        self.db.commit()
        return True

    def get_user_notifications(self, user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent in-app deliveries for a user, with their alerts."""
        deliveries = (
            self.db.query(NotificationDelivery)
            .filter(
                NotificationDelivery.user_id == user_id,
                NotificationDelivery.delivery_type == self.channel_type.value,
            )
            .order_by(NotificationDelivery.created_at.desc())
            .limit(limit)
            .all()
        )
        result = []
        for delivery in deliveries:
            item = delivery.to_dict()
            item["alert"] = delivery.alert.to_dict() if delivery.alert else None
            result.append(item)
        return result


class EmailChannel(DeliveryChannel):
    """Email notifications rendered as multipart plain text + HTML."""

    channel_type = DeliveryType.EMAIL

    def __init__(self, transport: Optional[EmailTransport] = None, from_address: Optional[str] = None):
        self.transport = transport
        self.from_address = from_address or settings.NOTIFICATION_FROM_EMAIL

    def build_message(self, alert: Alert, recipient: User) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = self.format_title(alert)
        msg["From"] = self.from_address
        msg["To"] = recipient.email
        msg.attach(MIMEText(self.format_message(alert, recipient), "plain", "utf-8"))
        msg.attach(MIMEText(self._build_html(alert, recipient), "html", "utf-8"))
        return msg

    def _build_html(self, alert: Alert, recipient: User) -> str:
        expires = ""
        if alert.expiry_time:
            expires = f"<li><strong>Expires:</strong> {as_utc(alert.expiry_time).strftime('%Y-%m-%d %H:%M UTC')}</li>"
        return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="utf-8">
    <title>{escape(alert.title)}</title>
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
        .content {{ padding: 20px; }}
        .alert-critical {{ border-left: 4px solid #dc3545; }}
        .alert-warning {{ border-left: 4px solid #ffc107; }}
        .alert-info {{ border-left: 4px solid #17a2b8; }}
        .footer {{ background-color: #f4f4f4; padding: 10px; text-align: center; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="content alert-{alert.severity.lower()}">
        <h2>{escape(alert.title)}</h2>
        <p><strong>Hello {escape(recipient.name)},</strong></p>
        <p>{escape(alert.message)}</p>
        <ul>
            <li><strong>Severity:</strong> {alert.severity}</li>
            {expires}
        </ul>
    </div>
    <div class="footer">
        <p>This is an automated notification from the Alerting Platform.</p>
    </div>
</body>
</html>"""

    async def send(self, alert: Alert, recipient: User) -> bool:
        if not recipient.email:
            logger.warning(
                "Recipient has no email address",
                extra={"event_type": "email_notification_skipped", "alert_id": alert.id, "user_id": recipient.id}
            )
            return False

        msg = self.build_message(alert, recipient)
        if self.transport is None:
            logger.info(
                f"Email notification rendered (no transport configured): {msg['Subject']}",
                extra={"event_type": "email_notification_logged", "alert_id": alert.id, "user_id": recipient.id}
            )
            return True

        try:
            await self.transport(msg)
        except Exception as e:
            logger.error(
                f"Email transport failed: {e}",
                extra={
                    "event_type": "email_notification_failed",
                    "alert_id": alert.id,
                    "user_id": recipient.id,
                    "error_type": type(e).__name__,
                }
            )
            return False

        logger.info(
            "Email notification sent",
            extra={"event_type": "email_notification_sent", "alert_id": alert.id, "user_id": recipient.id}
        )
        return True


class SmsChannel(DeliveryChannel):
    """SMS notifications truncated to a single short message."""

    channel_type = DeliveryType.SMS

    def __init__(self, transport: Optional[SmsTransport] = None):
        self.transport = transport

    def build_text(self, alert: Alert) -> str:
        symbol = SEVERITY_SYMBOLS.get(alert.severity, "🔔")
        text = f"{symbol} {alert.severity} Alert: {alert.title}\n\n{alert.message}"
        if len(text) > SMS_MAX_LENGTH:
            text = text[:SMS_MAX_LENGTH - 3] + "..."
        return text

    async def send(self, alert: Alert, recipient: User) -> bool:
        if not recipient.phone_number:
            logger.warning(
                "Recipient has no phone number",
                extra={"event_type": "sms_notification_skipped", "alert_id": alert.id, "user_id": recipient.id}
            )
            return False

        text = self.build_text(alert)
        destination = mask_phone_number(recipient.phone_number)
        if self.transport is not None:
            try:
                await self.transport(recipient.phone_number, text)
            except Exception as e:
                logger.error(
                    f"SMS transport failed for {destination}: {e}",
                    extra={
                        "event_type": "sms_notification_failed",
                        "alert_id": alert.id,
                        "user_id": recipient.id,
                        "error_type": type(e).__name__,
                    }
                )
                return False

        logger.info(
            f"SMS notification sent to {destination}",
            extra={"event_type": "sms_notification_sent", "alert_id": alert.id, "user_id": recipient.id}
        )
        return True


def mask_phone_number(number: str) -> str:
    """Keep the last four digits: +15551234567 -> ***-***-4567"""
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"***-***-{digits[-4:]}" if len(digits) >= 4 else "***"
