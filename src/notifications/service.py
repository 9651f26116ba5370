"""
Notification service and delivery channels.
"""

import asyncio
import logging
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import formataddr
from typing import Any, Optional

from ..claims.errors import NotificationError
from ..claims.schema import Notification, NotificationStatus, NotificationType

logger = logging.getLogger(__name__)


_MESSAGES = {
    NotificationType.CLAIM_RECEIVED: "Your claim has been received and is being processed.",
    NotificationType.STATUS_UPDATE: "Your claim status has been updated.",
    NotificationType.DECISION_MADE: "A decision has been made on your claim.",
    NotificationType.DOCUMENTS_REQUESTED: "Additional documents are required for your claim.",
    NotificationType.MANUAL_REVIEW_ASSIGNED: "Your claim has been assigned for manual review.",
}

_SUBJECTS = {
    NotificationType.CLAIM_RECEIVED: "Claim Received",
    NotificationType.STATUS_UPDATE: "Claim Status Update",
    NotificationType.DECISION_MADE: "Claim Decision",
    NotificationType.DOCUMENTS_REQUESTED: "Documents Required",
    NotificationType.MANUAL_REVIEW_ASSIGNED: "Manual Review Assigned",
}


def notification_message(kind: NotificationType) -> str:
    return _MESSAGES.get(kind, "Claim notification")


def notification_subject(kind: NotificationType) -> str:
    return _SUBJECTS.get(kind, "Claim Notification")


class NotificationChannel(ABC):
    """Delivers a rendered notification to a recipient."""

    @abstractmethod
    async def send(self, recipient: str, subject: str, body: str) -> None:
        """
        Deliver one message.

        Raises:
            NotificationError: if delivery fails
        """
        pass


class LoggingNotificationChannel(NotificationChannel):
    """Writes notifications to the log instead of sending them."""

    async def send(self, recipient: str, subject: str, body: str) -> None:
        logger.info(f"[Notification] To: {recipient}, Subject: {subject} - {body}")


class SmtpNotificationChannel(NotificationChannel):
    """Sends notifications as email over SMTP with STARTTLS."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        sender_email: str = "noreply@claims.example.com",
        sender_name: str = "Claims System",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout

    async def send(self, recipient: str, subject: str, body: str) -> None:
        message = EmailMessage()
        message["From"] = formataddr((self.sender_name, self.sender_email))
        message["To"] = recipient
        message["Subject"] = subject
        message.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(f"Email to {recipient} failed: {e}") from e

        logger.info(f"Email sent to {recipient}: {subject}")

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
            client.starttls()
            if self.username:
                client.login(self.username, self.password or "")
            client.send_message(message)


def create_notification_channel(settings: Any = None) -> NotificationChannel:
    """
    Factory function to create the configured notification channel.

    SMTP falls back to logging when host or username is missing.
    """
    channel = getattr(settings, "notification_channel", "log").lower()
    if channel == "log":
        return LoggingNotificationChannel()
    if channel == "smtp":
        if not settings.smtp_configured:
            logger.warning("SMTP not configured, notifications will only be logged")
            return LoggingNotificationChannel()
        return SmtpNotificationChannel(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            sender_email=settings.smtp_sender_email,
            sender_name=settings.smtp_sender_name,
        )
    raise ValueError(f"Unsupported notification channel: {channel}")


class NotificationService:
    """
    Records and delivers claim notifications.

    Usage:
        service = NotificationService(store, LoggingNotificationChannel())
        await service.notify(claim_id, "john@example.com", NotificationType.DECISION_MADE)

    notify() never raises: a notification is a side effect and must not
    abort the caller.
    """

    def __init__(self, store, channel: Optional[NotificationChannel] = None):
        self.store = store
        self.channel = channel or LoggingNotificationChannel()

    async def notify(
        self,
        claim_id: str,
        recipient: str,
        kind: NotificationType,
    ) -> Optional[Notification]:
        """
        Record a notification and attempt delivery.

        Returns:
            The stored notification (status SENT or FAILED), or None if it
            could not even be recorded
        """
        notification = Notification(
            claim_id=claim_id,
            recipient=recipient,
            notification_type=kind,
            message_body=notification_message(kind),
        )

        try:
            self.store.add_notification(notification)
        except Exception:
            logger.exception(f"Could not record {kind.value} notification for claim {claim_id}")
            return None

        try:
            await self.channel.send(recipient, notification_subject(kind), notification.message_body)
            notification.status = NotificationStatus.SENT
        except Exception as e:
            logger.warning(f"Notification {notification.notification_id} for claim {claim_id} failed: {e}")
            notification.status = NotificationStatus.FAILED

        try:
            self.store.update_notification_status(notification.notification_id, notification.status)
        except Exception:
            logger.exception(f"Could not update notification {notification.notification_id}")

        return notification
