"""
Claim notifications.

Records every notification against its claim and delivers it through a
channel (log or SMTP). Delivery failures never reach the caller.
"""

from .service import (
    LoggingNotificationChannel,
    NotificationChannel,
    NotificationService,
    SmtpNotificationChannel,
    create_notification_channel,
    notification_message,
    notification_subject,
)

__all__ = [
    "LoggingNotificationChannel",
    "NotificationChannel",
    "NotificationService",
    "SmtpNotificationChannel",
    "create_notification_channel",
    "notification_message",
    "notification_subject",
]
