"""
Notification delivery package.

Usage:
    from app.services.notifications import get_notification_sender

    sender = get_notification_sender()
    sender.send("guest@example.com", TEMPLATE_OTP_CODE, {"code": "123456"})
"""
from app.config import settings
from app.services.notifications.base import (
    TEMPLATE_INVITATION_FORWARD,
    TEMPLATE_OTP_CODE,
    TEMPLATE_RSVP_CONFIRMATION,
    TEMPLATE_SHARE_INVITATION,
    DeliveryFailed,
    NotificationSender,
)
from app.services.notifications.log_sender import log_notification_sender
from app.services.notifications.queued import queued_notification_sender


def get_notification_sender() -> NotificationSender:
    """Factory for the configured sender ('queue' or 'log')."""
    if settings.notification_backend == "log":
        return log_notification_sender
    return queued_notification_sender


__all__ = [
    "DeliveryFailed",
    "NotificationSender",
    "TEMPLATE_INVITATION_FORWARD",
    "TEMPLATE_OTP_CODE",
    "TEMPLATE_RSVP_CONFIRMATION",
    "TEMPLATE_SHARE_INVITATION",
    "get_notification_sender",
]
