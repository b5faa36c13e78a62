"""Notification sender that only writes to the log (local development)."""
import logging
from typing import Any, Dict, List, Optional

from app.services.notifications.base import NotificationSender

logger = logging.getLogger(__name__)

# Never echo these into logs
REDACTED_FIELDS = {"code", "share_url"}


class LogNotificationSender(NotificationSender):
    """Logs each notification instead of delivering it."""

    def send(
        self,
        to: str,
        template: str,
        fields: Dict[str, Any],
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
    ) -> None:
        safe_fields = {
            key: ("<redacted>" if key in REDACTED_FIELDS else value)
            for key, value in fields.items()
        }
        logger.info(
            "Notification %s to=%s cc=%s bcc=%s fields=%s",
            template,
            to,
            cc or [],
            bcc or [],
            safe_fields,
        )


log_notification_sender = LogNotificationSender()
