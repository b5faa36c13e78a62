"""Notification sender that hands messages to the Dramatiq notification worker."""
import logging
from typing import Any, Dict, List, Optional

from dramatiq.errors import DramatiqError
from redis.exceptions import RedisError

from app.services.notifications.base import TEMPLATES, DeliveryFailed, NotificationSender

logger = logging.getLogger(__name__)


class QueuedNotificationSender(NotificationSender):
    """
    Enqueues a delivery task and returns immediately.

    Delivery itself happens in app.workers.notification_worker, which retries
    failed relay calls.
    """

    def send(
        self,
        to: str,
        template: str,
        fields: Dict[str, Any],
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
    ) -> None:
        if template not in TEMPLATES:
            raise DeliveryFailed(f"Unknown template: {template}")

        # Imported here so the broker is only configured when actually used
        from app.workers.notification_worker import deliver_notification

        try:
            deliver_notification.send(
                to=to, template=template, fields=fields, cc=cc or [], bcc=bcc or []
            )
        except (DramatiqError, RedisError) as e:
            logger.error("Failed to enqueue %s notification: %s", template, e)
            raise DeliveryFailed(str(e)) from e


queued_notification_sender = QueuedNotificationSender()
