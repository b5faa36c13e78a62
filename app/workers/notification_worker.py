"""
Dramatiq worker for notification delivery.

Renders the email for a notification and posts it to the mail relay. Relay
errors raise so Dramatiq retries with backoff; the token or challenge the
email refers to already exists either way.
"""
import logging
from typing import Any, Dict, List, Optional

import dramatiq
import httpx

# Import broker setup (must be before actor definitions)
from app.workers import broker  # noqa: F401
from app.config import settings
from app.services.notifications.rendering import render_notification

logger = logging.getLogger(__name__)


@dramatiq.actor(max_retries=5, min_backoff=5000, max_backoff=300000)
def deliver_notification(
    to: str,
    template: str,
    fields: Dict[str, Any],
    cc: Optional[List[str]] = None,
    bcc: Optional[List[str]] = None,
):
    """
    Deliver one notification.

    Args:
        to: Primary recipient
        template: Template name (see app.services.notifications.base)
        fields: Template fields
        cc: Carbon-copy recipients
        bcc: Blind carbon-copy recipients
    """
    subject, html = render_notification(template, fields)

    if not settings.mail_relay_url:
        logger.info("No mail relay configured; dropping %s notification to %s", template, to)
        return

    payload = {
        "from": settings.mail_from,
        "to": [to],
        "cc": cc or [],
        "bcc": bcc or [],
        "subject": subject,
        "html": html,
        "tags": [template],
    }
    response = httpx.post(
        settings.mail_relay_url,
        json=payload,
        timeout=settings.mail_relay_timeout,
    )
    if response.status_code >= 400:
        logger.warning(
            "Mail relay rejected %s notification: status=%s", template, response.status_code
        )
    response.raise_for_status()
    logger.info("Delivered %s notification to %s", template, to)
