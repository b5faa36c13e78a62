"""
Fakes for the access services' collaborators.

These record what would have been sent and let tests control time.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from app.services.notifications import DeliveryFailed, NotificationSender


class FrozenClock:
    """
    Callable clock that only moves when told to.

    Usage:
        clock = FrozenClock()
        clock.advance(minutes=11)
    """

    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingNotificationSender(NotificationSender):
    """Keeps every notification in memory instead of delivering it."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(
        self,
        to: str,
        template: str,
        fields: Dict[str, Any],
        cc: Optional[List[str]] = None,
        bcc: Optional[List[str]] = None,
    ) -> None:
        self.sent.append(
            {
                "to": to,
                "template": template,
                "fields": dict(fields),
                "cc": list(cc or []),
                "bcc": list(bcc or []),
            }
        )

    def of(self, template: str) -> List[Dict[str, Any]]:
        return [n for n in self.sent if n["template"] == template]

    def last_code(self) -> str:
        """Plaintext of the most recently sent verification code."""
        codes = self.of("otp_code")
        assert codes, "no verification code was sent"
        return codes[-1]["fields"]["code"]

    def reset(self):
        self.sent = []


class FailingNotificationSender(NotificationSender):
    """Refuses every delivery."""

    def __init__(self):
        self.attempts = 0

    def send(self, to, template, fields, cc=None, bcc=None) -> None:
        self.attempts += 1
        raise DeliveryFailed("relay unavailable")
