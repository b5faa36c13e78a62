"""Test fixtures for Guest List Access."""

from tests.fixtures.mocks import (
    FailingNotificationSender,
    FrozenClock,
    RecordingNotificationSender,
)

__all__ = [
    "FailingNotificationSender",
    "FrozenClock",
    "RecordingNotificationSender",
]
