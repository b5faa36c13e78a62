"""
Unit tests for notification senders, rendering and the delivery worker.
"""
import logging

import httpx
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.config import settings
from app.services.notifications import (
    DeliveryFailed,
    get_notification_sender,
)
from app.services.notifications.log_sender import LogNotificationSender, log_notification_sender
from app.services.notifications.queued import QueuedNotificationSender
from app.services.notifications.rendering import render_notification
from app.workers import broker
from app.workers.notification_worker import deliver_notification

OTP_FIELDS = {"recipient_name": "Alice", "code": "042917", "expires_minutes": 10}


# =============================================================================
# Sender selection
# =============================================================================


class TestGetNotificationSender:
    def test_log_backend(self, monkeypatch):
        monkeypatch.setattr(settings, "notification_backend", "log")
        assert get_notification_sender() is log_notification_sender

    def test_queue_backend(self, monkeypatch):
        monkeypatch.setattr(settings, "notification_backend", "queue")
        assert isinstance(get_notification_sender(), QueuedNotificationSender)


# =============================================================================
# LogNotificationSender
# =============================================================================


class TestLogSender:
    def test_codes_and_links_redacted(self, caplog):
        with caplog.at_level(logging.INFO):
            LogNotificationSender().send(
                "alice@example.com",
                "otp_code",
                {**OTP_FIELDS, "share_url": "https://guests.example.com/shared/s3cret"},
            )

        assert "042917" not in caplog.text
        assert "s3cret" not in caplog.text
        assert "<redacted>" in caplog.text


# =============================================================================
# QueuedNotificationSender
# =============================================================================


class TestQueuedSender:
    def test_enqueues_delivery(self):
        broker.flush_all()

        QueuedNotificationSender().send("alice@example.com", "otp_code", OTP_FIELDS)

        assert broker.queues[deliver_notification.queue_name].qsize() == 1
        broker.flush_all()

    def test_unknown_template(self):
        with pytest.raises(DeliveryFailed):
            QueuedNotificationSender().send("alice@example.com", "newsletter", {})

    def test_broker_failure_raises_delivery_failed(self, monkeypatch):
        def refuse(*args, **kwargs):
            raise RedisConnectionError("redis down")

        monkeypatch.setattr(deliver_notification, "send", refuse)

        with pytest.raises(DeliveryFailed):
            QueuedNotificationSender().send("alice@example.com", "otp_code", OTP_FIELDS)


# =============================================================================
# Rendering
# =============================================================================


class TestRendering:
    def test_otp_email(self):
        subject, html = render_notification("otp_code", OTP_FIELDS)

        assert subject == "Your verification code"
        assert "042917" in html
        assert "10 minutes" in html

    def test_forward_email_escapes_names(self):
        subject, html = render_notification(
            "invitation_forward",
            {
                "recipient_name": "Bob",
                "forwarder_name": "<script>Mallory</script>",
                "forwarder_email": "m@example.com",
                "event_name": "Gala",
                "share_url": "https://guests.example.com/shared/abc",
            },
        )

        assert subject == "<script>Mallory</script> has invited you to Gala"
        assert "<script>" not in html
        assert "https://guests.example.com/shared/abc" in html


# =============================================================================
# deliver_notification worker
# =============================================================================


class TestDeliverNotification:
    def test_posts_to_relay(self, monkeypatch):
        calls = []

        def fake_post(url, json, timeout):
            calls.append({"url": url, "json": json})
            return httpx.Response(202, request=httpx.Request("POST", url))

        monkeypatch.setattr(settings, "mail_relay_url", "https://relay.example.com/send")
        monkeypatch.setattr("app.workers.notification_worker.httpx.post", fake_post)

        deliver_notification.fn(
            "alice@example.com",
            "otp_code",
            OTP_FIELDS,
            cc=["b@example.com"],
            bcc=["host@example.com"],
        )

        [call] = calls
        assert call["url"] == "https://relay.example.com/send"
        assert call["json"]["to"] == ["alice@example.com"]
        assert call["json"]["cc"] == ["b@example.com"]
        assert call["json"]["bcc"] == ["host@example.com"]
        assert call["json"]["subject"] == "Your verification code"
        assert "042917" in call["json"]["html"]

    def test_relay_error_raises_for_retry(self, monkeypatch):
        def fake_post(url, json, timeout):
            return httpx.Response(503, request=httpx.Request("POST", url))

        monkeypatch.setattr(settings, "mail_relay_url", "https://relay.example.com/send")
        monkeypatch.setattr("app.workers.notification_worker.httpx.post", fake_post)

        with pytest.raises(httpx.HTTPStatusError):
            deliver_notification.fn("alice@example.com", "otp_code", OTP_FIELDS)

    def test_no_relay_configured(self, monkeypatch):
        def fail_post(*args, **kwargs):
            raise AssertionError("relay should not be called")

        monkeypatch.setattr(settings, "mail_relay_url", "")
        monkeypatch.setattr("app.workers.notification_worker.httpx.post", fail_post)

        deliver_notification.fn("alice@example.com", "otp_code", OTP_FIELDS)
