"""
Security tests for the public link flow.

Tests security aspects including:
- Uniform responses for unknown, expired and revoked links
- Assertion tampering and cross-token reuse
- Code guessing limits
- CSRF origin checks
"""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.orm import Session

from app.config import settings
from app.models import RSVPResponse
from app.services.access.token_issuer import generate_secret
from tests.factories import create_token

INVALID_LINK = {"error": "link_invalid", "detail": "This link is no longer valid"}


def get_code_verified_assertion(client: TestClient, notifier, secret: str) -> str:
    client.post(f"/public/links/{secret}/otp")
    response = client.post(
        f"/public/links/{secret}/otp/verify", json={"code": notifier.last_code()}
    )
    return response.json()["assertion"]


@pytest.mark.security
class TestUniformInvalidLinks:
    """Unusable links must be indistinguishable from each other."""

    @pytest.fixture
    def bad_secrets(self, db: Session, service, clock):
        expired = create_token(db, ttl=timedelta(days=1), clock=clock)
        revoked = create_token(db, clock=clock)
        service.revoke(revoked.id)
        clock.advance(days=2)
        return {
            "unknown": generate_secret(),
            "expired": expired.secret,
            "revoked": revoked.secret,
        }

    @pytest.mark.parametrize("kind", ["unknown", "expired", "revoked"])
    def test_resolve(self, client: TestClient, bad_secrets, kind):
        response = client.get(f"/public/links/{bad_secrets[kind]}")

        assert response.status_code == 410
        assert response.json() == INVALID_LINK

    @pytest.mark.parametrize("kind", ["unknown", "expired", "revoked"])
    def test_forward(self, client: TestClient, bad_secrets, kind):
        response = client.post(
            f"/public/links/{bad_secrets[kind]}/forward",
            json={
                "forwarder": {"name": "Alice", "email": "alice@example.com"},
                "recipient": {"name": "Bob", "email": "bob@example.com"},
            },
        )

        assert response.status_code == 410
        assert response.json() == INVALID_LINK

    @pytest.mark.parametrize("kind", ["unknown", "expired", "revoked"])
    def test_request_code(self, client: TestClient, bad_secrets, notifier, kind):
        response = client.post(f"/public/links/{bad_secrets[kind]}/otp")

        assert response.status_code == 410
        assert response.json() == INVALID_LINK
        assert notifier.of("otp_code") == []

    @pytest.mark.parametrize("kind", ["unknown", "expired", "revoked"])
    def test_verify_code(self, client: TestClient, bad_secrets, kind):
        response = client.post(
            f"/public/links/{bad_secrets[kind]}/otp/verify", json={"code": "123456"}
        )

        assert response.status_code == 410
        assert response.json() == INVALID_LINK


@pytest.mark.security
class TestAssertionSecurity:
    """RSVP must not be possible without a genuine, matching assertion."""

    def test_tampered_signature(self, client: TestClient, db: Session, notifier, clock):
        issued = create_token(db, clock=clock)
        assertion = get_code_verified_assertion(client, notifier, issued.secret)
        header, payload, signature = assertion.split(".")
        tampered = f"{header}.{payload}.{signature[::-1]}"

        response = client.post(
            f"/public/links/{issued.secret}/rsvp",
            json={"status": "attending"},
            headers={"Authorization": f"Bearer {tampered}"},
        )

        assert response.status_code == 401
        assert db.query(RSVPResponse).count() == 0

    def test_forged_with_other_key(self, client: TestClient, db: Session, clock):
        issued = create_token(db, clock=clock)
        forged = jwt.encode(
            {
                "tid": issued.id,
                "cid": issued.token.issued_for_contact_id,
                "chl": 1,
                "vat": int(clock().timestamp()),
                "aud": "rsvp",
            },
            "attacker-key",
            algorithm="HS256",
        )

        response = client.post(
            f"/public/links/{issued.secret}/rsvp",
            json={"status": "attending"},
            headers={"Authorization": f"Bearer {forged}"},
        )

        assert response.status_code == 401
        assert db.query(RSVPResponse).count() == 0

    def test_assertion_for_another_link(self, client: TestClient, db: Session, notifier, clock):
        mine = create_token(db, clock=clock)
        theirs = create_token(db, clock=clock)
        assertion = get_code_verified_assertion(client, notifier, mine.secret)

        response = client.post(
            f"/public/links/{theirs.secret}/rsvp",
            json={"status": "declined"},
            headers={"Authorization": f"Bearer {assertion}"},
        )

        assert response.status_code == 401
        assert response.json()["error"] == "invalid_assertion"
        assert db.query(RSVPResponse).count() == 0

    def test_non_bearer_scheme(self, client: TestClient, db: Session, notifier, clock):
        issued = create_token(db, clock=clock)
        assertion = get_code_verified_assertion(client, notifier, issued.secret)

        response = client.post(
            f"/public/links/{issued.secret}/rsvp",
            json={"status": "attending"},
            headers={"Authorization": f"Basic {assertion}"},
        )

        assert response.status_code == 401

    def test_rsvp_on_revoked_link_with_valid_assertion(
        self, client: TestClient, db: Session, notifier, service, clock
    ):
        issued = create_token(db, clock=clock)
        assertion = get_code_verified_assertion(client, notifier, issued.secret)
        service.revoke(issued.id)

        response = client.post(
            f"/public/links/{issued.secret}/rsvp",
            json={"status": "attending"},
            headers={"Authorization": f"Bearer {assertion}"},
        )

        assert response.status_code == 410
        assert response.json() == INVALID_LINK


@pytest.mark.security
class TestCodeGuessing:
    """Brute forcing a code is bounded by the attempt limit."""

    def test_sixth_guess_locked_out(self, client: TestClient, db: Session, notifier, clock):
        issued = create_token(db, clock=clock)
        client.post(f"/public/links/{issued.secret}/otp")
        code = notifier.last_code()
        guesses = [f"{(int(code) + n) % 1000000:06d}" for n in range(1, 6)]

        statuses = [
            client.post(
                f"/public/links/{issued.secret}/otp/verify", json={"code": guess}
            ).status_code
            for guess in guesses
        ]
        final = client.post(f"/public/links/{issued.secret}/otp/verify", json={"code": code})

        assert statuses == [401] * 5
        assert final.status_code == 429
        assert final.json()["error"] == "too_many_attempts"

    def test_code_not_reusable(self, client: TestClient, db: Session, notifier, clock):
        issued = create_token(db, clock=clock)
        client.post(f"/public/links/{issued.secret}/otp")
        code = notifier.last_code()

        first = client.post(f"/public/links/{issued.secret}/otp/verify", json={"code": code})
        second = client.post(f"/public/links/{issued.secret}/otp/verify", json={"code": code})

        assert first.status_code == 200
        assert second.status_code == 401

    def test_codes_not_logged(self, client: TestClient, db: Session, notifier, clock, caplog):
        issued = create_token(db, clock=clock)

        with caplog.at_level("DEBUG"):
            client.post(f"/public/links/{issued.secret}/otp")

        assert notifier.last_code() not in caplog.text


@pytest.mark.security
class TestCSRF:
    """State-changing public requests need a same-site Origin or Referer."""

    def test_missing_origin_rejected(self, client: TestClient, db: Session, clock):
        issued = create_token(db, clock=clock)
        del client.headers["referer"]

        response = client.post(f"/public/links/{issued.secret}/otp")

        assert response.status_code == 403

    def test_foreign_origin_rejected(self, client: TestClient, db: Session, clock):
        issued = create_token(db, clock=clock)

        response = client.post(
            f"/public/links/{issued.secret}/otp",
            headers={"Origin": "https://evil.example.net"},
        )

        assert response.status_code == 403

    def test_trusted_origin_accepted(
        self, client: TestClient, db: Session, clock, monkeypatch
    ):
        monkeypatch.setattr(settings, "trusted_origins", ["https://guests.example.com"])
        issued = create_token(db, clock=clock)

        response = client.post(
            f"/public/links/{issued.secret}/otp",
            headers={"Origin": "https://guests.example.com"},
        )

        assert response.status_code == 200

    def test_get_needs_no_origin(self, client: TestClient, db: Session, clock):
        issued = create_token(db, clock=clock)
        del client.headers["referer"]

        assert client.get(f"/public/links/{issued.secret}").status_code == 200
