"""
Unit tests for TokenIssuer and TokenStore.

Tests minting, validation order, revocation and hashing of token secrets.
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.models import AccessToken
from app.services.access.errors import TokenExpired, TokenNotFound, TokenRevoked
from app.services.access.token_issuer import (
    TokenIssuer,
    build_link,
    default_ttl,
    generate_secret,
    hash_secret,
)
from tests.factories import create_contact, create_guest_list, create_token


# =============================================================================
# Secrets and links
# =============================================================================


class TestSecrets:
    """Tests for secret generation and hashing helpers."""

    def test_secrets_are_long_and_unique(self):
        secrets = {generate_secret() for _ in range(200)}
        assert len(secrets) == 200
        assert all(len(s) >= 43 for s in secrets)

    def test_hash_is_stable_and_not_the_secret(self):
        secret = generate_secret()
        assert hash_secret(secret) == hash_secret(secret)
        assert hash_secret(secret) != secret
        assert len(hash_secret(secret)) == 64

    def test_links_by_kind(self):
        assert build_link("abc", "share") == "https://guests.example.com/shared/abc"
        assert build_link("abc", "rsvp") == "https://guests.example.com/rsvp/abc"

    def test_default_ttls(self):
        assert default_ttl("share") == timedelta(days=30)
        assert default_ttl("rsvp") == timedelta(days=90)


# =============================================================================
# create
# =============================================================================


class TestCreate:
    """Tests for minting root tokens."""

    def test_create_root_token(self, db: Session, clock):
        guest_list = create_guest_list(db)
        contact = create_contact(db)
        issuer = TokenIssuer(db, clock=clock)

        issued = issuer.create(guest_list.id, ttl=timedelta(days=30), contact_id=contact.id)

        token = db.query(AccessToken).filter(AccessToken.id == issued.id).one()
        assert token.depth == 0
        assert token.parent_token_id is None
        assert token.revoked is False
        assert token.issued_for_contact_id == contact.id
        assert issued.expires_at == clock() + timedelta(days=30)
        assert issued.share_url.endswith(f"/shared/{issued.secret}")

    def test_only_hash_is_persisted(self, db: Session, clock):
        issued = create_token(db, clock=clock)

        token = db.query(AccessToken).filter(AccessToken.id == issued.id).one()
        assert token.secret_hash == hash_secret(issued.secret)
        assert issued.secret not in token.secret_hash

    def test_rsvp_kind_uses_rsvp_link_and_ttl(self, db: Session, clock):
        issued = create_token(db, kind="rsvp", clock=clock)

        assert "/rsvp/" in issued.share_url
        assert issued.expires_at == clock() + timedelta(days=90)

    def test_non_positive_ttl_rejected(self, db: Session, clock):
        guest_list = create_guest_list(db)
        issuer = TokenIssuer(db, clock=clock)

        with pytest.raises(ValueError):
            issuer.create(guest_list.id, ttl=timedelta(0))

    def test_unknown_kind_rejected(self, db: Session, clock):
        guest_list = create_guest_list(db)
        issuer = TokenIssuer(db, clock=clock)

        with pytest.raises(ValueError):
            issuer.create(guest_list.id, kind="admin")


# =============================================================================
# validate
# =============================================================================


class TestValidate:
    """Tests for validation of presented secrets."""

    def test_valid_secret(self, db: Session, clock):
        issued = create_token(db, clock=clock)
        issuer = TokenIssuer(db, clock=clock)

        assert issuer.validate(issued.secret).id == issued.id

    def test_unknown_secret(self, db: Session, clock):
        issuer = TokenIssuer(db, clock=clock)

        with pytest.raises(TokenNotFound):
            issuer.validate(generate_secret())

    def test_empty_secret(self, db: Session, clock):
        issuer = TokenIssuer(db, clock=clock)

        with pytest.raises(TokenNotFound):
            issuer.validate("")

    def test_expires_exactly_at_expiry(self, db: Session, clock):
        issued = create_token(db, ttl=timedelta(days=30), clock=clock)
        issuer = TokenIssuer(db, clock=clock)

        clock.advance(days=30, seconds=-1)
        issuer.validate(issued.secret)

        clock.advance(seconds=1)
        with pytest.raises(TokenExpired):
            issuer.validate(issued.secret)

    def test_revoked_reported_before_expired(self, db: Session, clock):
        issued = create_token(db, ttl=timedelta(days=1), clock=clock)
        issuer = TokenIssuer(db, clock=clock)
        issuer.revoke(issued.id)

        clock.advance(days=2)
        with pytest.raises(TokenRevoked):
            issuer.validate(issued.secret)

    def test_ensure_active_by_id(self, db: Session, clock):
        issued = create_token(db, clock=clock)
        issuer = TokenIssuer(db, clock=clock)

        assert issuer.ensure_active(issued.id).id == issued.id
        with pytest.raises(TokenNotFound):
            issuer.ensure_active(issued.id + 100)


# =============================================================================
# revoke
# =============================================================================


class TestRevoke:
    """Tests for revocation."""

    def test_revoke_is_idempotent(self, db: Session, clock):
        issued = create_token(db, clock=clock)
        issuer = TokenIssuer(db, clock=clock)

        assert issuer.revoke(issued.id) is True
        assert issuer.revoke(issued.id) is False

        token = issuer.store.get(issued.id)
        assert token.revoked is True
        assert token.revoked_at is not None

    def test_revoke_unknown_token(self, db: Session, clock):
        issuer = TokenIssuer(db, clock=clock)

        with pytest.raises(TokenNotFound):
            issuer.revoke(999)

    def test_revocation_seen_on_next_validate(self, db: Session, clock):
        issued = create_token(db, clock=clock)
        issuer = TokenIssuer(db, clock=clock)
        issuer.validate(issued.secret)

        issuer.revoke(issued.id)

        with pytest.raises(TokenRevoked):
            issuer.validate(issued.secret)


# =============================================================================
# TokenStore
# =============================================================================


class TestTokenStore:
    """Tests for the storage helpers."""

    def test_record_access_increments(self, db: Session, clock):
        issued = create_token(db, clock=clock)
        issuer = TokenIssuer(db, clock=clock)

        issuer.store.record_access(issued.id, clock())
        issuer.store.record_access(issued.id, clock())
        db.commit()

        token = issuer.store.get(issued.id)
        db.refresh(token)
        assert token.access_count == 2
        assert token.last_accessed_at is not None

    def test_list_for_subject(self, db: Session, clock):
        guest_list = create_guest_list(db)
        first = create_token(db, guest_list=guest_list, clock=clock)
        second = create_token(db, guest_list=guest_list, clock=clock)
        create_token(db, clock=clock)

        tokens = TokenIssuer(db).store.list_for_subject("guest_list", guest_list.id)

        assert {t.id for t in tokens} == {first.id, second.id}
