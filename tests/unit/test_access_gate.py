"""
Unit tests for AccessGate.

Tests resolution of secrets to read-only projections.
"""
from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from app.models import GuestList
from app.services.access.errors import TokenExpired, TokenNotFound, TokenRevoked
from app.services.access.invitation_chain import PartyInfo
from tests.factories import add_guest, create_contact, create_guest_list, create_token


class TestResolve:
    """Tests for resolve()."""

    def test_projection_of_guest_list(self, db: Session, service, clock):
        guest_list = create_guest_list(db, name="Winter Gala")
        contact = create_contact(db, email="alice@example.com", first_name="Alice")
        add_guest(db, guest_list, contact)
        issued = create_token(db, guest_list=guest_list, contact=contact, clock=clock)

        projection = service.resolve(issued.secret)

        assert projection.token_id == issued.id
        assert projection.kind == "share"
        assert projection.depth == 0
        assert projection.can_forward is True
        assert projection.requires_verification is True
        assert projection.recipient_name == "Alice"
        assert projection.masked_email == "al***@example.com"
        assert projection.rsvp_status == "pending"
        assert projection.subject.type == "guest_list"
        assert projection.subject.name == "Winter Gala"
        assert projection.subject.plus_ones_enabled is True
        assert [g.name for g in projection.subject.guests] == ["Alice Example"]

    def test_projection_never_exposes_guest_emails(self, db: Session, service, clock):
        issued = create_token(db, clock=clock)

        dumped = service.resolve(issued.secret).model_dump_json()

        assert "@example.com" not in dumped.replace("***@example.com", "")
        assert issued.secret not in dumped

    def test_resolve_counts_access(self, db: Session, service, clock):
        issued = create_token(db, clock=clock)

        service.resolve(issued.secret)
        service.resolve(issued.secret)

        token = service.issuer.store.get(issued.id)
        db.refresh(token)
        assert token.access_count == 2

    def test_expired_after_forty_days(self, db: Session, service, clock):
        issued = create_token(db, ttl=timedelta(days=30), clock=clock)

        clock.advance(days=40)
        with pytest.raises(TokenExpired):
            service.resolve(issued.secret)

    def test_revoked(self, db: Session, service, clock):
        issued = create_token(db, clock=clock)
        service.revoke(issued.id)

        with pytest.raises(TokenRevoked):
            service.resolve(issued.secret)

    def test_deleted_subject(self, db: Session, service, clock):
        guest_list = create_guest_list(db)
        issued = create_token(db, guest_list=guest_list, clock=clock)
        db.query(GuestList).filter(GuestList.id == guest_list.id).delete()
        db.commit()

        with pytest.raises(TokenNotFound):
            service.resolve(issued.secret)

    def test_rsvp_kind_cannot_forward(self, db: Session, service, clock):
        issued = create_token(db, kind="rsvp", clock=clock)

        assert service.resolve(issued.secret).can_forward is False

    def test_deepest_token_cannot_forward(self, db: Session, service, clock):
        current = create_token(db, clock=clock)
        for n in range(1, 6):
            current = service.forward(
                current.secret,
                PartyInfo(f"Guest {n - 1}", f"guest{n - 1}@example.com"),
                PartyInfo(f"Guest {n}", f"guest{n}@example.com"),
            )

        projection = service.resolve(current.secret)
        assert projection.depth == 5
        assert projection.can_forward is False

    def test_status_reflects_response(self, db: Session, service, notifier, clock):
        issued = create_token(db, clock=clock)
        service.otp.issue(issued.id)
        assertion = service.otp.verify(issued.id, notifier.last_code())
        service.rsvp.submit(assertion, "attending")

        assert service.resolve(issued.secret).rsvp_status == "attending"
