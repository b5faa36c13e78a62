"""Read path: resolve a token secret to a read-only projection."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy.orm import Session

from app.config import settings
from app.services.access.clock import as_utc
from app.services.access.errors import TokenNotFound
from app.services.access.token_issuer import TokenIssuer
from app.services.subjects import SubjectSnapshot, SubjectStore, mask_email


class Projection(BaseModel):
    """What a link holder is allowed to see."""

    model_config = ConfigDict(frozen=True)

    token_id: int
    kind: str
    depth: int
    expires_at: datetime
    can_forward: bool
    requires_verification: bool
    recipient_name: Optional[str] = None
    masked_email: Optional[str] = None
    rsvp_status: str
    subject: SubjectSnapshot


class AccessGate:
    """
    Thin wrapper over TokenIssuer.validate that also loads the subject.

    Every call re-validates the token; nothing about its validity is cached.
    """

    def __init__(
        self,
        db: Session,
        issuer: TokenIssuer,
        subjects: Optional[SubjectStore] = None,
        rsvp_status_lookup=None,
        max_depth: Optional[int] = None,
    ):
        self.db = db
        self.issuer = issuer
        self.subjects = subjects or SubjectStore(db)
        self.rsvp_status_lookup = rsvp_status_lookup
        self.max_depth = max_depth if max_depth is not None else settings.max_chain_depth

    def resolve(self, secret: str) -> Projection:
        """
        Raises:
            TokenNotFound, TokenExpired, TokenRevoked: token is not usable,
            or its subject no longer exists (TokenNotFound)
        """
        token = self.issuer.validate(secret)

        snapshot = self.subjects.snapshot(token.subject_type, token.subject_id)
        if snapshot is None:
            raise TokenNotFound()

        self.issuer.store.record_access(token.id, self.issuer.clock())
        self.db.commit()

        recipient = self.subjects.get_contact(token.issued_for_contact_id)
        rsvp_status = "pending"
        if self.rsvp_status_lookup is not None:
            rsvp_status = self.rsvp_status_lookup(token.id, token.issued_for_contact_id).value

        return Projection(
            token_id=token.id,
            kind=token.kind,
            depth=token.depth,
            expires_at=as_utc(token.expires_at),
            can_forward=token.kind == "share" and token.depth < self.max_depth,
            requires_verification=recipient is not None,
            recipient_name=recipient.first_name if recipient else None,
            masked_email=mask_email(recipient.email) if recipient else None,
            rsvp_status=rsvp_status,
            subject=snapshot,
        )
