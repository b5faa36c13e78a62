"""
Boundary operations of the public invitation flow.

InvitationService wires the token issuer, invitation chain, code verifier,
RSVP state machine and access gate over one database session. Route handlers
and the CLI talk to this class only.
"""

import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.models.access_token import AccessToken
from app.models.rsvp_response import RSVPResponse
from app.services.access.access_gate import AccessGate, Projection
from app.services.access.assertions import VerifiedAssertion
from app.services.access.audit import record_audit
from app.services.access.clock import Clock, utcnow
from app.services.access.context import RequestContext
from app.services.access.errors import InvalidRequest
from app.services.access.invitation_chain import InvitationChain, PartyInfo
from app.services.access.otp_verifier import OTPIssued, OTPVerifier
from app.services.access.rsvp import RSVPDetails, RSVPStateMachine
from app.services.access.token_issuer import IssuedToken, SubjectType, TokenIssuer, TokenKind
from app.services.notifications import (
    TEMPLATE_SHARE_INVITATION,
    DeliveryFailed,
    NotificationSender,
)
from app.services.subjects import SubjectStore

logger = logging.getLogger(__name__)


class InvitationService:
    """Facade over the access components for one request."""

    def __init__(
        self,
        db: Session,
        notifier: NotificationSender,
        clock: Clock = utcnow,
        max_depth: Optional[int] = None,
        max_forwards: Optional[int] = None,
    ):
        self.db = db
        self.notifier = notifier
        self.clock = clock
        self.subjects = SubjectStore(db)
        self.issuer = TokenIssuer(db, clock=clock)
        self.chain = InvitationChain(
            db,
            self.issuer,
            notifier,
            clock=clock,
            subjects=self.subjects,
            max_depth=max_depth,
            max_forwards=max_forwards,
        )
        self.otp = OTPVerifier(db, self.issuer, notifier, clock=clock, subjects=self.subjects)
        self.rsvp = RSVPStateMachine(
            db, self.issuer, notifier, clock=clock, subjects=self.subjects
        )
        self.gate = AccessGate(
            db,
            self.issuer,
            subjects=self.subjects,
            rsvp_status_lookup=self.rsvp.status_for,
            max_depth=self.chain.max_depth,
        )

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    def resolve(self, secret: str) -> Projection:
        return self.gate.resolve(secret)

    def forward(
        self,
        secret: str,
        forwarder: PartyInfo,
        recipient: PartyInfo,
        context: Optional[RequestContext] = None,
    ) -> IssuedToken:
        return self.chain.forward(secret, forwarder, recipient, context=context)

    def issue_otp(self, secret: str, context: Optional[RequestContext] = None) -> OTPIssued:
        token = self.issuer.validate(secret)
        return self.otp.issue(token.id, context=context)

    def verify_otp(
        self, secret: str, code: str, context: Optional[RequestContext] = None
    ) -> VerifiedAssertion:
        token = self.issuer.validate(secret)
        return self.otp.verify(token.id, code, context=context)

    def submit_rsvp(
        self,
        assertion: VerifiedAssertion,
        status: str,
        secret: Optional[str] = None,
        details: Optional[RSVPDetails] = None,
        context: Optional[RequestContext] = None,
    ) -> RSVPResponse:
        token_id = self.issuer.validate(secret).id if secret is not None else None
        return self.rsvp.submit(
            assertion, status, token_id=token_id, details=details, context=context
        )

    # -------------------------------------------------------------------------
    # Staff operations
    # -------------------------------------------------------------------------

    def create_share(
        self,
        guest_list_id: int,
        recipient: PartyInfo,
        kind: str = TokenKind.SHARE.value,
        ttl: Optional[timedelta] = None,
        context: Optional[RequestContext] = None,
    ) -> IssuedToken:
        """
        Mint a root token for a guest list addressed to one recipient, adding
        the recipient to the list, and email them the link.
        """
        recipient = recipient.cleaned()
        if "@" not in recipient.email or not 5 <= len(recipient.email) <= 254:
            raise InvalidRequest("Invalid email address")
        guest_list = self.subjects.get_guest_list(guest_list_id)
        if guest_list is None:
            raise InvalidRequest("Guest list not found")

        # Token, membership and audit row commit together or not at all
        try:
            contact = self.subjects.find_or_create_contact(
                email=recipient.email,
                name=recipient.name or recipient.email.split("@", 1)[0],
                organisation_name=recipient.company,
                source="share",
            )
            self.subjects.ensure_guest_list_item(guest_list.id, contact.id)
            issued = self.issuer.stage(
                subject_id=guest_list.id,
                kind=kind,
                ttl=ttl,
                subject_type=SubjectType.GUEST_LIST.value,
                contact_id=contact.id,
            )
            record_audit(
                self.db,
                action="create",
                resource_type="access_tokens",
                resource_id=issued.id,
                context=context,
                details={"guest_list_id": guest_list.id, "contact_id": contact.id, "kind": kind},
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.issuer.log_issued(issued)

        try:
            self.notifier.send(
                to=contact.email,
                template=TEMPLATE_SHARE_INVITATION,
                fields={
                    "recipient_name": contact.first_name,
                    "list_name": guest_list.name,
                    "event_name": guest_list.event_name,
                    "share_url": issued.share_url,
                    "expires_at": issued.expires_at.date().isoformat(),
                },
            )
        except DeliveryFailed as e:
            logger.warning("Share notification for token %s not delivered: %s", issued.id, e)
        return issued

    def revoke(self, token_id: int, context: Optional[RequestContext] = None) -> bool:
        changed = self.issuer.revoke(token_id)
        if changed:
            record_audit(
                self.db,
                action="revoke",
                resource_type="access_tokens",
                resource_id=token_id,
                context=context,
            )
            self.db.commit()
        return changed

    def ancestry(self, token_id: int) -> List[AccessToken]:
        return self.chain.ancestry(token_id)

    def tokens_for_guest_list(self, guest_list_id: int) -> List[AccessToken]:
        return self.issuer.store.list_for_subject(SubjectType.GUEST_LIST.value, guest_list_id)
