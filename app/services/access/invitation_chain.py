"""Forwarding of share tokens to new recipients."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.access_token import AccessToken
from app.services.access.audit import record_audit
from app.services.access.clock import Clock, utcnow
from app.services.access.context import RequestContext
from app.services.access.errors import (
    ChainDepthExceeded,
    FanOutExceeded,
    InvalidRequest,
    NotForwardable,
    TokenNotFound,
)
from app.services.access.token_issuer import IssuedToken, SubjectType, TokenIssuer, TokenKind
from app.services.notifications import (
    TEMPLATE_INVITATION_FORWARD,
    DeliveryFailed,
    NotificationSender,
)
from app.services.subjects import SubjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PartyInfo:
    """Name and email of a forwarder or recipient as they typed it."""

    name: str
    email: str
    company: Optional[str] = None

    def cleaned(self) -> "PartyInfo":
        return PartyInfo(
            name=(self.name or "").strip(),
            email=(self.email or "").strip().lower(),
            company=(self.company or "").strip() or None,
        )


class InvitationChain:
    """
    Lets a valid share token produce a child token for someone else.

    Tokens form a forest through parent_token_id. The link is written once
    when the child is created, so no cycle check is needed.
    """

    def __init__(
        self,
        db: Session,
        issuer: TokenIssuer,
        notifier: NotificationSender,
        clock: Clock = utcnow,
        subjects: Optional[SubjectStore] = None,
        max_depth: Optional[int] = None,
        max_forwards: Optional[int] = None,
    ):
        self.db = db
        self.issuer = issuer
        self.notifier = notifier
        self.clock = clock
        self.subjects = subjects or SubjectStore(db)
        self.max_depth = max_depth if max_depth is not None else settings.max_chain_depth
        self.max_forwards = (
            max_forwards if max_forwards is not None else settings.max_forwards_per_token
        )

    def forward(
        self,
        parent_secret: str,
        forwarder: PartyInfo,
        recipient: PartyInfo,
        ttl: Optional[timedelta] = None,
        context: Optional[RequestContext] = None,
    ) -> IssuedToken:
        """
        Create a child token for ``recipient``.

        The child inherits the parent's subject, sits one level deeper and
        gets a fresh lifetime.

        Raises:
            TokenNotFound, TokenExpired, TokenRevoked: parent is not usable
            InvalidRequest: forwarder or recipient details are invalid
            ChainDepthExceeded: child would be deeper than max_depth
            NotForwardable: parent is not a share token
            FanOutExceeded: parent already has max_forwards children
        """
        parent = self.issuer.validate(parent_secret)
        if parent.kind != TokenKind.SHARE.value:
            raise NotForwardable()

        forwarder = forwarder.cleaned()
        recipient = recipient.cleaned()
        self._check_parties(forwarder, recipient)

        if parent.depth + 1 > self.max_depth:
            logger.info(
                "Forward refused for token %s: depth %s at limit %s",
                parent.id,
                parent.depth,
                self.max_depth,
            )
            raise ChainDepthExceeded()

        try:
            # Claiming the parent write-locks it, so a concurrent revoke
            # either lands before this point or after the child exists.
            if not self.issuer.store.claim_forward(parent.id, self.max_forwards):
                current = self.issuer.store.reload(parent.id)
                if current is None:
                    raise TokenNotFound()
                self.issuer.check_state(current)
                raise FanOutExceeded()
            claimed = self.issuer.store.reload(parent.id)
            self.issuer.check_state(claimed)

            contact = self.subjects.find_or_create_contact(
                email=recipient.email,
                name=recipient.name,
                organisation_name=recipient.company,
                source="rsvp_forward",
            )
            child = self.issuer.issue_child(
                claimed,
                contact_id=contact.id,
                ttl=ttl,
                forwarded_by_name=forwarder.name,
                forwarded_by_email=forwarder.email,
            )
            if claimed.subject_type == SubjectType.GUEST_LIST.value:
                self.subjects.ensure_guest_list_item(
                    claimed.subject_id, contact.id, invited_by=forwarder.name
                )
            record_audit(
                self.db,
                action="rsvp_forward",
                resource_type="access_tokens",
                resource_id=child.id,
                context=context,
                details={
                    "parent_token_id": claimed.id,
                    "depth": child.token.depth,
                    "contact_id": contact.id,
                    "forwarder_name": forwarder.name,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Token %s forwarded as token %s (depth %s)",
            parent.id,
            child.id,
            child.token.depth,
        )
        self._notify(child, forwarder, recipient)
        return child

    def ancestry(self, token_id: int) -> List[AccessToken]:
        """Provenance of a token, root first."""
        token = self.issuer.store.get(token_id)
        if token is None:
            raise TokenNotFound()
        return self.issuer.store.ancestry(token)

    def _check_parties(self, forwarder: PartyInfo, recipient: PartyInfo) -> None:
        if not forwarder.name:
            raise InvalidRequest("Your name is required")
        if "@" not in forwarder.email:
            raise InvalidRequest("Valid email is required")
        if not recipient.name:
            raise InvalidRequest("Their name is required")
        if "@" not in recipient.email:
            raise InvalidRequest("Valid email is required for the recipient")
        if forwarder.email == recipient.email:
            raise InvalidRequest("You can't forward an invitation to yourself")

    def _notify(self, child: IssuedToken, forwarder: PartyInfo, recipient: PartyInfo) -> None:
        fields = {
            "recipient_name": recipient.name,
            "forwarder_name": forwarder.name,
            "forwarder_email": forwarder.email,
            "share_url": child.share_url,
            "expires_at": child.expires_at.isoformat(),
        }
        if child.token.subject_type == SubjectType.GUEST_LIST.value:
            guest_list = self.subjects.get_guest_list(child.token.subject_id)
            if guest_list is not None:
                fields.update(
                    {
                        "event_name": guest_list.event_name or guest_list.name,
                        "event_date": guest_list.event_date,
                        "event_time": guest_list.event_time,
                        "event_location": guest_list.event_location,
                    }
                )
        try:
            self.notifier.send(
                to=recipient.email,
                template=TEMPLATE_INVITATION_FORWARD,
                fields=fields,
                cc=[forwarder.email],
            )
        except DeliveryFailed as e:
            logger.warning("Forward notification for token %s not delivered: %s", child.id, e)
