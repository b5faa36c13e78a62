"""RSVP responses, accepted only with a recent verified assertion."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.contact import Contact
from app.models.guest_list import GuestList
from app.models.rsvp_response import RSVPResponse, RSVPStatus
from app.services.access.assertions import VerifiedAssertion
from app.services.access.audit import record_audit
from app.services.access.clock import Clock, as_utc, utcnow
from app.services.access.context import RequestContext
from app.services.access.errors import (
    AssertionExpired,
    InvalidAssertion,
    InvalidRequest,
    RSVPClosed,
)
from app.services.access.token_issuer import SubjectType, TokenIssuer
from app.services.notifications import (
    TEMPLATE_RSVP_CONFIRMATION,
    DeliveryFailed,
    NotificationSender,
)
from app.services.subjects import SubjectStore

logger = logging.getLogger(__name__)

# Tolerated clock drift between verifying and submitting nodes
CLOCK_SKEW = timedelta(seconds=30)


@dataclass(frozen=True)
class RSVPDetails:
    """Optional extras submitted with a response."""

    comments: Optional[str] = None
    plus_one_name: Optional[str] = None
    plus_one_email: Optional[str] = None


class RSVPStateMachine:
    """
    Pending -> Responded{attending|declined}.

    There is one row per (token, contact). Resubmitting updates that row; no
    transition back to pending is offered.
    """

    def __init__(
        self,
        db: Session,
        issuer: TokenIssuer,
        notifier: Optional[NotificationSender] = None,
        clock: Clock = utcnow,
        subjects: Optional[SubjectStore] = None,
    ):
        self.db = db
        self.issuer = issuer
        self.notifier = notifier
        self.clock = clock
        self.subjects = subjects or SubjectStore(db)
        self.window = timedelta(seconds=settings.assertion_window_seconds)

    def submit(
        self,
        assertion: VerifiedAssertion,
        status: str,
        token_id: Optional[int] = None,
        details: Optional[RSVPDetails] = None,
        context: Optional[RequestContext] = None,
    ) -> RSVPResponse:
        """
        Record a response.

        An attending response may bring a plus-one, who is added to the
        guest list as a pending contact. A declined response clears any
        plus-one recorded earlier.

        Args:
            assertion: Credential from a successful code verification
            status: 'attending' or 'declined'
            token_id: Token the response is being made through, if known;
                must match the assertion
            details: Comments and plus-one information

        Raises:
            InvalidRequest: status is not a response state, or the plus-one
                details are incomplete or not allowed for this list
            InvalidAssertion: assertion belongs to another token or recipient
            AssertionExpired: assertion is older than the accepted window
            TokenExpired, TokenRevoked, TokenNotFound: token is not usable
            RSVPClosed: guest list no longer accepts responses
        """
        new_status = self._parse_status(status)

        if token_id is not None and token_id != assertion.token_id:
            raise InvalidAssertion()

        now = self.clock()
        verified_at = as_utc(assertion.verified_at)
        if verified_at > now + CLOCK_SKEW or now - verified_at > self.window:
            raise AssertionExpired()

        token = self.issuer.ensure_active(assertion.token_id)
        if token.issued_for_contact_id != assertion.contact_id:
            raise InvalidAssertion()

        guest_list = None
        if token.subject_type == SubjectType.GUEST_LIST.value:
            guest_list = self.subjects.get_guest_list(token.subject_id)
            if guest_list is not None and not guest_list.rsvp_enabled:
                raise RSVPClosed()

        responder = self.subjects.get_contact(assertion.contact_id)
        details = self._check_details(details or RSVPDetails(), guest_list, responder)
        if new_status != RSVPStatus.ATTENDING:
            details = RSVPDetails(comments=details.comments)

        try:
            response = self._upsert(token.id, assertion, new_status, details, now)
            if guest_list is not None:
                self.subjects.set_invite_status(
                    guest_list.id, assertion.contact_id, new_status.value
                )
            plus_one = self._add_plus_one(details, guest_list, responder)
            record_audit(
                self.db,
                action="rsvp_submitted",
                resource_type="rsvp_responses",
                resource_id=response.id,
                context=context,
                details={
                    "token_id": token.id,
                    "status": new_status.value,
                    "response_count": response.response_count,
                    "plus_one_contact_id": plus_one.id if plus_one else None,
                },
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(response)

        logger.info(
            "RSVP %s recorded for token %s (submission %s)",
            new_status.value,
            token.id,
            response.response_count,
        )
        if new_status == RSVPStatus.ATTENDING:
            self._notify(response, guest_list, responder)
        return response

    def status_for(self, token_id: int, contact_id: Optional[int]) -> RSVPStatus:
        """Current state; pending when nothing has been submitted."""
        if contact_id is None:
            return RSVPStatus.PENDING
        response = self._find(token_id, contact_id)
        if response is None:
            return RSVPStatus.PENDING
        return RSVPStatus(response.status)

    def _upsert(
        self,
        token_id: int,
        assertion: VerifiedAssertion,
        status: RSVPStatus,
        details: RSVPDetails,
        now,
    ) -> RSVPResponse:
        response = self._find(token_id, assertion.contact_id)
        if response is None:
            response = RSVPResponse(
                token_id=token_id,
                contact_id=assertion.contact_id,
                status=RSVPStatus.PENDING.value,
                verified_at=assertion.verified_at,
                response_count=0,
            )
            try:
                with self.db.begin_nested():
                    self.db.add(response)
            except IntegrityError:
                # A concurrent first submission created the row; update it instead
                response = self._find(token_id, assertion.contact_id)
                if response is None:
                    raise

        if as_utc(assertion.verified_at) > as_utc(response.verified_at):
            response.verified_at = assertion.verified_at
        response.status = status.value
        response.responded_at = now
        response.response_count = (response.response_count or 0) + 1
        response.comments = details.comments
        response.plus_one_name = details.plus_one_name
        response.plus_one_email = details.plus_one_email
        return response

    def _find(self, token_id: int, contact_id: int) -> Optional[RSVPResponse]:
        return (
            self.db.query(RSVPResponse)
            .filter(
                RSVPResponse.token_id == token_id,
                RSVPResponse.contact_id == contact_id,
            )
            .first()
        )

    @staticmethod
    def _parse_status(status: str) -> RSVPStatus:
        try:
            parsed = RSVPStatus(status)
        except ValueError:
            raise InvalidRequest("Response must be 'attending' or 'declined'")
        if parsed == RSVPStatus.PENDING:
            raise InvalidRequest("Response must be 'attending' or 'declined'")
        return parsed

    @staticmethod
    def _check_details(
        details: RSVPDetails, guest_list: Optional[GuestList], responder: Optional[Contact]
    ) -> RSVPDetails:
        """Normalise plus-one input; a name or an email alone is incomplete."""
        comments = (details.comments or "").strip() or None
        name = (details.plus_one_name or "").strip()
        email = (details.plus_one_email or "").strip().lower()
        if not name and not email:
            return RSVPDetails(comments=comments)

        if guest_list is not None and not guest_list.plus_ones_enabled:
            raise InvalidRequest("Plus-ones are not available for this event")
        if not name:
            raise InvalidRequest("Plus-one name is required")
        if "@" not in email:
            raise InvalidRequest("Valid plus-one email is required")
        if responder is not None and email == responder.email:
            raise InvalidRequest("Your plus-one needs their own email address")
        return RSVPDetails(comments=comments, plus_one_name=name, plus_one_email=email)

    def _add_plus_one(
        self,
        details: RSVPDetails,
        guest_list: Optional[GuestList],
        responder: Optional[Contact],
    ) -> Optional[Contact]:
        if not details.plus_one_email:
            return None
        plus_one = self.subjects.find_or_create_contact(
            email=details.plus_one_email,
            name=details.plus_one_name,
            source="rsvp_plus_one",
        )
        if guest_list is not None:
            self.subjects.ensure_guest_list_item(
                guest_list.id,
                plus_one.id,
                invited_by=responder.full_name if responder else None,
            )
        return plus_one

    def _notify(
        self,
        response: RSVPResponse,
        guest_list: Optional[GuestList],
        contact: Optional[Contact],
    ) -> None:
        if self.notifier is None or contact is None:
            return
        fields = {
            "recipient_name": contact.first_name,
            "status": response.status,
            "plus_one_name": response.plus_one_name,
            "event_name": (guest_list.event_name or guest_list.name) if guest_list else "",
            "event_date": guest_list.event_date if guest_list else None,
            "event_time": guest_list.event_time if guest_list else None,
            "event_location": guest_list.event_location if guest_list else None,
        }
        try:
            self.notifier.send(
                to=contact.email,
                template=TEMPLATE_RSVP_CONFIRMATION,
                fields=fields,
                bcc=guest_list.bcc_emails if guest_list else None,
            )
        except DeliveryFailed as e:
            logger.warning("RSVP confirmation for %s not delivered: %s", response.id, e)
