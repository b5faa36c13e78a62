"""One-time code challenges gating the RSVP write path."""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.otp_challenge import OTPChallenge
from app.services.access.assertions import VerifiedAssertion
from app.services.access.audit import record_audit
from app.services.access.clock import Clock, as_utc, utcnow
from app.services.access.context import RequestContext
from app.services.access.errors import (
    ChallengeExpired,
    InvalidCode,
    NoActiveChallenge,
    NoRecipient,
    OTPRateLimited,
    TooManyAttempts,
)
from app.services.access.token_issuer import TokenIssuer
from app.services.notifications import TEMPLATE_OTP_CODE, DeliveryFailed, NotificationSender
from app.services.subjects import SubjectStore, mask_email

logger = logging.getLogger(__name__)

CODE_DIGITS = 6


@dataclass(frozen=True)
class OTPIssued:
    """Acknowledgement of a sent code. Never carries the code itself."""

    challenge_id: int
    masked_email: str
    expires_at: datetime
    expires_in_minutes: int


class OTPVerifier:
    """
    Issues and checks six digit codes bound to a token.

    Concurrency rules:
    - attempts is incremented with a conditional UPDATE, so parallel guesses
      cannot exceed the attempt limit;
    - consumed flips false -> true with a conditional UPDATE, so exactly one
      of several concurrent correct submissions gets an assertion;
    - a partial unique index allows one open challenge per token.
    """

    def __init__(
        self,
        db: Session,
        issuer: TokenIssuer,
        notifier: NotificationSender,
        clock: Clock = utcnow,
        subjects: Optional[SubjectStore] = None,
    ):
        self.db = db
        self.issuer = issuer
        self.notifier = notifier
        self.clock = clock
        self.subjects = subjects or SubjectStore(db)

        self.ttl = timedelta(seconds=settings.otp_ttl_seconds)
        self.max_attempts = settings.otp_max_attempts
        self.cooldown = timedelta(seconds=settings.otp_issue_cooldown_seconds)
        self.window = timedelta(seconds=settings.otp_issue_window_seconds)
        self.window_limit = settings.otp_issue_window_limit

    # -------------------------------------------------------------------------
    # Issue
    # -------------------------------------------------------------------------

    def issue(self, token_id: int, context: Optional[RequestContext] = None) -> OTPIssued:
        """
        Send a fresh code for a token, closing any open challenge.

        Raises:
            TokenNotFound, TokenExpired, TokenRevoked: token is not usable
            NoRecipient: token is not addressed to a contact
            OTPRateLimited: cooldown or per-window limit hit
        """
        token = self.issuer.ensure_active(token_id)
        contact = self.subjects.get_contact(token.issued_for_contact_id)
        if contact is None:
            raise NoRecipient()

        now = self.clock()
        self._check_rate_limits(token.id, now)

        code = self._generate_code()
        challenge = OTPChallenge(
            token_id=token.id,
            code_hash=self._hash_code(code),
            email=contact.email,
            created_at=now,
            expires_at=now + self.ttl,
            attempts=0,
            consumed=False,
            ip_address=context.ip_address if context else None,
        )
        try:
            # Close the previous challenge and open the new one in one transaction
            self.db.execute(
                update(OTPChallenge)
                .where(OTPChallenge.token_id == token.id, OTPChallenge.consumed.is_(False))
                .values(consumed=True)
            )
            self.db.add(challenge)
            self.db.commit()
        except IntegrityError:
            # Another issue() for this token won the race
            self.db.rollback()
            raise OTPRateLimited(retry_after=self.cooldown.total_seconds())

        logger.info("Issued verification code challenge %s for token %s", challenge.id, token.id)

        try:
            self.notifier.send(
                to=contact.email,
                template=TEMPLATE_OTP_CODE,
                fields={
                    "recipient_name": contact.first_name,
                    "code": code,
                    "expires_minutes": int(self.ttl.total_seconds() // 60),
                },
            )
        except DeliveryFailed as e:
            logger.warning("Verification code for token %s not delivered: %s", token.id, e)

        return OTPIssued(
            challenge_id=challenge.id,
            masked_email=mask_email(contact.email),
            expires_at=as_utc(challenge.expires_at),
            expires_in_minutes=int(self.ttl.total_seconds() // 60),
        )

    def _check_rate_limits(self, token_id: int, now: datetime) -> None:
        latest = self._latest_challenge(token_id)
        if latest is not None:
            elapsed = now - as_utc(latest.created_at)
            if elapsed < self.cooldown:
                raise OTPRateLimited(retry_after=(self.cooldown - elapsed).total_seconds())

        window_start = now - self.window
        recent_count, oldest = (
            self.db.query(func.count(OTPChallenge.id), func.min(OTPChallenge.created_at))
            .filter(
                OTPChallenge.token_id == token_id,
                OTPChallenge.created_at > window_start,
            )
            .one()
        )
        if recent_count >= self.window_limit:
            retry_after = (as_utc(oldest) + self.window - now).total_seconds()
            raise OTPRateLimited(retry_after=retry_after)

    # -------------------------------------------------------------------------
    # Verify
    # -------------------------------------------------------------------------

    def verify(
        self,
        token_id: int,
        code: str,
        context: Optional[RequestContext] = None,
    ) -> VerifiedAssertion:
        """
        Check a code against the token's open challenge.

        Raises:
            NoActiveChallenge: nothing open (never issued, or superseded)
            ChallengeExpired: open challenge is past its expiry
            TooManyAttempts: attempt limit reached; issue a new code
            InvalidCode: wrong code, or a replay of an already used code
        """
        challenge = self._latest_challenge(token_id)
        if challenge is None:
            raise NoActiveChallenge()
        if challenge.consumed:
            if challenge.verified_at is not None:
                # Code already used successfully
                raise InvalidCode(remaining=0)
            raise NoActiveChallenge()

        now = self.clock()
        if now >= as_utc(challenge.expires_at):
            raise ChallengeExpired()
        if challenge.attempts >= self.max_attempts:
            raise TooManyAttempts()

        if not self._claim_attempt(challenge.id):
            self.db.refresh(challenge)
            if challenge.consumed:
                raise InvalidCode(remaining=0)
            raise TooManyAttempts()
        self.db.refresh(challenge)
        remaining = self.max_attempts - challenge.attempts

        if not self._check_code(code, challenge.code_hash):
            record_audit(
                self.db,
                action="otp_failed",
                resource_type="access_tokens",
                resource_id=token_id,
                status="failure",
                context=context,
                details={"challenge_id": challenge.id, "attempts": challenge.attempts},
            )
            self.db.commit()
            logger.info(
                "Wrong verification code for token %s (attempt %s of %s)",
                token_id,
                challenge.attempts,
                self.max_attempts,
            )
            raise InvalidCode(remaining=remaining)

        if not self._consume(challenge.id, now):
            # A concurrent verification with the same code won
            raise InvalidCode(remaining=0)

        token = self.issuer.store.get(token_id)
        record_audit(
            self.db,
            action="otp_verified",
            resource_type="access_tokens",
            resource_id=token_id,
            context=context,
            details={"challenge_id": challenge.id},
        )
        self.db.commit()
        logger.info("Verified email for token %s", token_id)

        return VerifiedAssertion(
            token_id=token_id,
            contact_id=token.issued_for_contact_id,
            verified_at=now,
            challenge_id=challenge.id,
        )

    def sweep_expired(self) -> int:
        """
        Close open challenges that have expired. Bookkeeping only; verify()
        enforces expiry on its own.

        Returns:
            Number of challenges closed
        """
        result = self.db.execute(
            update(OTPChallenge)
            .where(
                OTPChallenge.consumed.is_(False),
                OTPChallenge.expires_at <= self.clock(),
            )
            .values(consumed=True)
            .execution_options(synchronize_session="fetch")
        )
        self.db.commit()
        return result.rowcount

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _latest_challenge(self, token_id: int) -> Optional[OTPChallenge]:
        return (
            self.db.query(OTPChallenge)
            .filter(OTPChallenge.token_id == token_id)
            .order_by(OTPChallenge.created_at.desc(), OTPChallenge.id.desc())
            .populate_existing()
            .first()
        )

    def _claim_attempt(self, challenge_id: int) -> bool:
        """Atomically count an attempt. False if the challenge is closed or exhausted."""
        result = self.db.execute(
            update(OTPChallenge)
            .where(
                OTPChallenge.id == challenge_id,
                OTPChallenge.consumed.is_(False),
                OTPChallenge.attempts < self.max_attempts,
            )
            .values(attempts=OTPChallenge.attempts + 1)
        )
        self.db.commit()
        return result.rowcount == 1

    def _consume(self, challenge_id: int, when: datetime) -> bool:
        """Compare-and-set consumed. True only for the single winning caller."""
        result = self.db.execute(
            update(OTPChallenge)
            .where(OTPChallenge.id == challenge_id, OTPChallenge.consumed.is_(False))
            .values(consumed=True, verified_at=when)
        )
        self.db.commit()
        return result.rowcount == 1

    @staticmethod
    def _generate_code() -> str:
        """Uniformly random zero-padded six digit code."""
        return f"{secrets.randbelow(10 ** CODE_DIGITS):0{CODE_DIGITS}d}"

    @staticmethod
    def _hash_code(code: str) -> str:
        return bcrypt.hashpw(
            code.encode("utf-8"), bcrypt.gensalt(rounds=settings.otp_hash_rounds)
        ).decode("utf-8")

    @staticmethod
    def _check_code(code: str, code_hash: str) -> bool:
        candidate = (code or "").strip().replace(" ", "")
        if len(candidate) != CODE_DIGITS or not candidate.isdigit():
            return False
        return bcrypt.checkpw(candidate.encode("utf-8"), code_hash.encode("utf-8"))
