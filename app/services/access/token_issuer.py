"""Minting, validation and revocation of access tokens."""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.access_token import AccessToken
from app.services.access.clock import Clock, as_utc, utcnow
from app.services.access.errors import TokenExpired, TokenNotFound, TokenRevoked
from app.services.access.token_store import TokenStore

logger = logging.getLogger(__name__)


class TokenKind(str, Enum):
    SHARE = "share"
    RSVP = "rsvp"


class SubjectType(str, Enum):
    GUEST_LIST = "guest_list"
    CONTACT = "contact"


LINK_PATHS = {
    TokenKind.SHARE: "shared",
    TokenKind.RSVP: "rsvp",
}


def generate_secret() -> str:
    """Generate a 256-bit URL-safe token secret."""
    return secrets.token_urlsafe(32)


def hash_secret(secret: str) -> str:
    """Keyed SHA-256 of a secret; the only form that is persisted."""
    return hmac.new(
        settings.token_hash_key.encode("utf-8"),
        secret.encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def build_link(secret: str, kind: str) -> str:
    """Public URL that embeds the plaintext secret."""
    path = LINK_PATHS[TokenKind(kind)]
    return f"{settings.public_base_url.rstrip('/')}/{path}/{secret}"


def default_ttl(kind: str) -> timedelta:
    if TokenKind(kind) == TokenKind.RSVP:
        return timedelta(days=settings.rsvp_token_ttl_days)
    return timedelta(days=settings.share_token_ttl_days)


@dataclass(frozen=True)
class IssuedToken:
    """A freshly minted token together with its one-time plaintext secret."""

    token: AccessToken
    secret: str
    share_url: str

    @property
    def id(self) -> int:
        return self.token.id

    @property
    def expires_at(self) -> datetime:
        return as_utc(self.token.expires_at)


class TokenIssuer:
    """
    Creates and validates tokens against the token store.

    Validation is never cached: every call reads the current row, so a
    revocation takes effect on the next access.
    """

    def __init__(self, db: Session, clock: Clock = utcnow, store: Optional[TokenStore] = None):
        self.db = db
        self.clock = clock
        self.store = store or TokenStore(db)

    def create(
        self,
        subject_id: int,
        kind: str = TokenKind.SHARE.value,
        ttl: Optional[timedelta] = None,
        subject_type: str = SubjectType.GUEST_LIST.value,
        contact_id: Optional[int] = None,
    ) -> IssuedToken:
        """
        Mint a root token (depth 0) and commit it.

        Args:
            subject_id: Guest list or contact the token grants access to
            kind: 'share' or 'rsvp'
            ttl: Lifetime (defaults per kind from settings)
            subject_type: 'guest_list' or 'contact'
            contact_id: Recipient contact the link is addressed to

        Returns:
            IssuedToken carrying the plaintext secret. The secret is not
            recoverable afterwards.
        """
        issued = self.stage(
            subject_id=subject_id,
            kind=kind,
            ttl=ttl,
            subject_type=subject_type,
            contact_id=contact_id,
        )
        self.db.commit()
        self.log_issued(issued)
        return issued

    def stage(
        self,
        subject_id: int,
        kind: str = TokenKind.SHARE.value,
        ttl: Optional[timedelta] = None,
        subject_type: str = SubjectType.GUEST_LIST.value,
        contact_id: Optional[int] = None,
    ) -> IssuedToken:
        """Same as create() but leaves the commit to the caller."""
        return self._mint(
            subject_id=subject_id,
            kind=kind,
            ttl=ttl,
            subject_type=subject_type,
            contact_id=contact_id,
        )

    @staticmethod
    def log_issued(issued: IssuedToken) -> None:
        logger.info(
            "Issued %s token %s for %s %s",
            issued.token.kind,
            issued.token.id,
            issued.token.subject_type,
            issued.token.subject_id,
        )

    def issue_child(
        self,
        parent: AccessToken,
        contact_id: Optional[int],
        ttl: Optional[timedelta] = None,
        forwarded_by_name: Optional[str] = None,
        forwarded_by_email: Optional[str] = None,
    ) -> IssuedToken:
        """
        Stage a forwarded share token one level below ``parent``.

        The subject is inherited so access never widens. The caller owns the
        transaction.
        """
        return self._mint(
            subject_id=parent.subject_id,
            kind=TokenKind.SHARE.value,
            ttl=ttl,
            subject_type=parent.subject_type,
            contact_id=contact_id,
            parent=parent,
            forwarded_by_name=forwarded_by_name,
            forwarded_by_email=forwarded_by_email,
        )

    def validate(self, secret: str) -> AccessToken:
        """
        Look up a token by secret and check it is usable.

        Raises:
            TokenNotFound: no token has this secret
            TokenRevoked: token was revoked
            TokenExpired: now >= expires_at
        """
        if not secret:
            raise TokenNotFound()
        token = self.store.find_by_hash(hash_secret(secret))
        if token is None:
            raise TokenNotFound()
        self.check_state(token)
        return token

    def ensure_active(self, token_id: int) -> AccessToken:
        """Same checks as validate(), for callers holding a token id."""
        token = self.store.get(token_id)
        if token is None:
            raise TokenNotFound()
        self.db.refresh(token)
        self.check_state(token)
        return token

    def check_state(self, token: AccessToken) -> None:
        if token.revoked:
            raise TokenRevoked()
        if self.clock() >= as_utc(token.expires_at):
            raise TokenExpired()

    def is_active(self, token: AccessToken) -> bool:
        return not token.revoked and self.clock() < as_utc(token.expires_at)

    def revoke(self, token_id: int) -> bool:
        """
        Revoke a token. Idempotent; children are not affected.

        Returns:
            True if this call revoked the token, False if it already was.

        Raises:
            TokenNotFound: no token with this id
        """
        if self.store.get(token_id) is None:
            raise TokenNotFound()
        changed = self.store.mark_revoked(token_id, self.clock())
        self.db.commit()
        if changed:
            logger.info("Revoked token %s", token_id)
        return changed

    def _mint(
        self,
        subject_id: int,
        kind: str,
        ttl: Optional[timedelta],
        subject_type: str,
        contact_id: Optional[int],
        parent: Optional[AccessToken] = None,
        forwarded_by_name: Optional[str] = None,
        forwarded_by_email: Optional[str] = None,
    ) -> IssuedToken:
        kind = TokenKind(kind).value
        subject_type = SubjectType(subject_type).value
        ttl = ttl if ttl is not None else default_ttl(kind)
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")

        now = self.clock()
        secret = generate_secret()
        token = AccessToken(
            secret_hash=hash_secret(secret),
            kind=kind,
            subject_type=subject_type,
            subject_id=subject_id,
            created_at=now,
            expires_at=now + ttl,
            revoked=False,
            parent_token_id=parent.id if parent is not None else None,
            depth=parent.depth + 1 if parent is not None else 0,
            issued_for_contact_id=contact_id,
            forwarded_by_name=forwarded_by_name,
            forwarded_by_email=forwarded_by_email,
            access_count=0,
            forward_count=0,
        )
        self.store.add(token)
        return IssuedToken(token=token, secret=secret, share_url=build_link(secret, kind))
