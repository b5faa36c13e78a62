"""
Verified assertions: the credential issued by a successful code check.

An assertion travels to the client as an HS256-signed JWT. Its recency is
checked against the service clock by the RSVP state machine, so the JWT exp
claim is informational only.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from jose import JWTError, jwt

from app.config import settings
from app.services.access.clock import as_utc
from app.services.access.errors import InvalidAssertion

ALGORITHM = "HS256"
AUDIENCE = "rsvp"


@dataclass(frozen=True)
class VerifiedAssertion:
    token_id: int
    contact_id: int
    verified_at: datetime
    challenge_id: int


def encode_assertion(assertion: VerifiedAssertion) -> str:
    verified_at = as_utc(assertion.verified_at)
    claims = {
        "sub": str(assertion.contact_id),
        "tid": assertion.token_id,
        "cid": assertion.contact_id,
        "chl": assertion.challenge_id,
        "vat": int(verified_at.timestamp()),
        "exp": int(
            (verified_at + timedelta(seconds=settings.assertion_window_seconds)).timestamp()
        ),
        "aud": AUDIENCE,
    }
    return jwt.encode(claims, settings.assertion_secret, algorithm=ALGORITHM)


def decode_assertion(credential: str) -> VerifiedAssertion:
    """
    Verify the signature and unpack an assertion.

    Raises:
        InvalidAssertion: missing, malformed or forged credential
    """
    if not credential:
        raise InvalidAssertion()
    try:
        claims = jwt.decode(
            credential,
            settings.assertion_secret,
            algorithms=[ALGORITHM],
            audience=AUDIENCE,
            options={"verify_exp": False},
        )
        return VerifiedAssertion(
            token_id=int(claims["tid"]),
            contact_id=int(claims["cid"]),
            verified_at=datetime.fromtimestamp(int(claims["vat"]), tz=timezone.utc),
            challenge_id=int(claims["chl"]),
        )
    except (JWTError, KeyError, TypeError, ValueError) as e:
        raise InvalidAssertion() from e
