"""
Typed failures for the public invitation flow.

Every core operation either returns its entity or raises one of these.
Each class carries a stable ``code`` for API clients and the HTTP status the
API layer responds with.
"""

from typing import Optional


class AccessError(Exception):
    """Base class for all access-flow failures."""

    code = "access_error"
    status_code = 400
    message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        self.message = message or self.message

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message}


# =============================================================================
# TOKEN STATE
# =============================================================================


class InvalidLink(AccessError):
    """Token cannot be used. Public responses do not reveal which subclass."""

    code = "link_invalid"
    status_code = 410
    message = "This link is no longer valid"


class TokenNotFound(InvalidLink):
    """No token matches the presented secret or id."""

    code = "not_found"
    message = "Token not found"


class TokenExpired(InvalidLink):
    """Token is past its expiry."""

    code = "expired"
    message = "Token has expired"


class TokenRevoked(InvalidLink):
    """Token was revoked by staff."""

    code = "revoked"
    message = "Token has been revoked"


# =============================================================================
# FORWARDING
# =============================================================================


class NotForwardable(AccessError):
    """Only share links can be forwarded; RSVP links are personal."""

    code = "not_forwardable"
    status_code = 409
    message = "This link cannot be forwarded"


class ChainDepthExceeded(AccessError):
    """Forwarding would create a token deeper than the configured maximum."""

    code = "chain_depth_exceeded"
    status_code = 409
    message = "This invitation cannot be forwarded any further"


class FanOutExceeded(AccessError):
    """Token has already been forwarded the maximum number of times."""

    code = "fan_out_exceeded"
    status_code = 409
    message = "This invitation has been forwarded too many times"


# =============================================================================
# ONE-TIME CODES
# =============================================================================


class NoRecipient(AccessError):
    """Token is not addressed to a contact, so there is nobody to verify."""

    code = "no_recipient"
    status_code = 422
    message = "This link is not addressed to a recipient"


class OTPRateLimited(AccessError):
    """Codes were requested too quickly for this token."""

    code = "otp_rate_limited"
    status_code = 429
    message = "Too many verification codes requested. Please wait before trying again."

    def __init__(self, retry_after: int, message: Optional[str] = None):
        super().__init__(message)
        self.retry_after = max(int(retry_after), 1)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retry_after": self.retry_after}


class NoActiveChallenge(AccessError):
    """No open challenge exists for the token."""

    code = "no_active_challenge"
    status_code = 400
    message = "No valid code found. Please request a new code."


class ChallengeExpired(AccessError):
    """The open challenge is past its expiry."""

    code = "challenge_expired"
    status_code = 400
    message = "This code has expired. Please request a new code."


class InvalidCode(AccessError):
    """Code does not match, or was already used."""

    code = "invalid_code"
    status_code = 401
    message = "Invalid code"

    def __init__(self, remaining: int = 0, message: Optional[str] = None):
        super().__init__(message)
        self.remaining = max(remaining, 0)

    def to_dict(self) -> dict:
        return {**super().to_dict(), "remaining": self.remaining}


class TooManyAttempts(AccessError):
    """Attempt limit reached; a new code must be requested."""

    code = "too_many_attempts"
    status_code = 429
    message = "Too many attempts. Please request a new code."


# =============================================================================
# RSVP
# =============================================================================


class InvalidAssertion(AccessError):
    """Verified assertion is malformed, forged or bound to another token."""

    code = "invalid_assertion"
    status_code = 401
    message = "Verification is invalid. Please verify your email again."


class AssertionExpired(InvalidAssertion):
    """Verified assertion is older than the accepted window."""

    code = "assertion_expired"
    message = "Verification has expired. Please verify your email again."


class RSVPClosed(AccessError):
    """The guest list no longer accepts responses."""

    code = "rsvp_closed"
    status_code = 410
    message = "RSVP is no longer available for this event"


class InvalidRequest(AccessError):
    """Input failed validation."""

    code = "invalid_request"
    status_code = 400
