"""Public endpoints reached through share and RSVP links."""
from typing import Optional

from fastapi import APIRouter, Depends, Header

from app.api.schemas import (
    ForwardRequest,
    ForwardResponse,
    OTPRequestResponse,
    OTPVerifyRequest,
    OTPVerifyResponse,
    RSVPRequest,
    RSVPResponseOut,
)
from app.config import settings
from app.services.access.access_gate import Projection
from app.services.access.assertions import decode_assertion, encode_assertion
from app.services.access.clock import as_utc
from app.services.access.context import RequestContext
from app.services.access.dependencies import get_invitation_service, get_request_context
from app.services.access.errors import InvalidAssertion
from app.services.access.invitation_chain import PartyInfo
from app.services.access.rsvp import RSVPDetails
from app.services.access.service import InvitationService


router = APIRouter(prefix="/public/links", tags=["public"])


def _bearer(authorization: Optional[str]) -> str:
    if not authorization:
        raise InvalidAssertion()
    scheme, _, credential = authorization.partition(" ")
    if scheme.lower() != "bearer" or not credential.strip():
        raise InvalidAssertion()
    return credential.strip()


@router.get("/{secret}", response_model=Projection)
async def resolve_link(
    secret: str,
    service: InvitationService = Depends(get_invitation_service),
):
    """View the guest list (or contact) a link grants access to."""
    return service.resolve(secret)


@router.post("/{secret}/forward", response_model=ForwardResponse)
async def forward_link(
    secret: str,
    body: ForwardRequest,
    service: InvitationService = Depends(get_invitation_service),
    context: RequestContext = Depends(get_request_context),
):
    """
    Forward an invitation to someone else.

    The recipient gets their own link one level down the chain; the
    forwarder is copied on the email.
    """
    issued = service.forward(
        secret,
        forwarder=PartyInfo(body.forwarder.name, body.forwarder.email, body.forwarder.company),
        recipient=PartyInfo(body.recipient.name, body.recipient.email, body.recipient.company),
        context=context,
    )
    return ForwardResponse(
        token_id=issued.id,
        depth=issued.token.depth,
        expires_at=issued.expires_at,
        message=f"Invitation forwarded to {body.recipient.name.strip()}",
    )


@router.post("/{secret}/otp", response_model=OTPRequestResponse)
async def request_code(
    secret: str,
    service: InvitationService = Depends(get_invitation_service),
    context: RequestContext = Depends(get_request_context),
):
    """Email a verification code to the link's recipient."""
    issued = service.issue_otp(secret, context=context)
    return OTPRequestResponse(
        masked_email=issued.masked_email,
        expires_in_minutes=issued.expires_in_minutes,
    )


@router.post("/{secret}/otp/verify", response_model=OTPVerifyResponse)
async def verify_code(
    secret: str,
    body: OTPVerifyRequest,
    service: InvitationService = Depends(get_invitation_service),
    context: RequestContext = Depends(get_request_context),
):
    """Check a code and hand back the signed assertion used to RSVP."""
    assertion = service.verify_otp(secret, body.code, context=context)
    return OTPVerifyResponse(
        assertion=encode_assertion(assertion),
        expires_in=settings.assertion_window_seconds,
    )


@router.post("/{secret}/rsvp", response_model=RSVPResponseOut)
async def submit_rsvp(
    secret: str,
    body: RSVPRequest,
    authorization: Optional[str] = Header(None),
    service: InvitationService = Depends(get_invitation_service),
    context: RequestContext = Depends(get_request_context),
):
    """Record attending/declined. Resubmitting updates the same response."""
    assertion = decode_assertion(_bearer(authorization))
    response = service.submit_rsvp(
        assertion,
        body.status,
        secret=secret,
        details=RSVPDetails(
            comments=body.comments,
            plus_one_name=body.plus_one_name,
            plus_one_email=body.plus_one_email,
        ),
        context=context,
    )
    return RSVPResponseOut(
        status=response.status,
        response_count=response.response_count,
        responded_at=as_utc(response.responded_at),
    )
