"""Staff endpoints for issuing, inspecting and revoking links."""
from datetime import timedelta

from fastapi import APIRouter, Depends

from app.api.schemas import (
    CreateShareRequest,
    CreateShareResponse,
    RevokeResponse,
    TokenListResponse,
    TokenOut,
)
from app.services.access.context import RequestContext
from app.services.access.dependencies import (
    get_invitation_service,
    get_request_context,
    require_staff_key,
)
from app.services.access.invitation_chain import PartyInfo
from app.services.access.service import InvitationService


router = APIRouter(
    prefix="/staff",
    tags=["staff"],
    dependencies=[Depends(require_staff_key)],
)


@router.post("/guest-lists/{guest_list_id}/shares", response_model=CreateShareResponse, status_code=201)
async def create_share(
    guest_list_id: int,
    body: CreateShareRequest,
    service: InvitationService = Depends(get_invitation_service),
    context: RequestContext = Depends(get_request_context),
):
    """Issue a root link for a guest list and email it to the recipient."""
    issued = service.create_share(
        guest_list_id,
        PartyInfo(name=body.name or "", email=body.email, company=body.company),
        kind=body.kind,
        ttl=timedelta(days=body.ttl_days) if body.ttl_days else None,
        context=context,
    )
    return CreateShareResponse(
        token_id=issued.id,
        share_url=issued.share_url,
        expires_at=issued.expires_at,
    )


@router.get("/guest-lists/{guest_list_id}/tokens", response_model=TokenListResponse)
async def list_tokens(
    guest_list_id: int,
    service: InvitationService = Depends(get_invitation_service),
):
    tokens = service.tokens_for_guest_list(guest_list_id)
    return TokenListResponse(tokens=[TokenOut.model_validate(t) for t in tokens])


@router.get("/tokens/{token_id}/chain", response_model=TokenListResponse)
async def token_chain(
    token_id: int,
    service: InvitationService = Depends(get_invitation_service),
):
    """Provenance of a token, root first."""
    chain = service.ancestry(token_id)
    return TokenListResponse(tokens=[TokenOut.model_validate(t) for t in chain])


@router.post("/tokens/{token_id}/revoke", response_model=RevokeResponse)
async def revoke_token(
    token_id: int,
    service: InvitationService = Depends(get_invitation_service),
    context: RequestContext = Depends(get_request_context),
):
    """Revoke a link. Links forwarded from it keep working."""
    changed = service.revoke(token_id, context=context)
    return RevokeResponse(token_id=token_id, revoked=True, changed=changed)
