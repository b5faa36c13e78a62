"""
Token based access to guest lists.

Holders of a share link can view the list they were invited to, forward
the invitation down a depth-limited chain, and, after proving control of
their email with a one-time code, RSVP.

Usage:
    from app.services.access.service import InvitationService
    from app.services.access.dependencies import get_invitation_service

    # In routes:
    @router.get("/links/{secret}")
    async def resolve(secret: str, service: InvitationService = Depends(get_invitation_service)):
        return service.resolve(secret)
"""
from app.services.access.errors import AccessError, InvalidLink
from app.services.access.service import InvitationService

__all__ = [
    "AccessError",
    "InvalidLink",
    "InvitationService",
]
