"""FastAPI dependencies for the invitation flow."""
import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.services.access.clock import Clock, utcnow
from app.services.access.context import RequestContext
from app.services.access.service import InvitationService
from app.services.notifications import NotificationSender, get_notification_sender


def get_clock() -> Clock:
    """Time source for the request. Overridden in tests."""
    return utcnow


def get_request_context(request: Request) -> RequestContext:
    """Caller details recorded in the audit trail."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        ip_address = request.client.host if request.client else None
    return RequestContext(
        ip_address=ip_address,
        user_agent=request.headers.get("user-agent"),
        actor="staff" if request.url.path.startswith("/staff") else "public",
    )


def get_invitation_service(
    db: Session = Depends(get_db),
    notifier: NotificationSender = Depends(get_notification_sender),
    clock: Clock = Depends(get_clock),
) -> InvitationService:
    return InvitationService(db, notifier, clock=clock)


async def require_staff_key(
    x_staff_key: Optional[str] = Header(None),
) -> None:
    """
    Guard for staff endpoints.

    Raises 503 when no staff key is configured, 401 when the header is
    missing or wrong.
    """
    if not settings.staff_api_key:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Staff API is not configured",
        )
    if not x_staff_key or not secrets.compare_digest(x_staff_key, settings.staff_api_key):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
