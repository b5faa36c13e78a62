"""
Database models for the guest list access service.

Import all models here so Alembic can detect them for migrations.
"""

from app.database import Base
from app.models.contact import Contact
from app.models.guest_list import GuestList, GuestListItem
from app.models.access_token import AccessToken
from app.models.otp_challenge import OTPChallenge
from app.models.rsvp_response import RSVPResponse, RSVPStatus
from app.models.audit_log import AuditLog

__all__ = [
    "Base",
    "Contact",
    "GuestList",
    "GuestListItem",
    "AccessToken",
    "OTPChallenge",
    "RSVPResponse",
    "RSVPStatus",
    "AuditLog",
]
