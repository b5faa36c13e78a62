"""Read access to guest lists and contacts, and contact upkeep for forwarding."""

import logging
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.contact import Contact
from app.models.guest_list import GuestList, GuestListItem

logger = logging.getLogger(__name__)


def mask_email(email: Optional[str]) -> str:
    """Show only the first two characters of the local part."""
    if not email or "@" not in email:
        return "***"
    local, domain = email.split("@", 1)
    if len(local) <= 2:
        return f"{local[:1]}***@{domain}"
    return f"{local[:2]}***@{domain}"


def split_name(full_name: str) -> tuple:
    """Split 'Ada King Lovelace' into ('Ada', 'King Lovelace')."""
    parts = full_name.split()
    if not parts:
        return "", None
    return parts[0], " ".join(parts[1:]) or None


# =============================================================================
# Snapshots
# =============================================================================


class GuestSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    organisation_name: Optional[str] = None
    invite_status: str
    invited_by: Optional[str] = None


class GuestListSnapshot(BaseModel):
    """Read-only view of a guest list for link holders."""

    model_config = ConfigDict(frozen=True)

    type: str = "guest_list"
    id: int
    name: str
    description: Optional[str] = None
    event_name: Optional[str] = None
    event_date: Optional[str] = None
    event_time: Optional[str] = None
    event_location: Optional[str] = None
    rsvp_enabled: bool
    plus_ones_enabled: bool = True
    guests: List[GuestSnapshot] = []


class ContactSnapshot(BaseModel):
    """Read-only contact card. The email is masked."""

    model_config = ConfigDict(frozen=True)

    type: str = "contact"
    id: int
    name: str
    organisation_name: Optional[str] = None
    masked_email: str


SubjectSnapshot = Union[GuestListSnapshot, ContactSnapshot]


class SubjectStore:
    """Identity and subject lookups used by the access services."""

    def __init__(self, db: Session):
        self.db = db

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_guest_list(self, guest_list_id: int) -> Optional[GuestList]:
        return self.db.query(GuestList).filter(GuestList.id == guest_list_id).first()

    def get_contact(self, contact_id: Optional[int]) -> Optional[Contact]:
        if contact_id is None:
            return None
        return self.db.query(Contact).filter(Contact.id == contact_id).first()

    def find_contact_by_email(self, email: str) -> Optional[Contact]:
        return (
            self.db.query(Contact)
            .filter(Contact.email == email.strip().lower())
            .first()
        )

    def snapshot(self, subject_type: str, subject_id: int) -> Optional[SubjectSnapshot]:
        """Materialise the read-only projection of a subject, or None if it is gone."""
        if subject_type == "guest_list":
            guest_list = self.get_guest_list(subject_id)
            if guest_list is None:
                return None
            return self._guest_list_snapshot(guest_list)
        if subject_type == "contact":
            contact = self.get_contact(subject_id)
            if contact is None:
                return None
            return ContactSnapshot(
                id=contact.id,
                name=contact.full_name,
                organisation_name=contact.organisation_name,
                masked_email=mask_email(contact.email),
            )
        return None

    def _guest_list_snapshot(self, guest_list: GuestList) -> GuestListSnapshot:
        guests = [
            GuestSnapshot(
                name=item.contact.full_name,
                organisation_name=item.contact.organisation_name,
                invite_status=item.invite_status,
                invited_by=item.invited_by,
            )
            for item in guest_list.items
        ]
        return GuestListSnapshot(
            id=guest_list.id,
            name=guest_list.name,
            description=guest_list.description,
            event_name=guest_list.event_name,
            event_date=guest_list.event_date,
            event_time=guest_list.event_time,
            event_location=guest_list.event_location,
            rsvp_enabled=guest_list.rsvp_enabled,
            plus_ones_enabled=guest_list.plus_ones_enabled,
            guests=guests,
        )

    # -------------------------------------------------------------------------
    # Contact upkeep
    # -------------------------------------------------------------------------

    def find_or_create_contact(
        self,
        email: str,
        name: str,
        organisation_name: Optional[str] = None,
        source: Optional[str] = None,
    ) -> Contact:
        """
        Return the contact with this email, creating a pending one if needed.

        Existing contacts keep their details. The insert runs in a savepoint,
        so when a concurrent request creates the same email first this
        returns that row instead of failing. The caller owns the transaction.
        """
        existing = self.find_contact_by_email(email)
        if existing:
            return existing

        first_name, last_name = split_name(name)
        contact = Contact(
            first_name=first_name or email.split("@", 1)[0],
            last_name=last_name,
            email=email.strip().lower(),
            organisation_name=organisation_name or None,
            status="pending",
            source=source,
        )
        try:
            with self.db.begin_nested():
                self.db.add(contact)
        except IntegrityError:
            existing = self.find_contact_by_email(email)
            if existing is None:
                raise
            logger.info("Contact %s created concurrently; reusing it", existing.id)
            return existing
        return contact

    def ensure_guest_list_item(
        self,
        guest_list_id: int,
        contact_id: int,
        invited_by: Optional[str] = None,
    ) -> GuestListItem:
        """Add a contact to a guest list unless already present."""
        item = self._find_guest_list_item(guest_list_id, contact_id)
        if item:
            return item
        item = GuestListItem(
            guest_list_id=guest_list_id,
            contact_id=contact_id,
            invite_status="invited",
            invited_by=invited_by,
        )
        try:
            with self.db.begin_nested():
                self.db.add(item)
        except IntegrityError:
            existing = self._find_guest_list_item(guest_list_id, contact_id)
            if existing is None:
                raise
            return existing
        return item

    def _find_guest_list_item(self, guest_list_id: int, contact_id: int) -> Optional[GuestListItem]:
        return (
            self.db.query(GuestListItem)
            .filter(
                GuestListItem.guest_list_id == guest_list_id,
                GuestListItem.contact_id == contact_id,
            )
            .first()
        )

    def set_invite_status(self, guest_list_id: int, contact_id: int, status: str) -> None:
        """Mirror an RSVP onto the guest list, adding the contact if missing."""
        item = self.ensure_guest_list_item(guest_list_id, contact_id)
        item.invite_status = status
