"""Guest list and guest list membership models."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.database import Base


class GuestList(Base):
    """An event guest list, the subject most share tokens grant access to."""

    __tablename__ = "guest_lists"

    id = Column(Integer, primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    event_name = Column(String(255), nullable=True)
    event_date = Column(String(50), nullable=True)  # Display string, e.g. "2026-11-04"
    event_time = Column(String(50), nullable=True)
    event_location = Column(String(255), nullable=True)
    rsvp_enabled = Column(Boolean, nullable=False, default=True)
    plus_ones_enabled = Column(Boolean, nullable=False, default=True)
    # Organisers copied on confirmations: [{"name": ..., "email": ...}]
    rsvp_bcc_contacts = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    items = relationship(
        "GuestListItem",
        back_populates="guest_list",
        cascade="all, delete-orphan",
        order_by="GuestListItem.id",
    )

    @property
    def bcc_emails(self) -> list:
        """Email addresses from rsvp_bcc_contacts, skipping malformed entries."""
        emails = []
        for entry in self.rsvp_bcc_contacts or []:
            if isinstance(entry, dict) and entry.get("email"):
                emails.append(entry["email"])
        return emails


class GuestListItem(Base):
    """A contact's place on a guest list."""

    __tablename__ = "guest_list_items"

    id = Column(Integer, primary_key=True)
    guest_list_id = Column(
        Integer, ForeignKey("guest_lists.id", ondelete="CASCADE"), nullable=False
    )
    contact_id = Column(
        Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    invite_status = Column(
        String(20), nullable=False, default="invited"
    )  # 'invited', 'attending' or 'declined'
    invited_by = Column(String(255), nullable=True)  # Forwarder name, if forwarded
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    guest_list = relationship("GuestList", back_populates="items")
    contact = relationship("Contact")

    __table_args__ = (
        UniqueConstraint("guest_list_id", "contact_id", name="uq_guest_list_item"),
        Index("idx_guest_list_items_list", "guest_list_id"),
    )
