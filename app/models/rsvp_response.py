"""RSVP response model."""

import enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.database import Base


class RSVPStatus(str, enum.Enum):
    """Response states. Pending is the implicit state before any submission."""

    PENDING = "pending"
    ATTENDING = "attending"
    DECLINED = "declined"


class RSVPResponse(Base):
    """One recipient's response through one token. Resubmissions update this row."""

    __tablename__ = "rsvp_responses"

    id = Column(Integer, primary_key=True)
    token_id = Column(
        Integer, ForeignKey("access_tokens.id", ondelete="CASCADE"), nullable=False
    )
    contact_id = Column(
        Integer, ForeignKey("contacts.id", ondelete="CASCADE"), nullable=False
    )
    status = Column(String(20), nullable=False, default=RSVPStatus.PENDING.value)
    verified_at = Column(DateTime(timezone=True), nullable=False)
    responded_at = Column(DateTime(timezone=True), nullable=True)
    response_count = Column(Integer, nullable=False, default=0)
    comments = Column(Text, nullable=True)
    plus_one_name = Column(String(255), nullable=True)
    plus_one_email = Column(String(255), nullable=True)

    # Relationships
    token = relationship("AccessToken")
    contact = relationship("Contact")

    __table_args__ = (
        UniqueConstraint("token_id", "contact_id", name="uq_rsvp_responses_token_contact"),
    )

    def __repr__(self):
        return f"<RSVPResponse(token={self.token_id}, contact={self.contact_id}, status={self.status})>"
