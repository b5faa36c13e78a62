"""Access token model for share and RSVP links."""

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import relationship

from app.database import Base


class AccessToken(Base):
    """
    Opaque bearer token granting read access to a subject.

    Only an HMAC of the secret is stored. parent_token_id is written once at
    creation and never updated, so the forwarding forest cannot form cycles.
    """

    __tablename__ = "access_tokens"

    id = Column(Integer, primary_key=True)
    secret_hash = Column(String(64), unique=True, index=True, nullable=False)
    kind = Column(String(20), nullable=False, default="share")  # 'share' or 'rsvp'
    subject_type = Column(
        String(20), nullable=False, default="guest_list"
    )  # 'guest_list' or 'contact'
    subject_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    # Provenance
    parent_token_id = Column(
        Integer, ForeignKey("access_tokens.id", ondelete="RESTRICT"), nullable=True
    )
    depth = Column(Integer, nullable=False, default=0)
    issued_for_contact_id = Column(
        Integer, ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True
    )
    forwarded_by_name = Column(String(255), nullable=True)
    forwarded_by_email = Column(String(255), nullable=True)
    forward_count = Column(Integer, nullable=False, default=0)  # Children minted from this token

    # Access tracking
    access_count = Column(Integer, nullable=False, default=0)
    last_accessed_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    parent = relationship("AccessToken", remote_side=[id])
    issued_for = relationship("Contact")

    __table_args__ = (
        CheckConstraint("expires_at > created_at", name="ck_access_tokens_expiry"),
        CheckConstraint("depth >= 0", name="ck_access_tokens_depth"),
        CheckConstraint("forward_count >= 0", name="ck_access_tokens_forward_count"),
        Index("idx_access_tokens_subject", "subject_type", "subject_id"),
        Index("idx_access_tokens_parent", "parent_token_id"),
    )

    def __repr__(self):
        return f"<AccessToken(id={self.id}, kind={self.kind}, depth={self.depth}, revoked={self.revoked})>"
