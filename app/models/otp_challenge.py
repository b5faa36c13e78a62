"""One-time code challenge model."""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    text,
)
from sqlalchemy.orm import relationship

from app.database import Base


class OTPChallenge(Base):
    """
    A short-lived numeric code bound to an access token.

    consumed is set either when a newer challenge supersedes this one or when
    the code verifies; verified_at is only set in the second case.
    """

    __tablename__ = "otp_challenges"

    id = Column(Integer, primary_key=True)
    token_id = Column(
        Integer, ForeignKey("access_tokens.id", ondelete="CASCADE"), nullable=False
    )
    code_hash = Column(String(100), nullable=False)  # bcrypt, salt embedded
    email = Column(String(255), nullable=False)  # Where the code was sent
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    consumed = Column(Boolean, nullable=False, default=False)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    ip_address = Column(String(45), nullable=True)

    # Relationships
    token = relationship("AccessToken")

    __table_args__ = (
        Index("idx_otp_challenges_token_created", "token_id", "created_at"),
        # At most one open challenge per token
        Index(
            "uq_otp_challenges_open",
            "token_id",
            unique=True,
            postgresql_where=text("consumed = false"),
            sqlite_where=text("consumed = 0"),
        ),
    )
