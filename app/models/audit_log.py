from sqlalchemy import JSON, Column, DateTime, Index, Integer, String
from sqlalchemy.sql import func

from app.database import Base


class AuditLog(Base):
    """Append-only record of security-relevant actions on the public flow."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True)
    action = Column(String(50), nullable=False)  # e.g. 'rsvp_forward', 'otp_verified'
    resource_type = Column(String(50), nullable=False)
    resource_id = Column(String(64), nullable=True)
    status = Column(String(20), nullable=False, default="success")  # success, failure
    actor = Column(String(255), nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(String(512), nullable=True)
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_audit_logs_resource", "resource_type", "resource_id"),
    )
