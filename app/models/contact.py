from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.sql import func

from app.database import Base


class Contact(Base):
    """A person known to the relationship-management tool."""

    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(255), nullable=False)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)  # Lower-cased
    organisation_name = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # 'active' or 'pending'
    source = Column(String(50), nullable=True)  # e.g. 'rsvp_forward'
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    @property
    def full_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name
