from sqlalchemy import Uuid, Boolean, Column, DateTime, ForeignKey, String

from finacco.core.clock import utcnow
from finacco.core.db import Base


class Profile(Base):
    __tablename__ = "profiles"

    # Same id as the identity record
    id = Column(Uuid(as_uuid=True), ForeignKey("users.uuid", ondelete="CASCADE"), primary_key=True)
    email = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=True)
    phone = Column(String(32), nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
