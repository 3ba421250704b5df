from sqlalchemy import Uuid, Column, DateTime, ForeignKey, String

from finacco.core.clock import utcnow
from finacco.core.db import Base


class ApiKey(Base):
    __tablename__ = "api_keys"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.uuid", ondelete="CASCADE"), primary_key=True)
    gemini_key = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
