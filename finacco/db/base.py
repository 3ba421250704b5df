import uuid

from sqlalchemy import Uuid, Column, DateTime

from finacco.core.clock import utcnow
from finacco.core.db import Base


class BaseModel(Base):
    __abstract__ = True

    uuid = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
