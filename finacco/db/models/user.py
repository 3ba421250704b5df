from sqlalchemy import Uuid, Boolean, Column, DateTime, ForeignKey, String
from sqlalchemy.orm import relationship

from finacco.db.base import BaseModel


class User(BaseModel):
    __tablename__ = "users"

    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)  # NULL for OAuth-only accounts
    provider = Column(String(32), default="email", nullable=False)
    full_name = Column(String(255), nullable=True)
    email_confirmed_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, default=True)

    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")


class RefreshToken(BaseModel):
    __tablename__ = "refresh_tokens"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.uuid", ondelete="CASCADE"), index=True, nullable=False)
    jti = Column(String(64), unique=True, index=True, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    revoked_at = Column(DateTime, nullable=True)

    user = relationship("User", back_populates="refresh_tokens")
