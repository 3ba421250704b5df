import enum
import time
import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from finacco.core.clock import utcnow
from finacco.core.security import get_password_hash, verify_password


class User:
    """Identity record owned by the auth provider"""

    def __init__(
        self,
        uuid: uuid.UUID,
        email: str,
        password_hash: Optional[str] = None,
        provider: str = "email",
        full_name: Optional[str] = None,
        email_confirmed_at: Optional[datetime] = None,
        is_active: bool = True,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.uuid = uuid
        self.email = email
        self.password_hash = password_hash
        self.provider = provider
        self.full_name = full_name
        self.email_confirmed_at = email_confirmed_at
        self.is_active = is_active
        self.created_at = created_at or utcnow()
        self.updated_at = updated_at or utcnow()

    @property
    def is_confirmed(self) -> bool:
        return self.email_confirmed_at is not None

    def authenticate(self, password: str) -> bool:
        """Check a password; OAuth-only accounts never match."""
        if not self.password_hash:
            return False
        return verify_password(password, self.password_hash)

    def confirm_email(self) -> None:
        if self.email_confirmed_at is None:
            self.email_confirmed_at = utcnow()
            self.updated_at = utcnow()

    def set_password(self, password: str) -> None:
        self.password_hash = get_password_hash(password)
        self.updated_at = utcnow()

    @classmethod
    def create_user(cls, email: str, password: str, full_name: Optional[str] = None) -> "User":
        """New email/password user, unconfirmed until the emailed link is opened."""
        return cls(
            uuid=uuid.uuid4(),
            email=email.lower(),
            password_hash=get_password_hash(password),
            full_name=full_name,
        )

    @classmethod
    def create_oauth_user(cls, email: str, provider: str, full_name: Optional[str] = None) -> "User":
        return cls(
            uuid=uuid.uuid4(),
            email=email.lower(),
            provider=provider,
            full_name=full_name,
            email_confirmed_at=utcnow(),
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, User):
            return False
        return self.uuid == other.uuid

    def __repr__(self) -> str:
        return f"User(uuid={self.uuid}, email={self.email})"


class Session:
    """Token set issued on sign-in; expires_at is a unix timestamp."""

    def __init__(
        self,
        user_id: uuid.UUID,
        access_token: str,
        refresh_token: str,
        expires_at: float,
        email: Optional[str] = None,
    ):
        self.user_id = user_id
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_at = expires_at
        self.email = email

    def is_expired(self, now: Optional[float] = None, leeway: float = 0.0) -> bool:
        now = time.time() if now is None else now
        return self.expires_at - leeway <= now

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_at": self.expires_at,
            "email": self.email,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            user_id=uuid.UUID(str(data["user_id"])),
            access_token=data["access_token"],
            refresh_token=data["refresh_token"],
            expires_at=float(data["expires_at"]),
            email=data.get("email"),
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Session):
            return False
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"Session(user_id={self.user_id}, expires_at={self.expires_at})"


class AuthChangeEvent(str, enum.Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"
