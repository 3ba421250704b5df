import uuid
from datetime import datetime
from typing import Optional

from finacco.core.clock import utcnow


class Profile:
    """Application-level user record, keyed by the identity id"""

    def __init__(
        self,
        id: uuid.UUID,
        email: str,
        full_name: Optional[str] = None,
        phone: Optional[str] = None,
        is_admin: bool = False,
        created_at: Optional[datetime] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.id = id
        self.email = email
        self.full_name = full_name
        self.phone = phone
        self.is_admin = is_admin
        self.created_at = created_at or utcnow()
        self.updated_at = updated_at or utcnow()

    def update_contact(self, full_name: Optional[str] = None, phone: Optional[str] = None) -> None:
        if full_name is not None:
            self.full_name = full_name
        if phone is not None:
            self.phone = phone
        self.updated_at = utcnow()

    @classmethod
    def for_user(cls, user_id: uuid.UUID, email: str, full_name: Optional[str] = None) -> "Profile":
        """Default profile created lazily on first authenticated access."""
        return cls(id=user_id, email=email, full_name=full_name or "", phone="", is_admin=False)

    def __repr__(self) -> str:
        return f"Profile(id={self.id}, email={self.email}, is_admin={self.is_admin})"
