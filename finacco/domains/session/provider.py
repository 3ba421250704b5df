import uuid
from typing import Optional, Protocol

from finacco.core.db import SessionLocal
from finacco.domains.identity.entities import Session, User
from finacco.domains.identity.mailer import Mailer
from finacco.domains.identity.services import IdentityService
from finacco.domains.profiles.services import ProfileService


class AuthProvider(Protocol):
    async def sign_in_with_password(self, email: str, password: str) -> Session: ...

    async def refresh_session(self, refresh_token: str) -> Session: ...

    async def get_user(self, access_token: str) -> User: ...

    async def sign_out(self, token: str) -> int: ...


class LocalAuthProvider:
    """AuthProvider backed by this application's own identity tables.

    Each call runs in its own database session.
    """

    def __init__(self, session_factory=SessionLocal, mailer: Optional[Mailer] = None):
        self.session_factory = session_factory
        self.mailer = mailer

    async def sign_in_with_password(self, email: str, password: str) -> Session:
        async with self.session_factory() as db:
            return await IdentityService(db, self.mailer).sign_in_with_password(email, password)

    async def refresh_session(self, refresh_token: str) -> Session:
        async with self.session_factory() as db:
            return await IdentityService(db, self.mailer).refresh_session(refresh_token)

    async def get_user(self, access_token: str) -> User:
        async with self.session_factory() as db:
            return await IdentityService(db, self.mailer).get_user(access_token)

    async def sign_out(self, token: str) -> int:
        async with self.session_factory() as db:
            return await IdentityService(db, self.mailer).sign_out(token)

    async def is_admin(self, user_id: uuid.UUID) -> bool:
        async with self.session_factory() as db:
            return await ProfileService(db).is_admin(user_id)
