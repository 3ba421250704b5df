from typing import Optional
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.clock import utcnow
from finacco.core.errors import ConflictError
from finacco.db.models.user import RefreshToken as RefreshTokenModel, User as UserModel
from finacco.domains.identity.entities import User


class UserRepository:
    """Identity records of the auth provider"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: User) -> User:
        db_user = UserModel(
            uuid=user.uuid,
            email=user.email,
            password_hash=user.password_hash,
            provider=user.provider,
            full_name=user.full_name,
            email_confirmed_at=user.email_confirmed_at,
            is_active=user.is_active,
        )

        self.session.add(db_user)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError("User with this email already exists")
        await self.session.refresh(db_user)
        return self._to_domain(db_user)

    async def get_by_uuid(self, user_uuid: uuid.UUID) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.uuid == user_uuid)
        )
        db_user = result.scalar_one_or_none()
        return self._to_domain(db_user) if db_user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(
            select(UserModel).where(UserModel.email == email.lower())
        )
        db_user = result.scalar_one_or_none()
        return self._to_domain(db_user) if db_user else None

    async def update(self, user: User) -> User:
        stmt = (
            update(UserModel)
            .where(UserModel.uuid == user.uuid)
            .values(
                password_hash=user.password_hash,
                full_name=user.full_name,
                email_confirmed_at=user.email_confirmed_at,
                is_active=user.is_active,
                updated_at=user.updated_at,
            )
        )

        await self.session.execute(stmt)
        await self.session.commit()

        return await self.get_by_uuid(user.uuid)

    async def email_exists(self, email: str) -> bool:
        result = await self.session.execute(
            select(UserModel.uuid).where(UserModel.email == email.lower())
        )
        return result.scalar_one_or_none() is not None

    def _to_domain(self, db_user: UserModel) -> User:
        return User(
            uuid=db_user.uuid,
            email=db_user.email,
            password_hash=db_user.password_hash,
            provider=db_user.provider,
            full_name=db_user.full_name,
            email_confirmed_at=db_user.email_confirmed_at,
            is_active=db_user.is_active,
            created_at=db_user.created_at,
            updated_at=db_user.updated_at,
        )


class RefreshTokenRepository:
    """Issued refresh sessions; a revoked or expired jti can no longer be exchanged."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: uuid.UUID, jti: str, expires_at) -> None:
        self.session.add(RefreshTokenModel(user_id=user_id, jti=jti, expires_at=expires_at))
        await self.session.commit()

    async def is_active(self, jti: str) -> bool:
        result = await self.session.execute(
            select(RefreshTokenModel).where(RefreshTokenModel.jti == jti)
        )
        token = result.scalar_one_or_none()
        if token is None or token.revoked_at is not None:
            return False
        return token.expires_at > utcnow()

    async def revoke(self, jti: str) -> bool:
        result = await self.session.execute(
            update(RefreshTokenModel)
            .where(RefreshTokenModel.jti == jti, RefreshTokenModel.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount > 0

    async def revoke_all_for_user(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            update(RefreshTokenModel)
            .where(RefreshTokenModel.user_id == user_id, RefreshTokenModel.revoked_at.is_(None))
            .values(revoked_at=utcnow())
        )
        await self.session.commit()
        return result.rowcount
