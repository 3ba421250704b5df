from typing import Optional
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.db.models.profile import Profile as ProfileModel
from finacco.domains.profiles.entities import Profile


class ProfileRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, profile_id: uuid.UUID) -> Optional[Profile]:
        result = await self.session.execute(
            select(ProfileModel).where(ProfileModel.id == profile_id)
        )
        db_profile = result.scalar_one_or_none()
        return self._to_domain(db_profile) if db_profile else None

    async def upsert(self, profile: Profile) -> Profile:
        """Insert the profile, or return the existing row when one already exists."""
        existing = await self.get(profile.id)
        if existing:
            return existing

        self.session.add(ProfileModel(
            id=profile.id,
            email=profile.email,
            full_name=profile.full_name,
            phone=profile.phone,
            is_admin=profile.is_admin,
        ))
        try:
            await self.session.commit()
        except IntegrityError:
            # Created concurrently by another request
            await self.session.rollback()
        return await self.get(profile.id)

    async def update(self, profile: Profile) -> Optional[Profile]:
        # is_admin is never written here
        await self.session.execute(
            update(ProfileModel)
            .where(ProfileModel.id == profile.id)
            .values(
                full_name=profile.full_name,
                phone=profile.phone,
                updated_at=profile.updated_at,
            )
        )
        await self.session.commit()
        return await self.get(profile.id)

    async def set_admin(self, profile_id: uuid.UUID, is_admin: bool) -> None:
        """Operator-only switch; no public route reaches this."""
        await self.session.execute(
            update(ProfileModel).where(ProfileModel.id == profile_id).values(is_admin=is_admin)
        )
        await self.session.commit()

    def _to_domain(self, db_profile: ProfileModel) -> Profile:
        return Profile(
            id=db_profile.id,
            email=db_profile.email,
            full_name=db_profile.full_name,
            phone=db_profile.phone,
            is_admin=db_profile.is_admin,
            created_at=db_profile.created_at,
            updated_at=db_profile.updated_at,
        )
