import logging
import uuid

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.errors import NotFoundError
from finacco.db.repositories.profile_repository import ProfileRepository
from finacco.domains.identity.entities import User
from finacco.domains.profiles.entities import Profile
from finacco.domains.profiles.schemas import ProfileUpdate

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.profile_repository = ProfileRepository(session)

    async def get_or_create(self, user: User) -> Profile:
        """Profile of the user, created on first access."""
        profile = await self.profile_repository.get(user.uuid)
        if profile:
            return profile
        logger.info("Creating profile for user %s", user.uuid)
        return await self.profile_repository.upsert(Profile.for_user(user.uuid, user.email, user.full_name))

    async def update(self, user_id: uuid.UUID, data: ProfileUpdate) -> Profile:
        profile = await self.profile_repository.get(user_id)
        if not profile:
            raise NotFoundError("Profile not found")

        profile.update_contact(full_name=data.full_name, phone=data.phone)
        return await self.profile_repository.update(profile)

    async def is_admin(self, user_id: uuid.UUID) -> bool:
        """False when the profile is missing or cannot be read."""
        try:
            profile = await self.profile_repository.get(user_id)
        except SQLAlchemyError as e:
            logger.warning("Profile lookup for %s failed: %s", user_id, e)
            return False
        return bool(profile and profile.is_admin)
