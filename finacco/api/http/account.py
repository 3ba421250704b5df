from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.auth import get_current_user
from finacco.core.db import get_db
from finacco.domains.identity.entities import User
from finacco.domains.profiles.entities import Profile
from finacco.domains.profiles.schemas import ProfileResponse, ProfileUpdate
from finacco.domains.profiles.services import ProfileService

router = APIRouter(prefix="/account", tags=["account"])


def profile_response(profile: Profile) -> ProfileResponse:
    return ProfileResponse(
        id=profile.id,
        email=profile.email,
        full_name=profile.full_name,
        phone=profile.phone,
        is_admin=profile.is_admin,
        created_at=profile.created_at,
        updated_at=profile.updated_at,
    )


@router.get("", response_model=ProfileResponse)
async def get_account(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    profile = await ProfileService(db).get_or_create(user)
    return profile_response(profile)


@router.put("", response_model=ProfileResponse)
async def update_account(
    data: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    service = ProfileService(db)
    await service.get_or_create(user)
    profile = await service.update(user.uuid, data)
    return profile_response(profile)
