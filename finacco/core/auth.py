from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.db import get_db
from finacco.core.errors import AuthError, PermissionDeniedError
from finacco.domains.identity.entities import User
from finacco.domains.identity.services import IdentityService
from finacco.domains.profiles.services import ProfileService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Dependency resolving the Bearer access token to its user."""
    if credentials is None:
        raise AuthError("Not authenticated", code="not_authenticated")
    return await IdentityService(db).get_user(credentials.credentials)


async def require_admin(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> User:
    """Admin-only routes; a missing or unreadable profile counts as non-admin."""
    if not await ProfileService(db).is_admin(user.uuid):
        raise PermissionDeniedError("Admin access required")
    return user
