import logging
from typing import Awaitable, Callable

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.auth import get_current_user
from finacco.core.db import get_db
from finacco.core.logging import mask_secret
from finacco.db.repositories.api_key_repository import ApiKeyRepository
from finacco.domains.assistant.llm import GeminiClient, validate_key_format
from finacco.domains.assistant.schemas import ApiKeyStatus, ApiKeyUpdate
from finacco.domains.identity.entities import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api-key-setup", tags=["api-key-setup"])

KeyVerifier = Callable[[str], Awaitable[None]]


async def verify_with_gemini(api_key: str) -> None:
    await GeminiClient(api_key).verify_key()


def get_key_verifier() -> KeyVerifier:
    return verify_with_gemini


@router.get("", response_model=ApiKeyStatus)
async def get_api_key_status(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    api_key = await ApiKeyRepository(db).get(user.uuid)
    return ApiKeyStatus(has_key=bool(api_key), masked_key=mask_secret(api_key) if api_key else None)


@router.put("", response_model=ApiKeyStatus)
async def save_api_key(
    body: ApiKeyUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    verify: KeyVerifier = Depends(get_key_verifier),
):
    """Format check, live verification, then store."""
    api_key = validate_key_format(body.api_key)
    await verify(api_key)
    await ApiKeyRepository(db).upsert(user.uuid, api_key)
    logger.info("Stored Gemini key %s for user %s", mask_secret(api_key), user.uuid)
    return ApiKeyStatus(has_key=True, masked_key=mask_secret(api_key))


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_api_key(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await ApiKeyRepository(db).delete(user.uuid)
