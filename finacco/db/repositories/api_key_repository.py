from typing import Optional
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.clock import utcnow
from finacco.db.models.api_key import ApiKey as ApiKeyModel


class ApiKeyRepository:
    """Per-user generation service keys (one row per user)."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: uuid.UUID) -> Optional[str]:
        result = await self.session.execute(
            select(ApiKeyModel.gemini_key).where(ApiKeyModel.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert(self, user_id: uuid.UUID, gemini_key: str) -> None:
        if await self.get(user_id) is None:
            self.session.add(ApiKeyModel(user_id=user_id, gemini_key=gemini_key))
        else:
            await self.session.execute(
                update(ApiKeyModel)
                .where(ApiKeyModel.user_id == user_id)
                .values(gemini_key=gemini_key, updated_at=utcnow())
            )
        await self.session.commit()

    async def delete(self, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(ApiKeyModel).where(ApiKeyModel.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount > 0
