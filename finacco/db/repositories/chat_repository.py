from typing import List, Optional
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.clock import utcnow
from finacco.db.models.chat import ChatHistory as ChatHistoryModel
from finacco.domains.assistant.entities import ChatHistory, Message


class ChatHistoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, history: ChatHistory) -> ChatHistory:
        db_history = ChatHistoryModel(
            uuid=history.id,
            user_id=history.user_id,
            title=history.title,
            messages=[m.to_dict() for m in history.messages],
        )
        self.session.add(db_history)
        await self.session.commit()
        await self.session.refresh(db_history)
        return self._to_domain(db_history)

    async def get(self, history_id: uuid.UUID, user_id: uuid.UUID) -> Optional[ChatHistory]:
        result = await self.session.execute(
            select(ChatHistoryModel).where(
                ChatHistoryModel.uuid == history_id,
                ChatHistoryModel.user_id == user_id,
            )
        )
        db_history = result.scalar_one_or_none()
        return self._to_domain(db_history) if db_history else None

    async def get_by_user(self, user_id: uuid.UUID) -> List[ChatHistory]:
        result = await self.session.execute(
            select(ChatHistoryModel)
            .where(ChatHistoryModel.user_id == user_id)
            .order_by(ChatHistoryModel.created_at.desc())
        )
        return [self._to_domain(h) for h in result.scalars().all()]

    async def update_messages(self, history: ChatHistory) -> Optional[ChatHistory]:
        await self.session.execute(
            update(ChatHistoryModel)
            .where(ChatHistoryModel.uuid == history.id, ChatHistoryModel.user_id == history.user_id)
            .values(messages=[m.to_dict() for m in history.messages], updated_at=utcnow())
        )
        await self.session.commit()
        return await self.get(history.id, history.user_id)

    async def delete(self, history_id: uuid.UUID, user_id: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(ChatHistoryModel).where(
                ChatHistoryModel.uuid == history_id,
                ChatHistoryModel.user_id == user_id,
            )
        )
        await self.session.commit()
        return result.rowcount > 0

    async def delete_all(self, user_id: uuid.UUID) -> int:
        result = await self.session.execute(
            delete(ChatHistoryModel).where(ChatHistoryModel.user_id == user_id)
        )
        await self.session.commit()
        return result.rowcount

    def _to_domain(self, db_history: ChatHistoryModel) -> ChatHistory:
        return ChatHistory(
            id=db_history.uuid,
            user_id=db_history.user_id,
            title=db_history.title,
            messages=[Message.from_dict(m) for m in (db_history.messages or [])],
            created_at=db_history.created_at,
        )
