from sqlalchemy import JSON, Uuid, Column, ForeignKey, String

from finacco.db.base import BaseModel


class ChatHistory(BaseModel):
    __tablename__ = "chat_histories"

    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.uuid", ondelete="CASCADE"), index=True, nullable=False)
    title = Column(String(255), nullable=False)
    messages = Column(JSON, nullable=False, default=list)
