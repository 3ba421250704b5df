import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from finacco.core.clock import utcnow

TITLE_MAX_LENGTH = 100


class Role(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message:
    def __init__(
        self,
        id: str,
        role: Role,
        content: str,
        timestamp: Optional[datetime] = None,
        is_document: bool = False,
    ):
        self.id = id
        self.role = Role(role)
        self.content = content
        self.timestamp = timestamp or utcnow()
        self.is_document = is_document

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(id=uuid.uuid4().hex, role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str, is_document: bool = False) -> "Message":
        return cls(id=uuid.uuid4().hex, role=Role.ASSISTANT, content=content, is_document=is_document)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.is_document:
            data["isDocument"] = True
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        timestamp = data.get("timestamp")
        return cls(
            id=str(data.get("id") or uuid.uuid4().hex),
            role=data.get("role", Role.USER.value),
            content=data.get("content", ""),
            timestamp=datetime.fromisoformat(timestamp.replace("Z", "")) if timestamp else None,
            is_document=bool(data.get("isDocument", False)),
        )

    def __repr__(self) -> str:
        return f"Message(id={self.id}, role={self.role.value}, is_document={self.is_document})"


class ChatHistory:
    """Ordered, append-only message thread owned by one user"""

    def __init__(
        self,
        id: uuid.UUID,
        user_id: uuid.UUID,
        title: str,
        messages: Optional[List[Message]] = None,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.user_id = user_id
        self.title = title
        self.messages = list(messages or [])
        self.created_at = created_at or utcnow()

    def append(self, *messages: Message) -> None:
        self.messages.extend(messages)

    @staticmethod
    def make_title(first_input: str) -> str:
        text = first_input.strip()
        if len(text) > TITLE_MAX_LENGTH:
            return text[:TITLE_MAX_LENGTH] + "..."
        return text

    @classmethod
    def start(cls, user_id: uuid.UUID, first_input: str) -> "ChatHistory":
        return cls(id=uuid.uuid4(), user_id=user_id, title=cls.make_title(first_input))

    def __repr__(self) -> str:
        return f"ChatHistory(id={self.id}, title={self.title!r}, messages={len(self.messages)})"
