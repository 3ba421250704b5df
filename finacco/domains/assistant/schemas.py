from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid

from pydantic import BaseModel, Field


class MessageSchema(BaseModel):
    id: str
    role: str
    content: str
    timestamp: datetime
    is_document: bool = False


class ChatSummary(BaseModel):
    id: uuid.UUID
    title: str
    created_at: datetime
    message_count: int


class ChatDetail(BaseModel):
    id: uuid.UUID
    title: str
    created_at: datetime
    messages: List[MessageSchema]


class SendMessageRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=8000)
    chat_id: Optional[uuid.UUID] = None


class TurnResponse(BaseModel):
    """Outcome of one user turn"""
    chat_id: uuid.UUID
    kind: str
    messages: List[MessageSchema]
    redirect_to: Optional[str] = None
    template_id: Optional[uuid.UUID] = None
    document_type: Optional[str] = None
    fields: Optional[List[Dict[str, Any]]] = None


class GenerateDocumentRequest(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=200)
    fields: List[Dict[str, Any]]
    data: Dict[str, Any] = Field(default_factory=dict)
    chat_id: Optional[uuid.UUID] = None


class DocumentPdfRequest(BaseModel):
    document_type: str = Field(..., min_length=1, max_length=200)
    html: str = Field(..., min_length=1)


class ApiKeyStatus(BaseModel):
    has_key: bool
    masked_key: Optional[str] = None


class ApiKeyUpdate(BaseModel):
    api_key: str
