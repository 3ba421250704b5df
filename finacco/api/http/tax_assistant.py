from typing import List
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.api.http.documents import get_exporter, pdf_response
from finacco.core.auth import get_current_user
from finacco.core.db import get_db
from finacco.core.errors import ConflictError
from finacco.db.repositories.api_key_repository import ApiKeyRepository
from finacco.domains.assistant.entities import ChatHistory, Message
from finacco.domains.assistant.llm import GeminiClient
from finacco.domains.assistant.rate_limit import SlidingWindowRateLimiter
from finacco.domains.assistant.schemas import (
    ChatDetail, ChatSummary, DocumentPdfRequest, GenerateDocumentRequest,
    MessageSchema, SendMessageRequest, TurnResponse,
)
from finacco.domains.assistant.services import AssistantOrchestrator, TurnResult
from finacco.domains.identity.entities import User
from finacco.domains.templates.entities import pdf_filename
from finacco.domains.templates.export import DocumentExporter

router = APIRouter(prefix="/tax-assistant", tags=["tax-assistant"])

API_KEY_SETUP_PATH = "/api-key-setup"

rate_limiter = SlidingWindowRateLimiter()


def get_rate_limiter() -> SlidingWindowRateLimiter:
    return rate_limiter


async def get_llm_client(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> GeminiClient:
    """Client bound to the user's stored Gemini key."""
    api_key = await ApiKeyRepository(db).get(user.uuid)
    if not api_key:
        raise ConflictError(f"Please set up your Gemini API key at {API_KEY_SETUP_PATH}", code="api_key_required")
    return GeminiClient(api_key)


def message_schema(message: Message) -> MessageSchema:
    return MessageSchema(
        id=message.id,
        role=message.role.value,
        content=message.content,
        timestamp=message.timestamp,
        is_document=message.is_document,
    )


def chat_detail(chat: ChatHistory) -> ChatDetail:
    return ChatDetail(
        id=chat.id,
        title=chat.title,
        created_at=chat.created_at,
        messages=[message_schema(m) for m in chat.messages],
    )


def turn_response(result: TurnResult) -> TurnResponse:
    return TurnResponse(
        chat_id=result.chat.id,
        kind=result.kind.value,
        messages=[message_schema(m) for m in result.messages],
        redirect_to=result.redirect_to,
        template_id=result.template.id if result.template else None,
        document_type=result.document_type,
        fields=[f.to_dict() for f in result.fields] if result.fields is not None else None,
    )


@router.get("/chats", response_model=List[ChatSummary])
async def list_chats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    chats = await AssistantOrchestrator(db).list_chats(user.uuid)
    return [
        ChatSummary(id=c.id, title=c.title, created_at=c.created_at, message_count=len(c.messages))
        for c in chats
    ]


@router.get("/chats/{chat_id}", response_model=ChatDetail)
async def get_chat(chat_id: uuid.UUID, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return chat_detail(await AssistantOrchestrator(db).get_chat(user.uuid, chat_id))


@router.delete("/chats/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat(chat_id: uuid.UUID, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await AssistantOrchestrator(db).delete_chat(user.uuid, chat_id)


@router.delete("/chats", status_code=status.HTTP_204_NO_CONTENT)
async def clear_chats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await AssistantOrchestrator(db).clear_chats(user.uuid)


@router.post("/messages", response_model=TurnResponse)
async def send_message(
    body: SendMessageRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    llm: GeminiClient = Depends(get_llm_client),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
):
    orchestrator = AssistantOrchestrator(db, llm, limiter)
    result = await orchestrator.handle_message(user.uuid, body.message, body.chat_id)
    return turn_response(result)


@router.post("/documents", response_model=TurnResponse)
async def generate_document(
    body: GenerateDocumentRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    llm: GeminiClient = Depends(get_llm_client),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
):
    orchestrator = AssistantOrchestrator(db, llm, limiter)
    result = await orchestrator.generate_document(user.uuid, body.document_type, body.fields, body.data, body.chat_id)
    return turn_response(result)


@router.post("/documents/pdf")
async def export_generated_document(
    body: DocumentPdfRequest,
    user: User = Depends(get_current_user),
    exporter: DocumentExporter = Depends(get_exporter),
):
    document = await exporter.export(body.html, body.document_type)
    # Chat documents use a lower-cased file name
    return pdf_response(document.content, pdf_filename(body.document_type.lower()))
