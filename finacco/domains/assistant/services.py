import enum
import json
import logging
import re
import uuid
from contextlib import asynccontextmanager
from typing import Any, Dict, Hashable, List, Mapping, NamedTuple, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.errors import ConflictError, ExternalServiceError, FormValidationError, NotFoundError
from finacco.db.repositories.chat_repository import ChatHistoryRepository
from finacco.domains.assistant.canned import canned_response
from finacco.domains.assistant.entities import ChatHistory, Message
from finacco.domains.assistant.llm import GeminiClient
from finacco.domains.assistant.rate_limit import SlidingWindowRateLimiter
from finacco.domains.templates.entities import DocumentTemplate, TemplateField
from finacco.domains.templates.form import validate_fields
from finacco.domains.templates.services import TemplateService, parse_fields

logger = logging.getLogger(__name__)

DOCUMENT_VERBS = re.compile(r"(draft|create|generate|write)\s+(?:an?\s+)?", re.I)
JSON_OBJECT = re.compile(r"{[\s\S]*}")
CODE_FENCE = re.compile(r"^```(?:html)?\s*|\s*```$", re.I)

CLASSIFY_PROMPT = 'Is this a request to create a document? Only respond with "true" or "false": "{text}"'

ANSWER_PROMPT = """You are Finacco Solutions, a GST and Income Tax professional giving personalised advice.
Answer only the user's question, clearly and accurately, in plain language a non-expert can follow.
Use headings, bullet points and tables where they make the answer easier to read.
User's query: {text}"""

FIELDS_PROMPT = """Generate the input field list for an Indian {document_type} document.
Include every party, date and amount (amounts in rupees), use DD/MM/YYYY dates,
mark required fields and add a placeholder or description where helpful.
Return only JSON of the form:
{{"fields": [{{"id": "party1_name", "label": "First Party Name", "type": "text", "required": true, "placeholder": "Full legal name"}}]}}"""

DOCUMENT_PROMPT = """Generate a professional {document_type} document in Indian format.

User data: {data}

Return a complete HTML document (doctype, head with UTF-8 meta, body) using h1 for the title,
h2 for section headings, p for paragraphs and strong for names, dates (DD/MM/YYYY) and amounts (with the rupee symbol).
Write complete formal paragraphs with the standard clauses for a {document_type}, keep normal font sizes so
long content flows onto further pages, and end with a signature section for every party."""


def default_fields(document_type: str) -> List[TemplateField]:
    """Generic form used when the field list cannot be generated."""
    return [
        TemplateField("title", "Document Title", "text", True, placeholder=f"Enter {document_type} title"),
        TemplateField("parties", "Parties Involved", "textarea", True, placeholder="List all parties involved"),
        TemplateField("details", "Document Details", "textarea", True, placeholder="Enter all relevant details"),
        TemplateField("date", "Effective Date", "date", True),
    ]


def document_type_from_request(text: str) -> str:
    """'Draft a rent agreement' -> 'rent agreement'"""
    return DOCUMENT_VERBS.sub("", text, count=1).strip()


def strip_code_fences(content: str) -> str:
    return CODE_FENCE.sub("", content.strip()).strip()


class ChatLocks:
    """One in-flight send per chat thread; a second concurrent send is refused."""

    def __init__(self):
        self._active: Set[Hashable] = set()

    def is_locked(self, key: Hashable) -> bool:
        return key in self._active

    @asynccontextmanager
    async def hold(self, key: Hashable):
        if key in self._active:
            raise ConflictError("A message is already being processed for this chat")
        self._active.add(key)
        try:
            yield
        finally:
            self._active.discard(key)


chat_locks = ChatLocks()


class TurnKind(str, enum.Enum):
    ANSWER = "answer"
    TEMPLATE = "template"
    FORM = "form"
    DOCUMENT = "document"


class TurnResult(NamedTuple):
    chat: ChatHistory
    kind: TurnKind
    messages: List[Message]
    template: Optional[DocumentTemplate] = None
    document_type: Optional[str] = None
    fields: Optional[List[TemplateField]] = None

    @property
    def redirect_to(self) -> Optional[str]:
        if self.template is None:
            return None
        return f"/create-document/{self.template.id}"


class AssistantOrchestrator:
    """Routes one user turn to a canned or generated answer, a known template, or an ad-hoc document form."""

    def __init__(
        self,
        session: AsyncSession,
        llm: Optional[GeminiClient] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        locks: Optional[ChatLocks] = None,
    ):
        self.session = session
        self.llm = llm
        self.rate_limiter = rate_limiter or SlidingWindowRateLimiter()
        self.locks = locks or chat_locks
        self.chat_repository = ChatHistoryRepository(session)
        self.template_service = TemplateService(session)

    async def list_chats(self, user_id: uuid.UUID) -> List[ChatHistory]:
        return await self.chat_repository.get_by_user(user_id)

    async def get_chat(self, user_id: uuid.UUID, chat_id: uuid.UUID) -> ChatHistory:
        chat = await self.chat_repository.get(chat_id, user_id)
        if not chat:
            raise NotFoundError("Chat not found")
        return chat

    async def delete_chat(self, user_id: uuid.UUID, chat_id: uuid.UUID) -> None:
        if not await self.chat_repository.delete(chat_id, user_id):
            raise NotFoundError("Chat not found")

    async def clear_chats(self, user_id: uuid.UUID) -> int:
        return await self.chat_repository.delete_all(user_id)

    async def classify(self, text: str) -> bool:
        """True only when the classifier answers exactly "true"."""
        try:
            answer = await self.llm.generate(CLASSIFY_PROMPT.format(text=text), temperature=0.1, max_output_tokens=5)
        except ExternalServiceError as e:
            logger.warning("Document request classification failed: %s", e.message)
            return False
        return answer.strip().lower() == "true"

    async def answer(self, text: str) -> str:
        canned = canned_response(text)
        if canned is not None:
            return canned
        return await self.llm.generate(ANSWER_PROMPT.format(text=text))

    async def generate_fields(self, document_type: str) -> List[TemplateField]:
        try:
            reply = await self.llm.generate(FIELDS_PROMPT.format(document_type=document_type))
        except ExternalServiceError as e:
            logger.warning("Field list generation failed: %s", e.message)
            return default_fields(document_type)

        match = JSON_OBJECT.search(reply)
        try:
            raw = json.loads(match.group(0)).get("fields", []) if match else []
            fields = [TemplateField.from_dict(f) for f in raw]
            DocumentTemplate(id=uuid.uuid4(), name=document_type, template_html="", fields=fields)
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning("Unusable field list for %s: %s", document_type, e)
            return default_fields(document_type)

        return fields or default_fields(document_type)

    async def _save(self, user_id: uuid.UUID, chat: Optional[ChatHistory], title_input: str, messages: List[Message]) -> ChatHistory:
        if chat is not None:
            chat.append(*messages)
            return await self.chat_repository.update_messages(chat)
        chat = ChatHistory.start(user_id, title_input)
        chat.append(*messages)
        return await self.chat_repository.create(chat)

    async def handle_message(self, user_id: uuid.UUID, text: str, chat_id: Optional[uuid.UUID] = None) -> TurnResult:
        text = (text or "").strip()
        if not text:
            raise FormValidationError({"message": "Message is required"})

        async with self.locks.hold((user_id, chat_id)):
            chat = await self.get_chat(user_id, chat_id) if chat_id else None
            self.rate_limiter.check(user_id)

            user_message = Message.user(text)

            if await self.classify(text):
                template = await self.template_service.match_template(text)
                if template is not None:
                    reply = Message.assistant(f"I found the {template.name} template. Let's fill it in step by step.")
                    chat = await self._save(user_id, chat, text, [user_message, reply])
                    logger.info("Chat %s routed to template %s", chat.id, template.id)
                    return TurnResult(chat, TurnKind.TEMPLATE, [user_message, reply], template=template)

                document_type = document_type_from_request(text)
                fields = await self.generate_fields(document_type)
                reply = Message.assistant(f"Let's create a {document_type}. Please provide the following information:")
                chat = await self._save(user_id, chat, text, [user_message, reply])
                return TurnResult(chat, TurnKind.FORM, [user_message, reply], document_type=document_type, fields=fields)

            reply = Message.assistant(await self.answer(text))
            chat = await self._save(user_id, chat, text, [user_message, reply])
            return TurnResult(chat, TurnKind.ANSWER, [user_message, reply])

    async def generate_document(
        self,
        user_id: uuid.UUID,
        document_type: str,
        fields: List[Dict[str, Any]],
        data: Mapping[str, Any],
        chat_id: Optional[uuid.UUID] = None,
    ) -> TurnResult:
        """Fill an ad-hoc document form. Failures leave ``data`` for the caller to resubmit."""
        document_type = (document_type or "").strip()
        if not document_type:
            raise FormValidationError({"document_type": "Document type is required"})

        schema = parse_fields(fields)
        result = validate_fields(schema, data)
        if not result.valid:
            raise FormValidationError(result.errors)

        async with self.locks.hold((user_id, chat_id)):
            chat = await self.get_chat(user_id, chat_id) if chat_id else None
            self.rate_limiter.check(user_id)

            values = {f.id: data.get(f.id, "") for f in schema}
            content = await self.llm.generate(
                DOCUMENT_PROMPT.format(document_type=document_type, data=json.dumps(values, ensure_ascii=False)),
                temperature=0.3,
            )
            html = strip_code_fences(content)

            messages = [
                Message.assistant(f"I've generated a {document_type} document for you:"),
                Message.assistant(html, is_document=True),
            ]
            chat = await self._save(user_id, chat, f"Generated {document_type}", messages)
            logger.info("Generated %s for chat %s", document_type, chat.id)
            return TurnResult(chat, TurnKind.DOCUMENT, messages, document_type=document_type)
