"""Test doubles shared by the test modules."""
import asyncio
import re
import uuid
from typing import List, Optional, Tuple

from finacco.core.errors import AuthError
from finacco.domains.identity.entities import Session
from finacco.domains.identity.mailer import Mailer
from finacco.domains.templates.entities import pdf_filename
from finacco.domains.templates.export import DocumentExporter, ExportedDocument

USER_ID = uuid.uuid4()


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class SleepRecorder:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


class FakeProvider:
    """In-memory auth provider issuing one-hour sessions."""

    def __init__(self, clock: Clock):
        self.clock = clock
        self.issued = 0
        self.active_refresh = None
        self.refresh_calls = 0
        self.refresh_errors = []
        self.signed_out = []
        # When set, refreshes wait on it after validating the token
        self.refresh_gate: Optional[asyncio.Event] = None

    def _issue(self) -> Session:
        self.issued += 1
        self.active_refresh = f"refresh-{self.issued}"
        return Session(USER_ID, f"access-{self.issued}", self.active_refresh, self.clock.now + 3600, "user@example.com")

    async def sign_in_with_password(self, email, password):
        if password != "secret123":
            raise AuthError("Invalid login credentials", code="invalid_credentials")
        return self._issue()

    async def refresh_session(self, refresh_token):
        self.refresh_calls += 1
        await asyncio.sleep(0)
        if self.refresh_errors:
            raise self.refresh_errors.pop(0)
        if refresh_token != self.active_refresh:
            raise AuthError("Invalid refresh token", code="invalid_refresh_token")
        if self.refresh_gate is not None:
            await self.refresh_gate.wait()
        return self._issue()

    async def get_user(self, access_token):
        raise NotImplementedError

    async def sign_out(self, token):
        self.signed_out.append(token)
        self.active_refresh = None
        return 1


class FakeMailer(Mailer):
    """Records messages instead of talking to SMTP."""

    def __init__(self):
        super().__init__(host="")
        self.sent: List[Tuple[str, str, str]] = []

    async def send(self, to: str, subject: str, body: str) -> bool:
        self.sent.append((to, subject, body))
        return True

    def last_token(self) -> Optional[str]:
        if not self.sent:
            return None
        match = re.search(r"token=([A-Za-z0-9_\-\.]+)", self.sent[-1][2])
        return match.group(1) if match else None


class FakeExporter(DocumentExporter):
    async def export(self, html: str, name: str) -> ExportedDocument:
        return ExportedDocument(filename=pdf_filename(name), content=b"%PDF-1.7 " + html.encode())


class FakeLLM:
    """Scripted stand-in for GeminiClient.

    Classification prompts get ``classify``; every other prompt takes the next
    entry of ``replies``. Exceptions in either place are raised.
    """

    def __init__(self, classify="false", replies=None):
        self.classify = classify
        self.replies = list(replies or [])
        self.calls = []

    async def generate(self, prompt, temperature=None, max_output_tokens=None):
        self.calls.append((prompt, temperature, max_output_tokens))
        if prompt.startswith("Is this a request to create a document?"):
            answer = self.classify
        else:
            answer = self.replies.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer
