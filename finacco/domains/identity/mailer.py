import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage

from finacco.core.config import settings
from finacco.core.errors import ExternalServiceError

logger = logging.getLogger(__name__)


class Mailer:
    """Transactional mail over SMTP (STARTTLS by default)."""

    def __init__(
        self,
        host: str = None,
        port: int = None,
        username: str = None,
        password: str = None,
        use_tls: bool = None,
        sender: str = None,
    ):
        self.host = settings.smtp_host if host is None else host
        self.port = port or settings.smtp_port
        self.username = settings.smtp_username if username is None else username
        self.password = settings.smtp_password if password is None else password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.sender = sender or settings.mail_from

    @property
    def is_configured(self) -> bool:
        return bool(self.host)

    def build_message(self, to: str, subject: str, body: str) -> EmailMessage:
        if any(c in to + subject for c in ("\r", "\n")):
            raise ValueError("Header values must not contain line breaks")
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)
        return message

    def _deliver(self, message: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=30) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(message)

    async def send(self, to: str, subject: str, body: str) -> bool:
        """Send one plain-text message; returns False when SMTP is not configured."""
        message = self.build_message(to, subject, body)

        if not self.is_configured:
            logger.info("SMTP not configured, not sending '%s' to %s", subject, to)
            return False

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("SMTP delivery to %s failed: %s", to, e)
            raise ExternalServiceError("Failed to send email") from e

        logger.info("Email '%s' sent to %s", subject, to)
        return True
