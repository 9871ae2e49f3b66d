"""SMTP mail transport."""

from __future__ import annotations

import asyncio
import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from funclink.errors import MailDeliveryError

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SmtpSettings:
    host: str
    port: int = 465
    username: str = ""
    password: str = ""
    security: str = "ssl"
    from_address: str = ""
    sender_name: str = "funclink"

    @property
    def sender(self) -> str:
        return self.from_address or self.username


class SmtpTransport:
    """Sends one message per call over a fresh SMTP connection."""

    def __init__(self, timeout_seconds: float = 30.0) -> None:
        self._timeout_seconds = timeout_seconds

    async def send_mail(self, settings: SmtpSettings, to: str, subject: str, html: str, text: str = "") -> str:
        """Send a message and return its Message-ID."""

        message = EmailMessage()
        message["From"] = formataddr((settings.sender_name, settings.sender))
        message["To"] = to
        message["Subject"] = subject
        message["Message-ID"] = make_msgid()
        message.set_content(text or subject)
        message.add_alternative(html, subtype="html")

        try:
            await asyncio.to_thread(self._send, settings, message)
        except (smtplib.SMTPException, OSError) as exc:
            LOGGER.error("SMTP delivery to %s via %s:%s failed: %s", to, settings.host, settings.port, exc)
            raise MailDeliveryError(f"SMTP delivery failed: {exc}") from exc
        LOGGER.info("Mail sent to %s, message id %s", to, message["Message-ID"])
        return str(message["Message-ID"])

    def _send(self, settings: SmtpSettings, message: EmailMessage) -> None:
        security = settings.security.lower()
        if security == "ssl":
            server: smtplib.SMTP = smtplib.SMTP_SSL(settings.host, settings.port, timeout=self._timeout_seconds)
        else:
            server = smtplib.SMTP(settings.host, settings.port, timeout=self._timeout_seconds)
        with server:
            if security == "starttls":
                server.starttls()
            if settings.username and settings.password:
                server.login(settings.username, settings.password)
            server.send_message(message)
