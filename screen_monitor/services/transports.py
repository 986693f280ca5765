# screen_monitor/services/transports.py
"""
Outbound channels used by the notification dispatcher.

TelegramTransport talks to the Bot API over httpx, MailTransport to an SMTP
server via smtplib. Both raise NotificationDeliveryError on failure; catching
and logging is the dispatcher's job, not theirs.

Construct them once at startup (see build_dispatcher) and pass them in.
"""

import asyncio
import smtplib
from dataclasses import dataclass
from email.mime.application import MIMEApplication
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import httpx

from screen_monitor.exceptions import NotificationDeliveryError
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)

TELEGRAM_TIMEOUT = 15.0
SMTP_TIMEOUT = 10


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    mime_type: str


class TelegramTransport:
    """Minimal Bot API client: sendMessage (HTML) and sendDocument."""

    def __init__(self, bot_token: str, api_url: str = "https://api.telegram.org",
                 client: Optional[httpx.AsyncClient] = None):
        self.bot_token = bot_token
        self.api_url = api_url.rstrip("/")
        self._client = client

    def _url(self, method: str) -> str:
        return f"{self.api_url}/bot{self.bot_token}/{method}"

    def _redact(self, text: str) -> str:
        return text.replace(self.bot_token, "<redacted>") if self.bot_token else text

    async def _post(self, method: str, **kwargs) -> dict:
        try:
            if self._client is not None:
                resp = await self._client.post(self._url(method), timeout=TELEGRAM_TIMEOUT, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=TELEGRAM_TIMEOUT) as client:
                    resp = await client.post(self._url(method), **kwargs)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise NotificationDeliveryError("telegram", self._redact(f"{type(e).__name__}: {e}")) from None

        if not data.get("ok"):
            raise NotificationDeliveryError(
                "telegram", self._redact(str(data.get("description") or f"HTTP {resp.status_code}"))
            )
        logger.debug(f"[TG] {method} delivered")
        return data

    async def send_text(self, chat_id: str, html: str) -> dict:
        return await self._post("sendMessage", json={
            "chat_id": chat_id, "text": html, "parse_mode": "HTML",
        })

    async def send_document(self, chat_id: str, caption: str, attachment: Attachment) -> dict:
        return await self._post(
            "sendDocument",
            data={"chat_id": chat_id, "caption": caption},
            files={"document": (attachment.filename, attachment.content, attachment.mime_type)},
        )

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()


class MailTransport:
    """SMTP sender. Port 465 uses implicit SSL, otherwise optional STARTTLS."""

    def __init__(self, host: str, port: int = 465, user: Optional[str] = None,
                 password: Optional[str] = None, sender: Optional[str] = None,
                 use_tls: bool = False):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.use_tls = use_tls

    def build_message(self, to: str, subject: str, text: Optional[str] = None,
                      html: Optional[str] = None, attachment: Optional[Attachment] = None,
                      cc: Optional[str] = None) -> MIMEMultipart:
        msg = MIMEMultipart("mixed")
        if self.sender:
            msg["From"] = self.sender
        msg["To"] = to
        if cc:
            msg["Cc"] = cc
        msg["Subject"] = subject

        body = MIMEMultipart("alternative")
        if text:
            body.attach(MIMEText(text, "plain", "utf-8"))
        if html:
            body.attach(MIMEText(html, "html", "utf-8"))
        msg.attach(body)

        if attachment is not None:
            _, _, subtype = attachment.mime_type.partition("/")
            part = MIMEApplication(attachment.content, _subtype=subtype or "octet-stream")
            part.add_header("Content-Disposition", "attachment", filename=attachment.filename)
            msg.attach(part)
        return msg

    def _send_sync(self, msg: MIMEMultipart):
        try:
            if self.port == 465:
                server = smtplib.SMTP_SSL(self.host, self.port, timeout=SMTP_TIMEOUT)
            else:
                server = smtplib.SMTP(self.host, self.port, timeout=SMTP_TIMEOUT)
                if self.use_tls:
                    server.starttls()
            try:
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
            finally:
                server.quit()
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError("email", f"{type(e).__name__}: {e}") from None

    async def send(self, to: str, subject: str, text: Optional[str] = None,
                   html: Optional[str] = None, attachment: Optional[Attachment] = None,
                   cc: Optional[str] = None):
        msg = self.build_message(to, subject, text=text, html=html, attachment=attachment, cc=cc)
        await asyncio.to_thread(self._send_sync, msg)
        logger.debug(f"[MAIL] delivered to {to}")
