# screen_monitor/services/notification_service.py
"""
Notification dispatcher — fans one message out to every channel a recipient
has an address for (Telegram, email).

Channels are attempted independently: a failing Telegram send never stops the
email, and nothing is ever raised to the caller. Partial delivery is normal;
the outcome is visible only in the logs.
"""

import re
from dataclasses import dataclass
from typing import Optional

from screen_monitor.config import settings
from screen_monitor.services.transports import Attachment, MailTransport, TelegramTransport
from screen_monitor.utils.logger import get_logger

logger = get_logger(__name__)

_TAG_RE = re.compile(r"<[^>]+>")


@dataclass(frozen=True)
class Recipient:
    email: Optional[str] = None
    telegram_id: Optional[str] = None

    def __str__(self):
        return self.email or self.telegram_id or "<no address>"


def html_to_text(html: str) -> str:
    return _TAG_RE.sub("", html).strip()


class NotificationDispatcher:
    def __init__(self, telegram: Optional[TelegramTransport] = None,
                 mailer: Optional[MailTransport] = None,
                 default_subject: Optional[str] = None):
        self.telegram = telegram
        self.mailer = mailer
        self.default_subject = default_subject or f"Notification from {settings.PUBLIC_URL}"

    async def send(self, recipient: Optional[Recipient], text: Optional[str] = None,
                   html: Optional[str] = None, subject: Optional[str] = None,
                   attachment: Optional[Attachment] = None) -> None:
        """
        Send to every channel the recipient can be reached on.
        Never raises; returns once both channels were attempted or skipped.
        """
        if recipient is None:
            logger.error("[NOTIFY] Recipient not found, nothing sent")
            return

        if not text and not html and attachment is None:
            logger.error(f"[NOTIFY] No message body for {recipient}")
            return

        await self._send_telegram(recipient, text, html, subject, attachment)
        await self._send_email(recipient, text, html, subject, attachment)

    async def _send_telegram(self, recipient, text, html, subject, attachment):
        if not recipient.telegram_id:
            logger.warning(f"[NOTIFY] No Telegram id for recipient {recipient}")
            return
        if self.telegram is None:
            logger.debug("[NOTIFY] Telegram transport not configured, skipping")
            return

        try:
            if attachment is not None:
                caption = subject or html or text or attachment.filename
                await self.telegram.send_document(recipient.telegram_id, caption, attachment)
            else:
                await self.telegram.send_text(recipient.telegram_id, html or text)
            logger.info(f"[NOTIFY] Telegram notification sent ({recipient.telegram_id})")
        except Exception as e:
            logger.error(f"[NOTIFY] Telegram notification failed ({recipient.telegram_id}): {e}")

    async def _send_email(self, recipient, text, html, subject, attachment):
        if not recipient.email:
            logger.warning(f"[NOTIFY] No email for recipient {recipient}")
            return
        if self.mailer is None:
            logger.debug("[NOTIFY] Mail transport not configured, skipping")
            return

        try:
            await self.mailer.send(
                to=recipient.email,
                subject=subject or self.default_subject,
                text=text or (html_to_text(html) if html else None),
                html=html,
                attachment=attachment,
            )
            logger.info(f"[NOTIFY] Email notification sent ({recipient.email})")
        except Exception as e:
            logger.error(f"[NOTIFY] Email notification failed ({recipient.email}): {e}")


def build_dispatcher(config=settings) -> NotificationDispatcher:
    """Create the dispatcher with whichever transports are configured."""
    telegram = None
    if config.BOT_TOKEN:
        telegram = TelegramTransport(config.BOT_TOKEN, api_url=config.TELEGRAM_API_URL)
    else:
        logger.warning("BOT_TOKEN not set — Telegram notifications disabled")

    mailer = None
    if config.EMAIL_SMTP_HOST:
        mailer = MailTransport(
            host=config.EMAIL_SMTP_HOST,
            port=config.EMAIL_SMTP_PORT,
            user=config.EMAIL_SMTP_USER,
            password=config.EMAIL_SMTP_PASSWORD,
            sender=config.EMAIL_FROM,
            use_tls=config.EMAIL_USE_TLS,
        )
    else:
        logger.warning("EMAIL_SMTP_HOST not set — email notifications disabled")

    return NotificationDispatcher(
        telegram=telegram,
        mailer=mailer,
        default_subject=f"Notification from {config.PUBLIC_URL}",
    )
