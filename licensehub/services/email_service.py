"""
Email service.

Handles:
- Sending templated HTML emails via SMTP using aiosmtplib
- Fire-and-forget dispatch: `NotificationDispatcher.notify` schedules
  the send in the background, so a slow or broken mail server can never
  fail or delay the operation that triggered it.  Failures are logged.
"""

import asyncio
import logging
from email.message import EmailMessage
from typing import Any

import aiosmtplib

from licensehub.core.config import settings
from licensehub.core.security import Notifier
from licensehub.services.email_templates import render

logger = logging.getLogger(__name__)


async def send_email(to: str, subject: str, html_body: str) -> None:
    """Send an HTML email via the configured SMTP server."""
    message = EmailMessage()
    message["From"] = settings.SENDER_EMAIL
    message["To"] = to
    message["Subject"] = subject
    message.set_content(html_body, subtype="html")

    await aiosmtplib.send(
        message,
        hostname=settings.EMAIL_HOST,
        port=settings.EMAIL_PORT,
        username=settings.SENDER_EMAIL or None,
        password=settings.EMAIL_PASSWORD or None,
        start_tls=True,
    )
    logger.info("Email sent to %s", to)


class SmtpNotifier:
    """`Notifier` backed by SMTP and the templates in `email_templates`."""

    async def send(self, recipient: str, template_key: str, params: dict[str, Any]) -> None:
        subject, html_body = render(template_key, params)
        await send_email(recipient, subject, html_body)


class NotificationDispatcher:
    def __init__(self, notifier: Notifier) -> None:
        self._notifier = notifier
        self._pending: set[asyncio.Task] = set()

    def notify(self, recipient: str | None, template_key: str, params: dict[str, Any] | None = None) -> None:
        if not recipient:
            logger.debug("Skipping %s notification: no recipient", template_key)
            return
        task = asyncio.create_task(self._deliver(recipient, template_key, params or {}))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, recipient: str, template_key: str, params: dict[str, Any]) -> None:
        try:
            await self._notifier.send(recipient, template_key, params)
        except Exception:
            logger.exception("Failed to send %s notification to %s", template_key, recipient)

    async def drain(self) -> None:
        """Wait for every in-flight notification (shutdown / tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending))
