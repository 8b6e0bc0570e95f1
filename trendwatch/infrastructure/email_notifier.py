"""Notifier adapters: e-mail over SMTP and a log-only dry-run backend."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from email.message import EmailMessage
import logging
import smtplib
from typing import TYPE_CHECKING

from trendwatch.domain.errors import NotificationError
from trendwatch.domain.ports import NotifierPort

if TYPE_CHECKING:
    from trendwatch.config import AppSettings

logger = logging.getLogger(__name__)

SUBJECT_TEMPLATE = "🔥 New WSB trending ticker: {item_id}"
BODY_TEMPLATE = "{item_id} just appeared in WSBApp's daily trending list."


class NotifierBackendError(ValueError):
    """Raised when an unknown notifier backend is requested."""

    def __init__(self, backend: str) -> None:
        """Record the rejected backend name."""
        self.backend = backend
        super().__init__(f"unknown_notifier_backend backend={backend}")


def build_message(item_id: str, sender: str, recipients: Sequence[str]) -> EmailMessage:
    """Compose the announcement e-mail for ``item_id``."""
    message = EmailMessage()
    message["From"] = sender
    message["To"] = ", ".join(recipients)
    message["Subject"] = SUBJECT_TEMPLATE.format(item_id=item_id)
    message.set_content(BODY_TEMPLATE.format(item_id=item_id))
    return message


class EmailNotifier(NotifierPort):
    """Send one e-mail per new item to the configured recipients.

    smtplib is blocking, so delivery runs in a worker thread and the event
    loop keeps answering feed pings meanwhile.
    """

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        password: str,
        recipients: Sequence[str],
        timeout: float = 30.0,
        smtp_factory: Callable[..., smtplib.SMTP] = smtplib.SMTP_SSL,
    ) -> None:
        """Store SMTP parameters; no connection is kept between sends."""
        self._host = host
        self._port = port
        self._sender = sender
        self._password = password
        self._recipients = tuple(recipients)
        self._timeout = timeout
        self._smtp_factory = smtp_factory

    @classmethod
    def from_settings(cls, settings: AppSettings) -> EmailNotifier:
        password = settings.email_app_password
        return cls(
            host=settings.smtp_host,
            port=settings.smtp_port,
            sender=settings.sender_email or "",
            password=password.get_secret_value() if password is not None else "",
            recipients=settings.receiver_emails,
            timeout=settings.notify_timeout_seconds,
        )

    async def send(self, item_id: str) -> None:
        """Deliver the announcement for ``item_id``."""
        if not self._recipients:
            raise NotificationError(item_id, "no recipients configured")
        message = build_message(item_id, self._sender, self._recipients)
        await asyncio.to_thread(self._deliver, item_id, message)
        logger.info(
            "  ↳ email sent",
            extra={"item_id": item_id, "recipients": len(self._recipients)},
        )

    def _deliver(self, item_id: str, message: EmailMessage) -> None:
        try:
            with self._smtp_factory(
                self._host, self._port, timeout=self._timeout
            ) as smtp:
                smtp.login(self._sender, self._password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(item_id, f"error={exc!r}") from exc


class LogNotifier(NotifierPort):
    """Dry-run notifier that only logs what would have been sent."""

    async def send(self, item_id: str) -> None:
        logger.info(
            "notification_dry_run",
            extra={
                "item_id": item_id,
                "subject": SUBJECT_TEMPLATE.format(item_id=item_id),
            },
        )


def create_notifier(settings: AppSettings) -> NotifierPort:
    """Return the notifier selected by ``settings.notifier_backend``."""
    backend = settings.notifier_backend
    if backend == "email":
        return EmailNotifier.from_settings(settings)
    if backend == "log":
        return LogNotifier()
    raise NotifierBackendError(backend)
