"""SMTP relay for outbound mail.

`smtplib` is synchronous; sends are wrapped with `asyncio.to_thread` the same
way the Gmail client is.
"""

from __future__ import annotations

import asyncio
import mimetypes
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol

import structlog

from mail_mirror.config import Settings
from mail_mirror.exceptions import RelayError

logger = structlog.get_logger()


@dataclass(frozen=True)
class Attachment:
    filename: str
    content: bytes
    content_type: str | None = None


class MailRelay(Protocol):
    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: list[Attachment] | None = None,
    ) -> None: ...


def build_message(
    *,
    sender: str,
    to: str,
    subject: str,
    body: str,
    attachments: list[Attachment] | None = None,
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    msg.set_content(body or "")

    for att in attachments or []:
        ctype = att.content_type or mimetypes.guess_type(att.filename)[0] or "application/octet-stream"
        maintype, _, subtype = ctype.partition("/")
        msg.add_attachment(
            att.content,
            maintype=maintype,
            subtype=subtype or "octet-stream",
            filename=att.filename,
        )
    return msg


class SmtpRelay:
    """Sends mail through an authenticated SMTP server."""

    def __init__(self, settings: Settings | None = None) -> None:
        from mail_mirror.config import get_settings

        self.settings = settings or get_settings()

    @property
    def sender(self) -> str:
        return self.settings.smtp_username or self.settings.mailbox_address

    async def send(
        self,
        to: str,
        subject: str,
        body: str,
        attachments: list[Attachment] | None = None,
    ) -> None:
        """Deliver one message.

        Raises:
            RelayError: If the relay refuses or cannot be reached.
        """

        msg = build_message(
            sender=self.sender,
            to=to,
            subject=subject,
            body=body,
            attachments=attachments,
        )
        try:
            await asyncio.to_thread(self._send_sync, msg)
        except (smtplib.SMTPException, OSError) as exc:
            logger.error("smtp_send_failed", to=to, error=str(exc))
            raise RelayError(str(exc)) from exc

        logger.info("smtp_sent", to=to, attachments=len(attachments or []))

    def _send_sync(self, msg: EmailMessage) -> None:
        s = self.settings
        context = ssl.create_default_context()
        if s.smtp_use_ssl:
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, context=context, timeout=s.smtp_timeout)
        else:
            smtp = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout)
        with smtp:
            if not s.smtp_use_ssl:
                smtp.ehlo()
                if smtp.has_extn("starttls"):
                    smtp.starttls(context=context)
                    smtp.ehlo()
            if s.smtp_username and s.smtp_password:
                smtp.login(s.smtp_username, s.smtp_password)
            smtp.send_message(msg)
