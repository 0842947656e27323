"""Fetch a provider message and normalize it into a MessageRecord."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

from mail_mirror.gmail.client import METADATA_HEADERS
from mail_mirror.gmail.parsing import message_to_record
from mail_mirror.models import MessageRecord
from mail_mirror.sync.feed import MailboxProvider


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


class MessageNormalizer:
    def __init__(
        self,
        provider: MailboxProvider,
        mailbox_address: str,
        *,
        now: Callable[[], datetime] = _now_utc,
    ) -> None:
        self.provider = provider
        self.mailbox_address = mailbox_address
        self._now = now

    async def fetch(self, message_id: str) -> MessageRecord:
        """Fetch metadata for `message_id`.

        Provider errors propagate; malformed metadata does not (placeholders
        are used instead).
        """

        message = await self.provider.get_message(
            message_id,
            format="metadata",
            metadata_headers=list(METADATA_HEADERS),
        )
        if not message.get("id"):
            message = {**message, "id": message_id}
        return message_to_record(message, mailbox_address=self.mailbox_address, now=self._now)
