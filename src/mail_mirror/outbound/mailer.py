"""Outbound send path.

A sent-log row is written only after the relay reports success. Nothing here
touches synchronization state.
"""

from __future__ import annotations

import structlog

from mail_mirror.exceptions import RelayError
from mail_mirror.models import BatchSendResult, SentMailRecord
from mail_mirror.outbound.relay import Attachment, MailRelay
from mail_mirror.outbound.spreadsheet import parse_send_rows
from mail_mirror.store.sent import SentMailLog

logger = structlog.get_logger()

# Keep batch responses small.
MAX_ERROR_SAMPLES = 20


class OutboundMailer:
    def __init__(self, relay: MailRelay, sent_log: SentMailLog) -> None:
        self.relay = relay
        self.sent_log = sent_log

    async def send_one(
        self,
        *,
        to: str,
        subject: str,
        body: str,
        attachments: list[Attachment] | None = None,
    ) -> SentMailRecord:
        """Send one message and log it.

        Raises:
            RelayError: If the relay fails; nothing is logged in that case.
        """

        await self.relay.send(to, subject, body, attachments)
        return self.sent_log.record(
            receiver=to,
            subject=subject,
            message=body,
            attachment_count=len(attachments or []),
        )

    async def send_spreadsheet(self, file_content: bytes) -> BatchSendResult:
        """Send one message per spreadsheet row.

        Raises:
            SpreadsheetError: If the workbook cannot be used as a batch.
        """

        rows = parse_send_rows(file_content)
        result = BatchSendResult()
        for row in rows:
            result.attempted += 1
            try:
                await self.send_one(to=row.to, subject=row.subject, body=row.message)
            except RelayError as exc:
                result.failed += 1
                if len(result.errors) < MAX_ERROR_SAMPLES:
                    result.errors.append(f"row {row.row_number} ({row.to}): {exc}")
                continue
            result.sent += 1

        result.message = f"{result.sent} emails sent successfully!"
        logger.info(
            "spreadsheet_batch_done",
            attempted=result.attempted,
            sent=result.sent,
            failed=result.failed,
        )
        return result
