"""Append-only log of outbound mail."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.engine import Engine

from mail_mirror.models import SentMailRecord
from mail_mirror.store.db import store_write
from mail_mirror.store.schema import sent_mail


class SentMailLog:
    def __init__(self, engine: Engine, sender: str | None = None) -> None:
        self.engine = engine
        self.sender = sender

    def record(
        self,
        *,
        receiver: str,
        subject: str | None,
        message: str | None,
        attachment_count: int = 0,
    ) -> SentMailRecord:
        sent_at = datetime.now(timezone.utc)
        with store_write("record_sent_mail", receiver=receiver), self.engine.begin() as conn:
            result = conn.execute(
                sent_mail.insert().values(
                    sender=self.sender,
                    receiver=receiver,
                    subject=subject,
                    message=message,
                    attachment_count=attachment_count,
                    sent_at=sent_at,
                )
            )
            row_id = result.inserted_primary_key[0]
        return SentMailRecord(
            id=int(row_id),
            receiver=receiver,
            subject=subject,
            message=message,
            sent_at=sent_at,
        )

    def list_recent(self, limit: int = 21) -> list[SentMailRecord]:
        s = sent_mail.c
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(s.id, s.receiver, s.subject, s.message, s.sent_at)
                .order_by(s.id.desc())
                .limit(limit)
            ).fetchall()
        return [
            SentMailRecord(
                id=r.id,
                receiver=r.receiver,
                subject=r.subject,
                message=r.message,
                sent_at=r.sent_at,
            )
            for r in rows
        ]
