"""Mirror tables: full mirror, unread subset and received log.

Every write is keyed on (mailbox, provider message id) and is a no-op when
the key already exists. That conflict is the only idempotence mechanism the
reconciler relies on when the change feed redelivers events.

Unread ordering is ascending (received_at, message_id): oldest unseen first,
so an offset into it keeps its meaning while new messages arrive at the tail.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.engine import Connection, Engine, Row

from mail_mirror.exceptions import StoreWriteError, UnknownWatermarkError
from mail_mirror.models import ChangeEvent, MailItem, MessageRecord, MirrorItem
from mail_mirror.store.db import connect, insert_ignore, store_write
from mail_mirror.store.schema import change_log, mirror_message, received_log, unread_message

logger = structlog.get_logger()


class CountScope(str, Enum):
    MIRROR = "mirror"
    UNREAD = "unread"
    RECEIVED = "received"


_SCOPE_TABLES = {
    CountScope.MIRROR: mirror_message,
    CountScope.UNREAD: unread_message,
    CountScope.RECEIVED: received_log,
}


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _row_to_item(row: Row) -> MailItem:
    return MailItem(
        id=row.message_id,
        subject=row.subject,
        sender=row.sender,
        receiver=row.receiver,
        received_at=_as_utc(row.received_at) if row.received_at else None,
    )


class MirrorStore:
    """Repository over the mirror tables of one mailbox."""

    def __init__(self, engine: Engine, mailbox: str) -> None:
        self.engine = engine
        self.mailbox = mailbox

    def upsert_message(self, record: MessageRecord, *, seen: bool = False) -> bool:
        """Insert a record into the full mirror and the received log.

        Returns:
            True if the mirror did not hold the message before.
        """

        values = {
            "mailbox": self.mailbox,
            "message_id": record.id,
            "subject": record.subject,
            "sender": record.sender,
            "receiver": record.receiver,
            "received_at": _as_utc(record.received_at),
        }
        with store_write("upsert_message", message_id=record.id), self.engine.begin() as conn:
            inserted = insert_ignore(
                conn,
                mirror_message,
                {**values, "seen": seen},
                index_elements=("mailbox", "message_id"),
            )
            insert_ignore(conn, received_log, values, index_elements=("mailbox", "message_id"))
        return inserted

    def mark_as_unread(self, message_id: str) -> bool:
        """Add a mirrored message to the unread set and clear its seen flag.

        Raises:
            StoreWriteError: If the message is not in the mirror.
        """

        m = mirror_message.c
        with store_write("mark_as_unread", message_id=message_id), self.engine.begin() as conn:
            row = conn.execute(
                select(m.message_id, m.subject, m.sender, m.receiver, m.received_at).where(
                    m.mailbox == self.mailbox, m.message_id == message_id
                )
            ).first()
            if row is None:
                raise StoreWriteError(f"message {message_id!r} is not mirrored")
            conn.execute(
                update(mirror_message)
                .where(m.mailbox == self.mailbox, m.message_id == message_id)
                .values(seen=False)
            )
            return insert_ignore(
                conn,
                unread_message,
                {
                    "mailbox": self.mailbox,
                    "message_id": row.message_id,
                    "subject": row.subject,
                    "sender": row.sender,
                    "receiver": row.receiver,
                    "received_at": row.received_at,
                },
                index_elements=("mailbox", "message_id"),
            )

    def record_change(self, event: ChangeEvent, *, cursor: str | None) -> bool:
        """Log a change-feed event. Deleted events never remove mirrored rows."""

        with store_write("record_change", message_id=event.message_id), self.engine.begin() as conn:
            return insert_ignore(
                conn,
                change_log,
                {
                    "mailbox": self.mailbox,
                    "kind": event.kind.value,
                    "message_id": event.message_id,
                    "cursor": cursor,
                },
                index_elements=("mailbox", "kind", "message_id"),
            )

    def contains(self, message_id: str) -> bool:
        m = mirror_message.c
        with self.engine.begin() as conn:
            row = conn.execute(
                select(m.message_id).where(m.mailbox == self.mailbox, m.message_id == message_id)
            ).first()
        return row is not None

    def list_unread(
        self,
        *,
        offset: int = 0,
        limit: int | None = None,
        conn: Connection | None = None,
    ) -> list[MailItem]:
        """List unread entries oldest first, starting at rank `offset`."""

        u = unread_message.c
        stmt = (
            select(u.message_id, u.subject, u.sender, u.receiver, u.received_at)
            .where(u.mailbox == self.mailbox)
            .order_by(u.received_at.asc(), u.message_id.asc())
            .offset(max(0, offset))
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with connect(self.engine, conn) as c:
            rows = c.execute(stmt).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_unread_after(self, message_id: str, *, limit: int) -> list[MailItem]:
        """List unread entries ranked strictly after `message_id`.

        Raises:
            UnknownWatermarkError: If `message_id` is not in the unread set.
        """

        u = unread_message.c
        with self.engine.begin() as conn:
            anchor = conn.execute(
                select(u.received_at).where(u.mailbox == self.mailbox, u.message_id == message_id)
            ).first()
            if anchor is None:
                raise UnknownWatermarkError(f"unknown watermark: {message_id}")

            rows = conn.execute(
                select(u.message_id, u.subject, u.sender, u.receiver, u.received_at)
                .where(
                    u.mailbox == self.mailbox,
                    or_(
                        u.received_at > anchor.received_at,
                        and_(u.received_at == anchor.received_at, u.message_id > message_id),
                    ),
                )
                .order_by(u.received_at.asc(), u.message_id.asc())
                .limit(limit)
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_unread_by_ids(self, message_ids: Iterable[str]) -> list[MailItem]:
        """Return unread entries among `message_ids`, newest first."""

        ids = list(dict.fromkeys(message_ids))
        if not ids:
            return []
        u = unread_message.c
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(u.message_id, u.subject, u.sender, u.receiver, u.received_at)
                .where(u.mailbox == self.mailbox, u.message_id.in_(ids))
                .order_by(u.received_at.desc(), u.message_id.desc())
            ).fetchall()
        return [_row_to_item(r) for r in rows]

    def list_all(self, *, page: int, page_size: int) -> list[MirrorItem]:
        """Page through the full mirror, newest first. Pages are 1-based."""

        m = mirror_message.c
        offset = (max(1, page) - 1) * page_size
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(m.message_id, m.subject, m.sender, m.receiver, m.received_at, m.seen)
                .where(m.mailbox == self.mailbox)
                .order_by(m.received_at.desc(), m.message_id.desc())
                .limit(page_size)
                .offset(offset)
            ).fetchall()
        return [
            MirrorItem(**_row_to_item(r).model_dump(), seen=bool(r.seen))
            for r in rows
        ]

    def count(
        self,
        scope: CountScope | str = CountScope.MIRROR,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        conn: Connection | None = None,
    ) -> int:
        """Count rows in a mirror table, optionally within a received_at range.

        The range is half-open: `start <= received_at < end`.
        """

        table = _SCOPE_TABLES[CountScope(scope)]
        stmt = select(func.count()).select_from(table).where(table.c.mailbox == self.mailbox)
        if start is not None:
            stmt = stmt.where(table.c.received_at >= _as_utc(start))
        if end is not None:
            stmt = stmt.where(table.c.received_at < _as_utc(end))
        with connect(self.engine, conn) as c:
            return int(c.execute(stmt).scalar() or 0)
