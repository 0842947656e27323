"""Synchronization state: change-feed cursor and backlog seen-offset.

These are the only two pieces of true state besides the mirror itself:
- the cursor log is append-only; the current cursor is its newest row
- the seen offset is a single integer per mailbox, owned by the backlog reader
"""

from __future__ import annotations

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.engine import Connection, Engine

from mail_mirror.exceptions import CursorRegressionError
from mail_mirror.models import CursorEntry
from mail_mirror.store.db import connect, insert_ignore, store_write, upsert
from mail_mirror.store.schema import seen_offset, sync_cursor

logger = structlog.get_logger()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def is_older(candidate: str, current: str) -> bool:
    """Whether `candidate` precedes `current`.

    Gmail history ids are decimal strings; other providers' opaque tokens are
    never considered older.
    """

    if candidate.isdigit() and current.isdigit():
        return int(candidate) < int(current)
    return False


class CursorStore:
    """Persisted cursor log and seen-offset for one mailbox."""

    def __init__(self, engine: Engine, mailbox: str) -> None:
        self.engine = engine
        self.mailbox = mailbox

    def current(self, *, conn: Connection | None = None) -> str | None:
        c = sync_cursor.c
        stmt = (
            select(c.cursor)
            .where(c.mailbox == self.mailbox)
            .order_by(c.id.desc())
            .limit(1)
        )
        with connect(self.engine, conn) as cx:
            row = cx.execute(stmt).first()
        return None if row is None else str(row.cursor)

    def _head(self) -> tuple[int, str] | None:
        c = sync_cursor.c
        with self.engine.begin() as conn:
            row = conn.execute(
                select(c.id, c.cursor)
                .where(c.mailbox == self.mailbox)
                .order_by(c.id.desc())
                .limit(1)
            ).first()
        return None if row is None else (int(row.id), str(row.cursor))

    def advance(self, cursor: str) -> bool:
        """Append `cursor` to the log.

        The new row names the head it was checked against, and the log holds at
        most one successor per row. A writer that loses that race re-reads the
        head; if another process already stored a newer cursor, that one stays.

        Returns:
            False if nothing was written: `cursor` equals the current cursor, or
            a concurrent writer moved past it first.

        Raises:
            CursorRegressionError: If `cursor` is older than the current cursor.
        """

        overtaken = False
        while True:
            head = self._head()
            current = None if head is None else head[1]
            if current == cursor:
                return False
            if current is not None and is_older(cursor, current):
                if overtaken:
                    logger.info(
                        "cursor_advance_superseded", mailbox=self.mailbox, cursor=cursor, current=current
                    )
                    return False
                raise CursorRegressionError(
                    f"refusing to move cursor for {self.mailbox} from {current} back to {cursor}"
                )
            with store_write("advance_cursor", cursor=cursor), self.engine.begin() as conn:
                inserted = insert_ignore(
                    conn,
                    sync_cursor,
                    {
                        "mailbox": self.mailbox,
                        "cursor": cursor,
                        "parent_id": 0 if head is None else head[0],
                        "created_at": _now_utc(),
                    },
                    index_elements=("mailbox", "parent_id"),
                )
            if inserted:
                logger.info("cursor_advanced", mailbox=self.mailbox, previous=current, cursor=cursor)
                return True
            overtaken = True

    def history(self, limit: int = 20) -> list[CursorEntry]:
        c = sync_cursor.c
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(c.cursor, c.created_at)
                .where(c.mailbox == self.mailbox)
                .order_by(c.id.desc())
                .limit(limit)
            ).fetchall()
        return [CursorEntry(cursor=r.cursor, created_at=r.created_at) for r in rows]

    def seen_offset(self, *, conn: Connection | None = None) -> int:
        s = seen_offset.c
        with connect(self.engine, conn) as cx:
            value = cx.execute(select(s.seen_offset).where(s.mailbox == self.mailbox)).scalar()
        return int(value or 0)

    def set_seen_offset(self, value: int, *, conn: Connection | None = None) -> None:
        with store_write("set_seen_offset", value=value), connect(self.engine, conn) as cx:
            upsert(
                cx,
                seen_offset,
                {"mailbox": self.mailbox, "seen_offset": int(value), "updated_at": _now_utc()},
                index_elements=("mailbox",),
                update_columns=("seen_offset", "updated_at"),
            )
