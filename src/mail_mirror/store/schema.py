"""Runtime schema bootstrap.

Tables:
- mirror_message: full mirror of the mailbox (materialized view)
- unread_message: unread subset, ordered by received time for client paging
- received_log: historical log of every message the mirror has observed
- change_log: change-feed events as received (deleted events never purge rows)
- sync_cursor: append-only change-feed cursor log; each row names the row it
  supersedes, so at most one writer can extend a given head
- seen_offset: backlog reader pointer, one row per mailbox
- counter_snapshot: recomputed aggregate counters (history, not a source of truth)
- sent_mail: append-only outbound log

`ensure_schema` is idempotent and safe to call on every startup.
"""

from __future__ import annotations

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.engine import Engine

metadata = MetaData()

mirror_message = Table(
    "mirror_message",
    metadata,
    Column("mailbox", String(320), primary_key=True),
    Column("message_id", String(128), primary_key=True),
    Column("subject", Text),
    Column("sender", Text),
    Column("receiver", Text),
    Column("received_at", DateTime(timezone=True), nullable=False),
    Column("seen", Boolean, nullable=False, default=False),
    Column("synced_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    Index("idx_mirror_message_received_at", "mailbox", "received_at"),
)

unread_message = Table(
    "unread_message",
    metadata,
    Column("mailbox", String(320), primary_key=True),
    Column("message_id", String(128), primary_key=True),
    Column("subject", Text),
    Column("sender", Text),
    Column("receiver", Text),
    Column("received_at", DateTime(timezone=True), nullable=False),
    Index("idx_unread_message_rank", "mailbox", "received_at", "message_id"),
)

received_log = Table(
    "received_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mailbox", String(320), nullable=False),
    Column("message_id", String(128), nullable=False),
    Column("subject", Text),
    Column("sender", Text),
    Column("receiver", Text),
    Column("received_at", DateTime(timezone=True), nullable=False),
    Column("logged_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("mailbox", "message_id", name="uq_received_log_message"),
)

change_log = Table(
    "change_log",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mailbox", String(320), nullable=False),
    Column("kind", String(16), nullable=False),
    Column("message_id", String(128), nullable=False),
    Column("cursor", String(64)),
    Column("recorded_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("mailbox", "kind", "message_id", name="uq_change_log_event"),
)

sync_cursor = Table(
    "sync_cursor",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mailbox", String(320), nullable=False, index=True),
    Column("cursor", String(64), nullable=False),
    Column("parent_id", Integer, nullable=False, default=0),
    Column("created_at", DateTime(timezone=True), nullable=False, server_default=func.now()),
    UniqueConstraint("mailbox", "parent_id", name="uq_sync_cursor_parent"),
)

seen_offset = Table(
    "seen_offset",
    metadata,
    Column("mailbox", String(320), primary_key=True),
    Column("seen_offset", Integer, nullable=False, default=0),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

counter_snapshot = Table(
    "counter_snapshot",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("mailbox", String(320), nullable=False, index=True),
    Column("total_inbox", Integer, nullable=False),
    Column("total_unread", Integer, nullable=False),
    Column("currently_loaded_unread", Integer, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)

sent_mail = Table(
    "sent_mail",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("sender", String(320)),
    Column("receiver", Text, nullable=False),
    Column("subject", Text),
    Column("message", Text),
    Column("attachment_count", Integer, nullable=False, default=0),
    Column("sent_at", DateTime(timezone=True), nullable=False),
)


def ensure_schema(engine: Engine) -> None:
    """Ensure required tables exist (idempotent).

    Args:
        engine: SQLAlchemy engine bound to the mirror database.
    """

    metadata.create_all(engine, checkfirst=True)
