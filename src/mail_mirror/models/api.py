"""API models for the Mail Mirror backend.

Field names are snake_case in Python and camelCase on the wire.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MailItem(CamelModel):
    id: str
    subject: str | None = None
    sender: str | None = None
    receiver: str | None = None
    received_at: datetime | None = None


class MirrorItem(MailItem):
    seen: bool = False


class BacklogResponse(CamelModel):
    message: str = "success"
    new_count: int
    data: list[MailItem]


class DeltaResponse(CamelModel):
    total_unread: int
    data: list[MailItem]
    last_delta_id: str | None = None


class MailPage(CamelModel):
    message: str = "success"
    page: int
    page_size: int
    total_pages: int
    total_mails: int
    data: list[MirrorItem]


class AggregateCounters(CamelModel):
    total_inbox: int = 0
    total_unread: int = 0
    currently_loaded_unread: int = 0


class RangeStats(CamelModel):
    start: date
    end: date
    total_inbox: int = 0
    total_unread: int = 0


class SyncOutcome(str, Enum):
    BOOTSTRAPPED = "bootstrapped"
    NOOP = "noop"
    APPLIED = "applied"
    RESYNCED = "resynced"
    LISTED = "listed"


class SyncResult(CamelModel):
    """Summary of one reconciler pass."""

    message: str = "success"
    outcome: SyncOutcome
    cursor_before: str | None = None
    cursor_after: str | None = None
    added: int = 0
    deleted: int = 0
    skipped: int = 0
    total_unread: int = 0
    data: list[MailItem] = Field(default_factory=list)


class ChangeItem(CamelModel):
    kind: str
    id: str
    mirrored: bool = False


class ChangeList(CamelModel):
    """Pending change-feed events after the stored cursor, not yet applied."""

    message: str = "success"
    cursor: str
    newest_cursor: str
    data: list[ChangeItem]


class CursorEntry(CamelModel):
    cursor: str
    created_at: datetime | None = None


class SentMailRecord(CamelModel):
    id: int | None = None
    receiver: str
    subject: str | None = None
    message: str | None = None
    sent_at: datetime | None = None


class SentMailList(CamelModel):
    sent_emails: list[SentMailRecord]


class SendResponse(CamelModel):
    message: str


class BatchSendResult(CamelModel):
    message: str = "success"
    attempted: int = 0
    sent: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)
