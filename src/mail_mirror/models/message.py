"""Mirror-side message models.

A `MessageRecord` is the canonical, header-only view of a provider message.
It is immutable once written; read state is tracked by the unread set, not by
mutating the record.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


NO_SUBJECT = "(No Subject)"
UNKNOWN_SENDER = "(Unknown)"


class MessageRecord(BaseModel):
    """A normalized mailbox message."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider-native message ID")
    subject: str = Field(default=NO_SUBJECT, description="Subject header")
    sender: str = Field(default=UNKNOWN_SENDER, description="Raw From header")
    receiver: str = Field(description="Raw To header, or the mailbox address")
    received_at: datetime = Field(description="Parsed Date header (UTC)")
    is_unread: bool = Field(default=True, description="Whether the provider flags it UNREAD")


class ChangeKind(str, Enum):
    """Kind of change reported by the change feed."""

    ADDED = "added"
    DELETED = "deleted"


class ChangeEvent(BaseModel):
    """A normalized change-feed event."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeKind
    message_id: str


class ChangePage(BaseModel):
    """One provider page of change events.

    `cursor` is the provider's high-water mark as reported with this page.
    """

    events: list[ChangeEvent] = Field(default_factory=list)
    cursor: str | None = None


class ChangeBatch(BaseModel):
    """A fully drained change feed."""

    events: list[ChangeEvent] = Field(default_factory=list)
    newest_cursor: str | None = None
