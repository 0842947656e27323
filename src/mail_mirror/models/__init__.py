"""Data models for Mail Mirror.

This module contains Pydantic models for data validation and serialization.
"""

from mail_mirror.models.api import (
    AggregateCounters,
    BacklogResponse,
    BatchSendResult,
    ChangeItem,
    ChangeList,
    CursorEntry,
    DeltaResponse,
    MailItem,
    MailPage,
    MirrorItem,
    RangeStats,
    SendResponse,
    SentMailList,
    SentMailRecord,
    SyncOutcome,
    SyncResult,
)
from mail_mirror.models.message import (
    NO_SUBJECT,
    UNKNOWN_SENDER,
    ChangeBatch,
    ChangeEvent,
    ChangeKind,
    ChangePage,
    MessageRecord,
)

__all__ = [
    "AggregateCounters",
    "BacklogResponse",
    "BatchSendResult",
    "ChangeBatch",
    "ChangeEvent",
    "ChangeKind",
    "ChangeItem",
    "ChangeList",
    "ChangePage",
    "CursorEntry",
    "DeltaResponse",
    "MailItem",
    "MailPage",
    "MessageRecord",
    "MirrorItem",
    "NO_SUBJECT",
    "RangeStats",
    "SendResponse",
    "SentMailList",
    "SentMailRecord",
    "SyncOutcome",
    "SyncResult",
    "UNKNOWN_SENDER",
]
