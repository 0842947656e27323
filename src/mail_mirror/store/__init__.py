"""Relational store for the mailbox mirror."""

from .cursors import CursorStore
from .db import create_store_engine
from .mirror import CountScope, MirrorStore
from .schema import ensure_schema
from .sent import SentMailLog

__all__ = [
    "CountScope",
    "CursorStore",
    "MirrorStore",
    "SentMailLog",
    "create_store_engine",
    "ensure_schema",
]
