"""Mail Mirror - incremental Gmail mirroring into a relational store.

This package keeps a local copy of a mailbox's message metadata in step with
Gmail's change feed, and serves unread backlogs, deltas and counters over it.
"""

__version__ = "0.1.0"

from mail_mirror.config import Settings, get_settings

__all__ = ["Settings", "get_settings", "__version__"]
