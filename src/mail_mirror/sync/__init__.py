"""Incremental mailbox synchronization engine.

This package keeps the local mirror in step with the remote mailbox through
the provider's change feed and serves the client read paths over it.
"""

from .consumer import BacklogReader, DeltaReader
from .coordinator import CoordinatorRegistry, SyncCoordinator
from .feed import ChangeFeed, MailboxProvider
from .normalizer import MessageNormalizer
from .reconciler import Reconciler, SyncState
from .stats import StatsAggregator

__all__ = [
    "BacklogReader",
    "ChangeFeed",
    "CoordinatorRegistry",
    "DeltaReader",
    "MailboxProvider",
    "MessageNormalizer",
    "Reconciler",
    "StatsAggregator",
    "SyncCoordinator",
    "SyncState",
]
