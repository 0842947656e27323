"""Derived mailbox counters.

Counters are always recomputed from the mirror tables and the seen offset.
Snapshots are written for history only and are never read back as the
system of record.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone

import structlog

from mail_mirror.models import AggregateCounters, RangeStats
from mail_mirror.store.cursors import CursorStore
from mail_mirror.store.db import store_write
from mail_mirror.store.mirror import CountScope, MirrorStore
from mail_mirror.store.schema import counter_snapshot

logger = structlog.get_logger()


class StatsAggregator:
    def __init__(self, mirror: MirrorStore, cursors: CursorStore) -> None:
        self.mirror = mirror
        self.cursors = cursors

    def compute(self) -> AggregateCounters:
        with self.mirror.engine.begin() as conn:
            total_inbox = self.mirror.count(CountScope.MIRROR, conn=conn)
            total_unread = self.mirror.count(CountScope.UNREAD, conn=conn)
            loaded = self.cursors.seen_offset(conn=conn)
        return AggregateCounters(
            total_inbox=total_inbox,
            total_unread=total_unread,
            currently_loaded_unread=min(max(0, loaded), total_unread),
        )

    def compute_range(self, start: date, end: date) -> RangeStats:
        """Count mirrored and unread messages received on the UTC days start..end, inclusive."""

        lower = datetime.combine(start, time.min, tzinfo=timezone.utc)
        upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=timezone.utc)
        with self.mirror.engine.begin() as conn:
            total_inbox = self.mirror.count(CountScope.MIRROR, start=lower, end=upper, conn=conn)
            total_unread = self.mirror.count(CountScope.UNREAD, start=lower, end=upper, conn=conn)
        return RangeStats(start=start, end=end, total_inbox=total_inbox, total_unread=total_unread)

    def snapshot(self) -> AggregateCounters:
        """Recompute counters and append them to the snapshot history."""

        counters = self.compute()
        with store_write("counter_snapshot"), self.mirror.engine.begin() as conn:
            conn.execute(
                counter_snapshot.insert().values(
                    mailbox=self.mirror.mailbox,
                    total_inbox=counters.total_inbox,
                    total_unread=counters.total_unread,
                    currently_loaded_unread=counters.currently_loaded_unread,
                    created_at=datetime.now(timezone.utc),
                )
            )
        logger.info(
            "counters_recomputed",
            mailbox=self.mirror.mailbox,
            total_inbox=counters.total_inbox,
            total_unread=counters.total_unread,
            currently_loaded_unread=counters.currently_loaded_unread,
        )
        return counters
