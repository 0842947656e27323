"""Client read paths over the unread set.

Neither reader contacts the provider.

- BacklogReader: offset pointer. Each call returns the unread entries that
  arrived since the previous call and moves the pointer to the end.
- DeltaReader: watermark. The caller passes back the id it was last given and
  receives the next page strictly after it.
"""

from __future__ import annotations

import threading

import structlog

from mail_mirror.models import BacklogResponse, DeltaResponse
from mail_mirror.store.cursors import CursorStore
from mail_mirror.store.db import store_write
from mail_mirror.store.mirror import CountScope, MirrorStore

logger = structlog.get_logger()

DEFAULT_DELTA_PAGE_SIZE = 10


class BacklogReader:
    """Offset-based reader; the only writer of the seen offset."""

    def __init__(self, mirror: MirrorStore, cursors: CursorStore) -> None:
        self.mirror = mirror
        self.cursors = cursors
        self._lock = threading.Lock()

    def read(self) -> BacklogResponse:
        with self._lock, store_write("read_backlog"), self.mirror.engine.begin() as conn:
            total = self.mirror.count(CountScope.UNREAD, conn=conn)
            previous = min(max(0, self.cursors.seen_offset(conn=conn)), total)
            data = []
            if total > previous:
                data = self.mirror.list_unread(offset=previous, limit=total - previous, conn=conn)
            self.cursors.set_seen_offset(total, conn=conn)

        logger.info(
            "backlog_read",
            mailbox=self.mirror.mailbox,
            previous_offset=previous,
            seen_offset=total,
            new_count=len(data),
        )
        return BacklogResponse(new_count=len(data), data=data)


class DeltaReader:
    def __init__(self, mirror: MirrorStore, *, page_size: int = DEFAULT_DELTA_PAGE_SIZE) -> None:
        self.mirror = mirror
        self.page_size = page_size

    def read(self, last_seen_id: str | None = None, *, limit: int | None = None) -> DeltaResponse:
        """Return the next unread page after `last_seen_id` (or the oldest page).

        Raises:
            UnknownWatermarkError: If `last_seen_id` is not in the unread set.
        """

        size = limit or self.page_size
        if last_seen_id:
            data = self.mirror.list_unread_after(last_seen_id, limit=size)
        else:
            data = self.mirror.list_unread(offset=0, limit=size)

        return DeltaResponse(
            total_unread=self.mirror.count(CountScope.UNREAD),
            data=data,
            last_delta_id=data[-1].id if data else last_seen_id,
        )
