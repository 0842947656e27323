"""Synchronization passes.

A delta pass walks the change feed from the stored cursor:

    idle -> fetching_changes -> applying_page (per page) -> advancing_cursor
         -> recomputing_counters -> idle

With no stored cursor the pass bootstraps instead: it stores the provider's
current cursor and returns an empty delta. A full listing (first-run unread
scan, date-range backfill, or recovery from an expired cursor) goes:

    idle -> full_listing -> applying_page -> recomputing_counters -> idle

The cursor is written only after every event of the pass has been applied.
Any failure before that point leaves it untouched, so a retry replays the
same events and the insert-or-ignore writes absorb the repeated work.

Store calls are blocking SQLAlchemy statements. They run in worker threads
and the pass timeout covers them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from enum import Enum
from typing import TypeVar

import structlog

from mail_mirror.exceptions import (
    BootstrapRequiredError,
    CursorExpiredError,
    MessageNotFoundError,
    SyncTimeoutError,
)
from mail_mirror.models import ChangeEvent, ChangeKind, SyncOutcome, SyncResult
from mail_mirror.store.cursors import CursorStore, is_older
from mail_mirror.store.mirror import MirrorStore
from mail_mirror.sync.feed import ChangeFeed
from mail_mirror.sync.normalizer import MessageNormalizer
from mail_mirror.sync.stats import StatsAggregator

logger = structlog.get_logger()

T = TypeVar("T")


class SyncState(str, Enum):
    IDLE = "idle"
    BOOTSTRAPPING = "bootstrapping"
    FETCHING_CHANGES = "fetching_changes"
    APPLYING_PAGE = "applying_page"
    ADVANCING_CURSOR = "advancing_cursor"
    FULL_LISTING = "full_listing"
    RECOMPUTING_COUNTERS = "recomputing_counters"


class _PassTally:
    def __init__(self) -> None:
        self.added_ids: list[str] = []
        self.deleted = 0
        self.skipped = 0
        self._applied: set[str] = set()

    def already_applied(self, message_id: str) -> bool:
        return message_id in self._applied

    def applied(self, message_id: str) -> None:
        self._applied.add(message_id)
        self.added_ids.append(message_id)


class Reconciler:
    """Drives one synchronization pass at a time for a single mailbox.

    Callers must serialize passes (see `SyncCoordinator`).
    """

    def __init__(
        self,
        *,
        feed: ChangeFeed,
        normalizer: MessageNormalizer,
        mirror: MirrorStore,
        cursors: CursorStore,
        stats: StatsAggregator,
        unread_query: str = "is:unread",
        unread_limit: int | None = 50,
        timeout_seconds: float | None = None,
    ) -> None:
        self.feed = feed
        self.normalizer = normalizer
        self.mirror = mirror
        self.cursors = cursors
        self.stats = stats
        self.unread_query = unread_query
        self.unread_limit = unread_limit
        self.timeout_seconds = timeout_seconds
        self.state = SyncState.IDLE

    async def run_pass(self) -> SyncResult:
        """Run one delta pass (or bootstrap, or recovery resync)."""

        return await self._bounded(self._delta_pass(), kind="delta")

    async def run_full_listing(
        self,
        query: str | None = None,
        *,
        limit: int | None = None,
        assume_unread: bool = True,
    ) -> SyncResult:
        """List and mirror every message matching `query`.

        Args:
            query: Provider search query; defaults to the unread query.
            limit: Maximum messages to list.
            assume_unread: Put every listed message in the unread set. When
                False only messages the provider flags UNREAD are added.
        """

        resolved = query if query is not None else self.unread_query
        return await self._bounded(
            self._full_listing(resolved, limit=limit, assume_unread=assume_unread),
            kind="full_listing",
        )

    async def _bounded(self, work: Awaitable[T], *, kind: str) -> T:
        try:
            if self.timeout_seconds:
                return await asyncio.wait_for(work, timeout=self.timeout_seconds)
            return await work
        except asyncio.TimeoutError as exc:
            logger.warning(
                "sync_pass_timed_out",
                mailbox=self.mirror.mailbox,
                kind=kind,
                state=self.state.value,
                timeout_seconds=self.timeout_seconds,
            )
            raise SyncTimeoutError(
                f"{kind} pass did not complete within {self.timeout_seconds}s"
            ) from exc
        except Exception as exc:
            logger.warning(
                "sync_pass_failed",
                mailbox=self.mirror.mailbox,
                kind=kind,
                state=self.state.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            raise
        finally:
            self._transition(SyncState.IDLE)

    def _transition(self, state: SyncState) -> None:
        if state is not self.state:
            logger.debug("sync_state", mailbox=self.mirror.mailbox, previous=self.state.value, state=state.value)
            self.state = state

    async def _delta_pass(self) -> SyncResult:
        cursor_before = await asyncio.to_thread(self.cursors.current)
        newest = cursor_before
        tally = _PassTally()

        self._transition(SyncState.FETCHING_CHANGES)
        try:
            async for page in self.feed.iter_pages(cursor_before):
                self._transition(SyncState.APPLYING_PAGE)
                await self._apply_events(page.events, cursor=page.cursor, tally=tally)
                if page.cursor and (newest is None or not is_older(page.cursor, newest)):
                    newest = page.cursor
                self._transition(SyncState.FETCHING_CHANGES)
        except BootstrapRequiredError:
            return await self._bootstrap()
        except CursorExpiredError:
            logger.warning("cursor_expired", mailbox=self.mirror.mailbox, cursor=cursor_before)
            return await self._resync(cursor_before)

        self._transition(SyncState.ADVANCING_CURSOR)
        if newest and newest != cursor_before:
            await asyncio.to_thread(self.cursors.advance, newest)

        self._transition(SyncState.RECOMPUTING_COUNTERS)
        counters = await asyncio.to_thread(self.stats.snapshot)

        outcome = SyncOutcome.APPLIED if (tally.added_ids or tally.deleted or tally.skipped) else SyncOutcome.NOOP
        logger.info(
            "delta_pass_done",
            mailbox=self.mirror.mailbox,
            outcome=outcome.value,
            cursor_before=cursor_before,
            cursor_after=newest,
            added=len(tally.added_ids),
            deleted=tally.deleted,
            skipped=tally.skipped,
        )
        return SyncResult(
            outcome=outcome,
            cursor_before=cursor_before,
            cursor_after=newest,
            added=len(tally.added_ids),
            deleted=tally.deleted,
            skipped=tally.skipped,
            total_unread=counters.total_unread,
            data=await asyncio.to_thread(self.mirror.list_unread_by_ids, tally.added_ids),
        )

    async def _bootstrap(self) -> SyncResult:
        self._transition(SyncState.BOOTSTRAPPING)
        cursor = await self.feed.bootstrap_cursor()
        await asyncio.to_thread(self.cursors.advance, cursor)
        logger.info("cursor_bootstrapped", mailbox=self.mirror.mailbox, cursor=cursor)
        return SyncResult(
            message="Initial cursor saved. Trigger again to fetch new mail.",
            outcome=SyncOutcome.BOOTSTRAPPED,
            cursor_before=None,
            cursor_after=cursor,
            total_unread=(await asyncio.to_thread(self.stats.compute)).total_unread,
        )

    async def _resync(self, cursor_before: str | None) -> SyncResult:
        fresh = await self.feed.bootstrap_cursor()
        result = await self._full_listing(
            self.unread_query,
            limit=self.unread_limit,
            assume_unread=True,
            cursor_after_listing=fresh,
        )
        return result.model_copy(
            update={"outcome": SyncOutcome.RESYNCED, "cursor_before": cursor_before}
        )

    async def _full_listing(
        self,
        query: str | None,
        *,
        limit: int | None,
        assume_unread: bool,
        cursor_after_listing: str | None = None,
    ) -> SyncResult:
        self._transition(SyncState.FULL_LISTING)
        cursor_before = await asyncio.to_thread(self.cursors.current)

        # Capture the high-water mark before listing so later deltas replay
        # anything that lands while the listing runs.
        if cursor_after_listing is None and cursor_before is None:
            cursor_after_listing = await self.feed.bootstrap_cursor()

        tally = _PassTally()
        logger.info("full_listing_start", mailbox=self.mirror.mailbox, query=query, limit=limit)
        async for message_id in self.feed.iter_listing(query, limit=limit):
            self._transition(SyncState.APPLYING_PAGE)
            await self._apply_added(message_id, tally=tally, assume_unread=assume_unread)
            self._transition(SyncState.FULL_LISTING)

        cursor_after = cursor_before
        if cursor_after_listing is not None:
            self._transition(SyncState.ADVANCING_CURSOR)
            await asyncio.to_thread(self.cursors.advance, cursor_after_listing)
            cursor_after = cursor_after_listing

        self._transition(SyncState.RECOMPUTING_COUNTERS)
        counters = await asyncio.to_thread(self.stats.snapshot)

        logger.info(
            "full_listing_done",
            mailbox=self.mirror.mailbox,
            query=query,
            listed=len(tally.added_ids),
            skipped=tally.skipped,
        )
        return SyncResult(
            outcome=SyncOutcome.LISTED,
            cursor_before=cursor_before,
            cursor_after=cursor_after,
            added=len(tally.added_ids),
            skipped=tally.skipped,
            total_unread=counters.total_unread,
            data=await asyncio.to_thread(self.mirror.list_unread_by_ids, tally.added_ids),
        )

    async def _apply_events(
        self,
        events: list[ChangeEvent],
        *,
        cursor: str | None,
        tally: _PassTally,
    ) -> None:
        for event in events:
            await asyncio.to_thread(self.mirror.record_change, event, cursor=cursor)
            if event.kind is ChangeKind.DELETED:
                tally.deleted += 1
                continue
            await self._apply_added(event.message_id, tally=tally, assume_unread=True)

    async def _apply_added(self, message_id: str, *, tally: _PassTally, assume_unread: bool) -> None:
        if tally.already_applied(message_id):
            return
        try:
            record = await self.normalizer.fetch(message_id)
        except MessageNotFoundError:
            tally.skipped += 1
            logger.info("message_vanished", mailbox=self.mirror.mailbox, message_id=message_id)
            return

        unread = assume_unread or record.is_unread
        await asyncio.to_thread(self.mirror.upsert_message, record, seen=not unread)
        if unread:
            await asyncio.to_thread(self.mirror.mark_as_unread, record.id)
        tally.applied(record.id)
