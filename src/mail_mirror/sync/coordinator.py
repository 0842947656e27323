"""Per-mailbox serialization of synchronization passes.

At most one pass is in flight per mailbox. Triggers that arrive while a pass
runs coalesce into a single follow-up pass; every coalesced caller receives
that follow-up's result. Full listings and backfills queue behind the same
lock without coalescing.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from mail_mirror.models import SyncResult
from mail_mirror.sync.reconciler import Reconciler

logger = structlog.get_logger()

T = TypeVar("T")


class SyncCoordinator:
    def __init__(self, reconciler: Reconciler) -> None:
        self.reconciler = reconciler
        self._lock = asyncio.Lock()
        self._in_flight: asyncio.Future[SyncResult] | None = None
        self._follow_up: asyncio.Future[SyncResult] | None = None

    @property
    def busy(self) -> bool:
        return self._in_flight is not None and not self._in_flight.done()

    async def trigger(self) -> SyncResult:
        """Run a delta pass, or join the pending follow-up if one is queued."""

        if self._follow_up is not None:
            logger.debug("sync_trigger_coalesced", mailbox=self.reconciler.mirror.mailbox)
            return await asyncio.shield(self._follow_up)

        if self.busy:
            assert self._in_flight is not None
            self._follow_up = asyncio.ensure_future(self._after(self._in_flight))
            logger.debug("sync_follow_up_queued", mailbox=self.reconciler.mirror.mailbox)
            return await asyncio.shield(self._follow_up)

        self._in_flight = asyncio.ensure_future(self._pass())
        return await asyncio.shield(self._in_flight)

    async def run_exclusive(self, work: Callable[[], Awaitable[T]]) -> T:
        """Run `work` while no pass is in flight for this mailbox."""

        async with self._lock:
            return await work()

    async def _after(self, previous: asyncio.Future[SyncResult]) -> SyncResult:
        await asyncio.wait({previous})
        self._follow_up = None
        self._in_flight = asyncio.current_task()
        return await self._pass()

    async def _pass(self) -> SyncResult:
        async with self._lock:
            return await self.reconciler.run_pass()


class CoordinatorRegistry:
    """One coordinator per mailbox address."""

    def __init__(self, factory: Callable[[str], Reconciler]) -> None:
        self._factory = factory
        self._coordinators: dict[str, SyncCoordinator] = {}
        self._lock = threading.Lock()

    def get(self, mailbox: str) -> SyncCoordinator:
        with self._lock:
            coordinator = self._coordinators.get(mailbox)
            if coordinator is None:
                coordinator = SyncCoordinator(self._factory(mailbox))
                self._coordinators[mailbox] = coordinator
            return coordinator
