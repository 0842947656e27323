"""Unit tests for per-mailbox pass serialization."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest

from mail_mirror.models import SyncOutcome, SyncResult
from mail_mirror.sync import CoordinatorRegistry, SyncCoordinator


class GatedReconciler:
    """Counts passes; each pass blocks until the gate opens."""

    def __init__(self) -> None:
        self.mirror = SimpleNamespace(mailbox="me@example.com")
        self.gate = asyncio.Event()
        self.passes = 0
        self.log: list[str] = []

    async def run_pass(self) -> SyncResult:
        self.passes += 1
        number = self.passes
        self.log.append(f"pass-{number}-start")
        await self.gate.wait()
        self.log.append(f"pass-{number}-end")
        return SyncResult(outcome=SyncOutcome.NOOP, total_unread=number)


@pytest.mark.asyncio
async def test_concurrent_triggers_coalesce_into_one_follow_up() -> None:
    reconciler = GatedReconciler()
    coordinator = SyncCoordinator(reconciler)

    first = asyncio.create_task(coordinator.trigger())
    await asyncio.sleep(0)
    second = asyncio.create_task(coordinator.trigger())
    third = asyncio.create_task(coordinator.trigger())
    await asyncio.sleep(0)
    assert coordinator.busy

    reconciler.gate.set()
    results = await asyncio.gather(first, second, third)

    assert reconciler.passes == 2
    assert [r.total_unread for r in results] == [1, 2, 2]
    assert reconciler.log == ["pass-1-start", "pass-1-end", "pass-2-start", "pass-2-end"]
    assert not coordinator.busy


@pytest.mark.asyncio
async def test_trigger_after_completion_runs_a_fresh_pass() -> None:
    reconciler = GatedReconciler()
    reconciler.gate.set()
    coordinator = SyncCoordinator(reconciler)

    await coordinator.trigger()
    await coordinator.trigger()

    assert reconciler.passes == 2


@pytest.mark.asyncio
async def test_exclusive_work_waits_for_in_flight_pass() -> None:
    reconciler = GatedReconciler()
    coordinator = SyncCoordinator(reconciler)

    async def listing() -> str:
        reconciler.log.append("listing")
        return "listed"

    pass_task = asyncio.create_task(coordinator.trigger())
    await asyncio.sleep(0)
    listing_task = asyncio.create_task(coordinator.run_exclusive(listing))
    await asyncio.sleep(0)
    reconciler.gate.set()

    await pass_task
    assert await listing_task == "listed"
    assert reconciler.log == ["pass-1-start", "pass-1-end", "listing"]


def test_registry_returns_one_coordinator_per_mailbox() -> None:
    built: list[str] = []

    def factory(mailbox: str) -> GatedReconciler:
        built.append(mailbox)
        return GatedReconciler()

    registry = CoordinatorRegistry(factory)

    assert registry.get("a@example.com") is registry.get("a@example.com")
    assert registry.get("a@example.com") is not registry.get("b@example.com")
    assert built == ["a@example.com", "b@example.com"]
