"""Synchronization triggers.

Each trigger runs a reconciler pass for the configured mailbox. Delta passes
are coalesced per mailbox; listings and backfills queue behind them.
"""

from __future__ import annotations

import asyncio
from datetime import date, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse

from mail_mirror.api.deps import MailboxServices, get_services
from mail_mirror.models import ChangeItem, ChangeList, CursorEntry, SyncResult

router = APIRouter(prefix="/api/sync", tags=["sync"])

BACKLOG_PATH = "/api/mails/backlog"


@router.post("")
async def trigger_sync(services: MailboxServices = Depends(get_services)) -> RedirectResponse:
    """Run a delta pass, then hand over to the backlog reader."""

    await services.ready()
    await services.coordinator.trigger()
    return RedirectResponse(BACKLOG_PATH, status_code=303)


@router.post("/delta", response_model=SyncResult)
async def delta_sync(services: MailboxServices = Depends(get_services)) -> SyncResult:
    """Run a delta pass and return the newly mirrored unread messages."""

    await services.ready()
    return await services.coordinator.trigger()


@router.post("/unread")
async def read_unread(
    limit: int | None = Query(default=None, ge=1, le=500),
    services: MailboxServices = Depends(get_services),
) -> RedirectResponse:
    """List unread messages from the provider, then hand over to the backlog reader."""

    await services.ready()
    reconciler = services.reconciler
    resolved = limit or services.settings.unread_listing_limit
    await services.coordinator.run_exclusive(
        lambda: reconciler.run_full_listing(services.settings.unread_query, limit=resolved)
    )
    return RedirectResponse(BACKLOG_PATH, status_code=303)


@router.post("/backfill", response_model=SyncResult)
async def backfill(
    after: date = Query(description="First day to include"),
    before: date = Query(description="Last day to include"),
    services: MailboxServices = Depends(get_services),
) -> SyncResult:
    """Mirror every message received within [after, before]."""

    if before < after:
        raise HTTPException(status_code=400, detail="'before' must not precede 'after'")

    # Gmail's before: is exclusive.
    query = f"after:{after:%Y/%m/%d} before:{before + timedelta(days=1):%Y/%m/%d}"
    await services.ready()
    reconciler = services.reconciler
    return await services.coordinator.run_exclusive(
        lambda: reconciler.run_full_listing(query, assume_unread=False)
    )


@router.get("/cursors", response_model=list[CursorEntry])
def cursor_history(
    limit: int = Query(default=20, ge=1, le=500),
    services: MailboxServices = Depends(get_services),
) -> list[CursorEntry]:
    return services.cursors.history(limit=limit)


@router.get("/changes", response_model=ChangeList)
async def pending_changes(services: MailboxServices = Depends(get_services)) -> ChangeList:
    """List change-feed events after the stored cursor without applying them.

    The cursor is not advanced; a later delta pass applies the same events.
    """

    await services.ready()
    cursor = await asyncio.to_thread(services.cursors.current)
    batch = await services.reconciler.feed.list_changes_since(cursor)

    def mirrored_ids() -> set[str]:
        return {e.message_id for e in batch.events if services.mirror.contains(e.message_id)}

    mirrored = await asyncio.to_thread(mirrored_ids)
    return ChangeList(
        cursor=cursor,
        newest_cursor=batch.newest_cursor or cursor,
        data=[
            ChangeItem(kind=e.kind.value, id=e.message_id, mirrored=e.message_id in mirrored)
            for e in batch.events
        ],
    )
