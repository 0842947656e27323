"""Client read endpoints over the mirror.

None of these contact the mailbox provider.
"""

from __future__ import annotations

import math
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query

from mail_mirror.api.deps import MailboxServices, get_services
from mail_mirror.models import AggregateCounters, BacklogResponse, DeltaResponse, MailPage, RangeStats
from mail_mirror.store import CountScope

router = APIRouter(tags=["mails"])


@router.get("/api/mails/backlog", response_model=BacklogResponse)
def read_backlog(services: MailboxServices = Depends(get_services)) -> BacklogResponse:
    return services.backlog.read()


@router.get("/api/mails/delta", response_model=DeltaResponse)
def read_delta(
    last_seen_id: str | None = Query(default=None, alias="lastSeenId"),
    services: MailboxServices = Depends(get_services),
) -> DeltaResponse:
    return services.delta.read(last_seen_id)


@router.get("/api/mails", response_model=MailPage)
def list_mails(
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, alias="pageSize", ge=1, le=200),
    services: MailboxServices = Depends(get_services),
) -> MailPage:
    size = page_size or services.settings.mirror_page_size
    total = services.mirror.count(CountScope.MIRROR)
    return MailPage(
        page=page,
        page_size=size,
        total_pages=math.ceil(total / size),
        total_mails=total,
        data=services.mirror.list_all(page=page, page_size=size),
    )


@router.get("/api/stats", response_model=AggregateCounters)
def mail_stats(services: MailboxServices = Depends(get_services)) -> AggregateCounters:
    return services.stats.compute()


@router.get("/api/stats/range", response_model=RangeStats)
def mail_stats_range(
    start: date = Query(description="First day to include"),
    end: date = Query(description="Last day to include"),
    services: MailboxServices = Depends(get_services),
) -> RangeStats:
    """Counters for messages received on the UTC days start..end, both inclusive."""

    if end < start:
        raise HTTPException(status_code=400, detail="'end' must not precede 'start'")
    return services.stats.compute_range(start, end)
