"""Service wiring for the HTTP layer and the CLI."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from fastapi import Request
from sqlalchemy.engine import Engine

from mail_mirror.config import Settings
from mail_mirror.outbound import MailRelay, OutboundMailer, SmtpRelay
from mail_mirror.store import CursorStore, MirrorStore, SentMailLog, create_store_engine
from mail_mirror.sync import (
    BacklogReader,
    ChangeFeed,
    CoordinatorRegistry,
    DeltaReader,
    MailboxProvider,
    MessageNormalizer,
    Reconciler,
    StatsAggregator,
    SyncCoordinator,
)


@dataclass
class MailboxServices:
    settings: Settings
    engine: Engine
    provider: MailboxProvider
    mirror: MirrorStore
    cursors: CursorStore
    stats: StatsAggregator
    backlog: BacklogReader
    delta: DeltaReader
    coordinators: CoordinatorRegistry
    mailer: OutboundMailer
    sent_log: SentMailLog

    @property
    def coordinator(self) -> SyncCoordinator:
        return self.coordinators.get(self.settings.mailbox_address)

    @property
    def reconciler(self) -> Reconciler:
        return self.coordinator.reconciler

    async def ready(self) -> None:
        """Authenticate the provider if it needs it (no-op once authenticated)."""

        authenticate = getattr(self.provider, "authenticate", None)
        if authenticate is not None:
            await authenticate()


def build_services(
    settings: Settings,
    *,
    engine: Engine | None = None,
    provider: Any | None = None,
    relay: MailRelay | None = None,
) -> MailboxServices:
    """Assemble the per-mailbox components.

    Args:
        settings: Application settings.
        engine: Store engine; created from `settings.database_url` if None.
        provider: Mailbox provider; a `GmailClient` if None.
        relay: Outbound relay; an `SmtpRelay` if None.
    """

    if engine is None:
        engine = create_store_engine(settings.database_url)
    if provider is None:
        from mail_mirror.gmail import GmailClient

        provider = GmailClient(settings)

    mailbox = settings.mailbox_address
    mirror = MirrorStore(engine, mailbox)
    cursors = CursorStore(engine, mailbox)
    stats = StatsAggregator(mirror, cursors)

    def reconciler_for(address: str) -> Reconciler:
        box_mirror = mirror if address == mailbox else MirrorStore(engine, address)
        box_cursors = cursors if address == mailbox else CursorStore(engine, address)
        return Reconciler(
            feed=ChangeFeed(provider, page_size=settings.gmail_page_size),
            normalizer=MessageNormalizer(provider, address),
            mirror=box_mirror,
            cursors=box_cursors,
            stats=stats if address == mailbox else StatsAggregator(box_mirror, box_cursors),
            unread_query=settings.unread_query,
            unread_limit=settings.unread_listing_limit,
            timeout_seconds=settings.sync_timeout_seconds,
        )

    sent_log = SentMailLog(engine, sender=mailbox)
    return MailboxServices(
        settings=settings,
        engine=engine,
        provider=provider,
        mirror=mirror,
        cursors=cursors,
        stats=stats,
        backlog=BacklogReader(mirror, cursors),
        delta=DeltaReader(mirror, page_size=settings.delta_page_size),
        coordinators=CoordinatorRegistry(reconciler_for),
        mailer=OutboundMailer(relay or SmtpRelay(settings), sent_log),
        sent_log=sent_log,
    )


def get_services(request: Request) -> MailboxServices:
    return request.app.state.services
