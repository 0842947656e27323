"""Change feed over the provider's paginated history and listing APIs.

Pages are produced lazily, one provider call at a time, so a large backfill
never materializes in memory. Nothing here persists state: a failure anywhere
in the traversal simply propagates and the whole pass is retried from the
last durable cursor.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any, Protocol

import structlog

from mail_mirror.exceptions import BootstrapRequiredError, GmailAPIError
from mail_mirror.gmail.parsing import history_to_page
from mail_mirror.models import ChangeBatch, ChangePage
from mail_mirror.store.cursors import is_older

logger = structlog.get_logger()


class MailboxProvider(Protocol):
    """The subset of the Gmail client the synchronization engine consumes."""

    async def list_messages_page(
        self,
        *,
        query: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any]: ...

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "metadata",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]: ...

    async def list_history_page(
        self,
        *,
        start_history_id: str,
        page_token: str | None = None,
        history_types: list[str] | None = None,
    ) -> dict[str, Any]: ...

    async def get_profile(self) -> dict[str, Any]: ...


class ChangeFeed:
    """Normalized, restartable view of the mailbox change history."""

    def __init__(self, provider: MailboxProvider, *, page_size: int | None = None) -> None:
        self.provider = provider
        self.page_size = page_size

    async def bootstrap_cursor(self) -> str:
        """Return the provider's current high-water mark."""

        profile = await self.provider.get_profile()
        history_id = profile.get("historyId")
        if history_id is None or str(history_id) == "":
            raise GmailAPIError("profile response carries no historyId")
        return str(history_id)

    async def iter_pages(self, cursor: str | None) -> AsyncIterator[ChangePage]:
        """Yield change pages after `cursor`, following every continuation token.

        Raises:
            BootstrapRequiredError: If `cursor` is empty.
        """

        if not cursor:
            raise BootstrapRequiredError("no change-feed cursor stored yet")

        page_token: str | None = None
        pages = 0
        while True:
            response = await self.provider.list_history_page(
                start_history_id=cursor,
                page_token=page_token,
            )
            page = history_to_page(response)
            pages += 1
            logger.debug(
                "change_feed_page",
                start_cursor=cursor,
                page=pages,
                events=len(page.events),
                page_cursor=page.cursor,
            )
            yield page

            page_token = response.get("nextPageToken")
            if not page_token:
                return

    async def list_changes_since(self, cursor: str | None) -> ChangeBatch:
        """Drain the feed after `cursor` into one batch."""

        batch = ChangeBatch(newest_cursor=cursor)
        async for page in self.iter_pages(cursor):
            batch.events.extend(page.events)
            if page.cursor and (
                batch.newest_cursor is None or not is_older(page.cursor, batch.newest_cursor)
            ):
                batch.newest_cursor = page.cursor
        return batch

    async def iter_listing(self, query: str | None, *, limit: int | None = None) -> AsyncIterator[str]:
        """Yield message ids matching `query`, newest first as the provider lists them."""

        page_token: str | None = None
        produced = 0
        while True:
            per_page = self.page_size
            if limit is not None:
                per_page = min(per_page or limit, limit - produced)
            response = await self.provider.list_messages_page(
                query=query,
                page_token=page_token,
                max_results=per_page,
            )
            for msg in response.get("messages") or []:
                msg_id = msg.get("id")
                if not msg_id:
                    continue
                yield str(msg_id)
                produced += 1
                if limit is not None and produced >= limit:
                    return

            page_token = response.get("nextPageToken")
            if not page_token:
                return
