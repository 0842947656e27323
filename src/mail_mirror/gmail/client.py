"""Gmail API client implementation.

This module provides the mailbox provider used by the synchronization engine:
message listing, message metadata, history (change feed) and profile.

Notes:
    The Google API client is synchronous. This project wraps those calls using
    `asyncio.to_thread` so the reconciler can stay async and bounded by a
    timeout.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import structlog

from mail_mirror.config import Settings
from mail_mirror.exceptions import (
    AuthenticationError,
    ConfigurationError,
    CursorExpiredError,
    GmailAPIError,
    MessageNotFoundError,
    TransientProviderError,
)

logger = structlog.get_logger()

METADATA_HEADERS: tuple[str, ...] = ("From", "To", "Subject", "Date")
HISTORY_TYPES: tuple[str, ...] = ("messageAdded", "messageDeleted")
TOKEN_URI = "https://oauth2.googleapis.com/token"


def _http_status(exc: Exception) -> int | None:
    resp = getattr(exc, "resp", None)
    status = getattr(resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def translate_error(exc: Exception, *, not_found: type[GmailAPIError] = GmailAPIError) -> Exception:
    """Map a Google client exception onto the project error taxonomy.

    Args:
        exc: The exception raised by the Google client.
        not_found: Error class to use for HTTP 404 (depends on the call).
    """

    from google.auth.exceptions import RefreshError, TransportError
    from googleapiclient.errors import HttpError

    if isinstance(exc, HttpError):
        status = _http_status(exc)
        reason = str(getattr(exc, "reason", "") or "")
        if status == 404:
            return not_found(str(exc))
        if status == 429 or (status is not None and status >= 500):
            return TransientProviderError(str(exc))
        if status == 403 and "rate" in reason.lower():
            return TransientProviderError(str(exc))
        if status in (401, 403):
            return AuthenticationError(str(exc))
        return GmailAPIError(str(exc))
    if isinstance(exc, RefreshError):
        return AuthenticationError(str(exc))
    if isinstance(exc, (TransportError, OSError, TimeoutError)):
        return TransientProviderError(str(exc))
    return GmailAPIError(str(exc))


class GmailClient:
    """Gmail API client for the mirrored mailbox.

    Every method returns raw Gmail API dictionaries; normalization happens in
    `mail_mirror.gmail.parsing`.
    """

    def __init__(self, settings: Settings | None = None, *, service: Any | None = None) -> None:
        """Initialize Gmail client.

        Args:
            settings: Application settings. If None, uses default settings.
            service: Pre-built Gmail API service (skips authentication).
        """
        from mail_mirror.config import get_settings

        self.settings = settings or get_settings()
        self._service: Any | None = service
        self._user_id = self.settings.gmail_user_id
        logger.info("gmail_client_initialized", user_id=self._user_id)

    async def authenticate(self) -> None:
        """Authenticate with Gmail API using OAuth2.

        Raises:
            ConfigurationError: If no usable credentials are configured.
            AuthenticationError: If authentication fails.
        """

        if self._service is not None:
            return

        credentials_path = Path(self.settings.gmail_credentials_path)
        token_path = Path(self.settings.gmail_token_path)
        scope = self.settings.gmail_scope

        if self.settings.gmail_refresh_token is None and not credentials_path.exists():
            raise ConfigurationError(
                f"Gmail credentials file not found: {credentials_path}. "
                "Provide credentials.json or MAIL_MIRROR_GMAIL_REFRESH_TOKEN."
            )

        logger.info(
            "gmail_authentication_started",
            credentials_path=str(credentials_path),
            token_path=str(token_path),
            scope=scope,
        )

        try:
            self._service = await asyncio.to_thread(
                self._build_service,
                credentials_path,
                token_path,
                scope,
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("gmail_authentication_failed", error=str(exc))
            raise AuthenticationError(str(exc)) from exc

        logger.info("gmail_authentication_completed")

    async def list_messages_page(
        self,
        *,
        query: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of users.messages.list.

        Returns:
            The raw response (`messages`, `nextPageToken`).

        Raises:
            TransientProviderError: On network errors, 429 and 5xx.
            GmailAPIError: On any other API failure.
        """

        await self._ensure_authenticated()
        per_page = max_results or self.settings.gmail_page_size
        logger.debug("listing_messages", query=query, page_token=page_token, max_results=per_page)
        return await self._call(self._list_messages_sync, query, page_token, per_page)

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "metadata",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]:
        """Get a specific message by ID.

        Raises:
            MessageNotFoundError: If the message no longer exists.
            TransientProviderError: On network errors, 429 and 5xx.
        """

        await self._ensure_authenticated()
        headers = list(metadata_headers or METADATA_HEADERS)
        logger.debug("getting_message", message_id=message_id, format=format)
        return await self._call(
            self._get_message_sync,
            message_id,
            format,
            headers,
            not_found=MessageNotFoundError,
        )

    async def list_history_page(
        self,
        *,
        start_history_id: str,
        page_token: str | None = None,
        history_types: list[str] | None = None,
    ) -> dict[str, Any]:
        """Fetch one page of users.history.list.

        Returns:
            The raw response (`history`, `historyId`, `nextPageToken`).

        Raises:
            CursorExpiredError: If Gmail no longer has history for the cursor.
            TransientProviderError: On network errors, 429 and 5xx.
        """

        await self._ensure_authenticated()
        types = list(history_types or HISTORY_TYPES)
        logger.debug("listing_history", start_history_id=start_history_id, page_token=page_token)
        return await self._call(
            self._list_history_sync,
            start_history_id,
            page_token,
            types,
            not_found=CursorExpiredError,
        )

    async def get_profile(self) -> dict[str, Any]:
        """Fetch users.getProfile (`emailAddress`, `historyId`, totals)."""

        await self._ensure_authenticated()
        return await self._call(self._get_profile_sync)

    async def _call(
        self,
        fn: Any,
        *args: Any,
        not_found: type[GmailAPIError] = GmailAPIError,
    ) -> dict[str, Any]:
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as exc:  # noqa: BLE001
            mapped = translate_error(exc, not_found=not_found)
            logger.warning(
                "gmail_call_failed",
                call=getattr(fn, "__name__", str(fn)),
                error_type=type(mapped).__name__,
                error=str(exc),
            )
            raise mapped from exc

    async def _ensure_authenticated(self) -> None:
        if self._service is None:
            raise AuthenticationError(
                "Gmail client is not authenticated. Call await GmailClient.authenticate() first."
            )

    def _build_service(self, credentials_path: Path, token_path: Path, scope: str) -> Any:
        # Imported lazily to keep import-time cost low and tests fast.
        from google.auth.transport.requests import Request
        from google.oauth2.credentials import Credentials
        from googleapiclient.discovery import build

        creds: Credentials | None = None
        if self.settings.gmail_refresh_token:
            creds = Credentials(
                None,
                refresh_token=self.settings.gmail_refresh_token,
                token_uri=TOKEN_URI,
                client_id=self.settings.gmail_client_id,
                client_secret=self.settings.gmail_client_secret,
                scopes=[scope],
            )
            creds.refresh(Request())
        elif token_path.exists():
            creds = Credentials.from_authorized_user_file(str(token_path), scopes=[scope])

        if creds is not None and creds.expired and creds.refresh_token:
            creds.refresh(Request())

        if creds is None or not creds.valid:
            from google_auth_oauthlib.flow import InstalledAppFlow

            flow = InstalledAppFlow.from_client_secrets_file(str(credentials_path), scopes=[scope])
            creds = flow.run_local_server(port=0)
            token_path.parent.mkdir(parents=True, exist_ok=True)
            token_path.write_text(creds.to_json(), encoding="utf-8")

        # cache_discovery=False prevents writing discovery docs to disk.
        return build("gmail", "v1", credentials=creds, cache_discovery=False)

    def _list_messages_sync(
        self,
        query: str | None,
        page_token: str | None,
        max_results: int,
    ) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .list(userId=self._user_id, maxResults=max_results, q=query, pageToken=page_token)
        )
        return request.execute()

    def _get_message_sync(
        self,
        message_id: str,
        format: str,
        metadata_headers: list[str],
    ) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .messages()
            .get(userId=self._user_id, id=message_id, format=format, metadataHeaders=metadata_headers)
        )
        return request.execute()

    def _list_history_sync(
        self,
        start_history_id: str,
        page_token: str | None,
        history_types: list[str],
    ) -> dict[str, Any]:
        assert self._service is not None
        request = (
            self._service.users()
            .history()
            .list(
                userId=self._user_id,
                startHistoryId=start_history_id,
                historyTypes=history_types,
                maxResults=self.settings.gmail_page_size,
                pageToken=page_token,
            )
        )
        return request.execute()

    def _get_profile_sync(self) -> dict[str, Any]:
        assert self._service is not None
        return self._service.users().getProfile(userId=self._user_id).execute()
