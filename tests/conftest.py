"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from typing import Any

import pytest

from mail_mirror.exceptions import CursorExpiredError, MessageNotFoundError, RelayError

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


class FakeProvider:
    """In-memory stand-in for the Gmail client.

    Every mailbox mutation bumps the history id and appends a history record,
    the way Gmail's users.history.list reports them.
    """

    def __init__(self, *, start_history_id: int = 100, history_page_size: int = 2) -> None:
        self.history_id = start_history_id
        self.history_page_size = history_page_size
        self.messages: dict[str, dict[str, Any]] = {}
        self.order: list[str] = []
        self.history: list[dict[str, Any]] = []

        self.expired = False
        self.delay = 0.0
        self.history_error: Exception | None = None
        # Keyed on the 1-based count of history calls.
        self.history_errors_on_call: dict[int, Exception] = {}
        self.get_errors: dict[str, Exception] = {}
        self.calls: dict[str, int] = {"history": 0, "get": 0, "list": 0, "profile": 0}

    def add_message(
        self,
        message_id: str,
        *,
        subject: str | None = None,
        sender: str = "Alice <alice@example.com>",
        to: str = "me@example.com",
        received_at: datetime | None = None,
        unread: bool = True,
    ) -> dict[str, Any]:
        received_at = received_at or BASE_TIME + timedelta(minutes=len(self.order))
        self.history_id += 1
        message = {
            "id": message_id,
            "threadId": f"t-{message_id}",
            "labelIds": ["INBOX", "UNREAD"] if unread else ["INBOX"],
            "internalDate": str(int(received_at.timestamp() * 1000)),
            "historyId": str(self.history_id),
            "payload": {
                "headers": [
                    {"name": "Subject", "value": subject or f"Subject {message_id}"},
                    {"name": "From", "value": sender},
                    {"name": "To", "value": to},
                    {"name": "Date", "value": format_datetime(received_at)},
                ]
            },
        }
        self.messages[message_id] = message
        self.order.append(message_id)
        self.history.append(
            {"id": str(self.history_id), "messagesAdded": [{"message": {"id": message_id}}]}
        )
        return message

    def delete_message(self, message_id: str) -> None:
        self.history_id += 1
        self.messages.pop(message_id, None)
        self.history.append(
            {"id": str(self.history_id), "messagesDeleted": [{"message": {"id": message_id}}]}
        )

    def vanish(self, message_id: str) -> None:
        """Drop a message without reporting it in history."""

        self.messages.pop(message_id, None)

    async def get_profile(self) -> dict[str, Any]:
        self.calls["profile"] += 1
        return {"emailAddress": "me@example.com", "historyId": str(self.history_id)}

    async def list_history_page(
        self,
        *,
        start_history_id: str,
        page_token: str | None = None,
        history_types: list[str] | None = None,
    ) -> dict[str, Any]:
        self.calls["history"] += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.history_error is not None:
            raise self.history_error
        if self.calls["history"] in self.history_errors_on_call:
            raise self.history_errors_on_call.pop(self.calls["history"])
        if self.expired:
            raise CursorExpiredError(f"history {start_history_id} is no longer available")

        records = [h for h in self.history if int(h["id"]) > int(start_history_id)]
        start = int(page_token or 0)
        end = start + self.history_page_size
        response: dict[str, Any] = {"historyId": str(self.history_id)}
        if records[start:end]:
            response["history"] = records[start:end]
        if end < len(records):
            response["nextPageToken"] = str(end)
        return response

    async def get_message(
        self,
        message_id: str,
        *,
        format: str = "metadata",
        metadata_headers: list[str] | None = None,
    ) -> dict[str, Any]:
        self.calls["get"] += 1
        if message_id in self.get_errors:
            raise self.get_errors[message_id]
        if message_id not in self.messages:
            raise MessageNotFoundError(f"message {message_id} not found")
        return self.messages[message_id]

    async def list_messages_page(
        self,
        *,
        query: str | None = None,
        page_token: str | None = None,
        max_results: int | None = None,
    ) -> dict[str, Any]:
        self.calls["list"] += 1
        ids = [i for i in reversed(self.order) if i in self.messages]
        if query and "is:unread" in query:
            ids = [i for i in ids if "UNREAD" in self.messages[i]["labelIds"]]

        start = int(page_token or 0)
        end = start + (max_results or 100)
        response: dict[str, Any] = {
            "messages": [{"id": i, "threadId": f"t-{i}"} for i in ids[start:end]],
            "resultSizeEstimate": len(ids),
        }
        if end < len(ids):
            response["nextPageToken"] = str(end)
        return response


class FakeRelay:
    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail_for: set[str] = set()

    async def send(self, to, subject, body, attachments=None) -> None:
        if to in self.fail_for:
            raise RelayError(f"550 mailbox unavailable: {to}")
        self.sent.append(
            {"to": to, "subject": subject, "body": body, "attachments": list(attachments or [])}
        )


@pytest.fixture
def mock_settings(tmp_path):
    """Provide settings backed by a throwaway SQLite database."""
    from mail_mirror.config import Settings

    return Settings(
        _env_file=None,
        database_url=f"sqlite:///{tmp_path / 'mirror.sqlite3'}",
        mailbox_address="me@example.com",
        gmail_credentials_path=tmp_path / "missing-credentials.json",
        gmail_token_path=tmp_path / "token.json",
        sync_timeout_seconds=5.0,
        log_level="DEBUG",
        debug=True,
    )


@pytest.fixture
def engine(mock_settings):
    from mail_mirror.store import create_store_engine, ensure_schema

    engine = create_store_engine(mock_settings.database_url)
    ensure_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def relay() -> FakeRelay:
    return FakeRelay()


@pytest.fixture
def services(mock_settings, engine, provider, relay):
    from mail_mirror.api.deps import build_services

    return build_services(mock_settings, engine=engine, provider=provider, relay=relay)


@pytest.fixture
def mirror(services):
    return services.mirror


@pytest.fixture
def cursors(services):
    return services.cursors


@pytest.fixture
def reconciler(services):
    return services.reconciler


@pytest.fixture
def make_record():
    """Build MessageRecords received one minute apart."""
    from mail_mirror.models import MessageRecord

    def _make(index: int, *, message_id: str | None = None, received_at: datetime | None = None):
        return MessageRecord(
            id=message_id or f"m{index:02d}",
            subject=f"Subject {index}",
            sender="Alice <alice@example.com>",
            receiver="me@example.com",
            received_at=received_at or BASE_TIME + timedelta(minutes=index),
        )

    return _make


@pytest.fixture
def sample_email_data() -> dict:
    """Provide sample email data structure."""
    return {
        "id": "msg123456",
        "threadId": "thread789",
        "labelIds": ["INBOX", "UNREAD"],
        "snippet": "Weekly Newsletter - Python Tips",
        "internalDate": "1740819600000",
        "payload": {
            "headers": [
                {"name": "Subject", "value": "Weekly Newsletter - Python Tips"},
                {"name": "From", "value": "Python Weekly <newsletter@python.org>"},
                {"name": "To", "value": "user@example.com"},
                {"name": "Date", "value": "Sat, 01 Mar 2025 10:15:00 +0100"},
            ],
        },
    }


@pytest.fixture
def base_time() -> datetime:
    """Receive time of the first generated message."""
    return BASE_TIME
