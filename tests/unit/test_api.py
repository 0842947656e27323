"""Unit tests for the HTTP API."""

from __future__ import annotations

import io

import openpyxl
import pytest
from fastapi.testclient import TestClient

from mail_mirror.api import create_app
from mail_mirror.exceptions import TransientProviderError


@pytest.fixture
def client(mock_settings, engine, provider, relay):
    app = create_app(mock_settings, engine=engine, provider=provider, relay=relay)
    with TestClient(app) as test_client:
        yield test_client


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_sync_bootstraps_then_redirects_to_backlog(client) -> None:
    response = client.post("/api/sync")

    assert response.history[0].status_code == 303
    assert response.status_code == 200
    assert response.json() == {"message": "success", "newCount": 0, "data": []}


def test_sync_then_backlog_returns_new_mail_once(client, provider) -> None:
    client.post("/api/sync/delta")
    provider.add_message("m1", subject="Quarterly report")
    provider.add_message("m2")

    first = client.post("/api/sync").json()
    second = client.get("/api/mails/backlog").json()

    assert first["newCount"] == 2
    assert first["data"][0]["subject"] == "Quarterly report"
    assert set(first["data"][0]) == {"id", "subject", "sender", "receiver", "receivedAt"}
    assert second["newCount"] == 0


def test_delta_sync_reports_the_pass(client, provider) -> None:
    bootstrap = client.post("/api/sync/delta").json()
    provider.add_message("m1")

    result = client.post("/api/sync/delta").json()

    assert bootstrap["outcome"] == "bootstrapped"
    assert result["outcome"] == "applied"
    assert result["cursorBefore"] == "100"
    assert result["cursorAfter"] == "101"
    assert result["totalUnread"] == 1
    assert [item["id"] for item in result["data"]] == ["m1"]


def test_read_unread_lists_and_redirects(client, provider) -> None:
    provider.add_message("m1")
    provider.add_message("m2", unread=False)

    response = client.post("/api/sync/unread")

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["data"]] == ["m1"]


def test_backfill_validates_range(client, provider) -> None:
    provider.add_message("m1", unread=False)

    bad = client.post("/api/sync/backfill", params={"after": "2025-03-05", "before": "2025-03-01"})
    good = client.post("/api/sync/backfill", params={"after": "2025-03-01", "before": "2025-03-01"})

    assert bad.status_code == 400
    assert good.status_code == 200
    assert good.json()["added"] == 1
    assert good.json()["totalUnread"] == 0


def test_delta_watermark_paging(client, provider) -> None:
    client.post("/api/sync/delta")
    for i in range(12):
        provider.add_message(f"m{i:02d}")
    client.post("/api/sync/delta")

    first = client.get("/api/mails/delta").json()
    second = client.get("/api/mails/delta", params={"lastSeenId": first["lastDeltaId"]}).json()

    assert first["totalUnread"] == 12
    assert len(first["data"]) == 10
    assert [item["id"] for item in second["data"]] == ["m10", "m11"]
    assert second["lastDeltaId"] == "m11"


def test_unknown_watermark_is_404(client) -> None:
    response = client.get("/api/mails/delta", params={"lastSeenId": "nope"})

    assert response.status_code == 404
    assert response.json()["retryable"] is False


def test_transient_provider_failure_is_retryable_503(client, provider) -> None:
    client.post("/api/sync/delta")
    provider.history_error = TransientProviderError("429 rate limited")

    response = client.post("/api/sync/delta")

    assert response.status_code == 503
    assert response.json()["retryable"] is True
    assert response.json()["type"] == "TransientProviderError"


def test_mirror_listing_and_stats(client, provider) -> None:
    client.post("/api/sync/delta")
    for i in range(3):
        provider.add_message(f"m{i}")
    client.post("/api/sync/delta")
    client.get("/api/mails/backlog")

    page = client.get("/api/mails", params={"page": 2, "pageSize": 2}).json()
    stats = client.get("/api/stats").json()
    ranged = client.get("/api/stats/range", params={"start": "2025-03-01", "end": "2025-03-01"}).json()

    assert (page["totalPages"], page["totalMails"]) == (2, 3)
    assert [m["id"] for m in page["data"]] == ["m0"]
    assert page["data"][0]["seen"] is False
    assert stats == {"totalInbox": 3, "totalUnread": 3, "currentlyLoadedUnread": 3}
    assert ranged == {"start": "2025-03-01", "end": "2025-03-01", "totalInbox": 3, "totalUnread": 3}


def test_stats_range_includes_the_whole_end_day(client, provider) -> None:
    client.post("/api/sync/delta")
    provider.add_message("m1")
    client.post("/api/sync/delta")

    same_day = client.get("/api/stats/range", params={"start": "2025-03-01", "end": "2025-03-01"})
    next_day = client.get("/api/stats/range", params={"start": "2025-03-02", "end": "2025-03-03"})
    inverted = client.get("/api/stats/range", params={"start": "2025-03-02", "end": "2025-03-01"})

    assert same_day.json()["totalInbox"] == 1
    assert next_day.json()["totalInbox"] == 0
    assert inverted.status_code == 400


def test_pending_changes_are_listed_without_advancing(client, provider) -> None:
    client.post("/api/sync/delta")
    provider.add_message("m1")
    client.post("/api/sync/delta")
    provider.add_message("m2")
    provider.delete_message("m1")

    pending = client.get("/api/sync/changes").json()
    cursors = client.get("/api/sync/cursors").json()

    assert (pending["cursor"], pending["newestCursor"]) == ("101", "103")
    assert pending["data"] == [
        {"kind": "added", "id": "m2", "mirrored": False},
        {"kind": "deleted", "id": "m1", "mirrored": True},
    ]
    assert [entry["cursor"] for entry in cursors] == ["101", "100"]

    client.post("/api/sync/delta")
    drained = client.get("/api/sync/changes").json()

    assert drained["cursor"] == "103"
    assert drained["data"] == []


def test_pending_changes_need_a_cursor(client) -> None:
    response = client.get("/api/sync/changes")

    assert response.status_code == 409
    assert response.json()["type"] == "BootstrapRequiredError"

def test_send_and_list_sent(client, relay) -> None:
    response = client.post(
        "/api/send",
        data={"to": "bob@example.com", "subject": "Hi", "message": "Hello"},
        files=[("attachments", ("a.txt", b"hello", "text/plain"))],
    )
    sent = client.get("/api/sent").json()

    assert response.status_code == 200
    assert response.json() == {"message": "Email sent successfully!"}
    assert relay.sent[0]["attachments"][0].filename == "a.txt"
    assert sent["sentEmails"][0]["receiver"] == "bob@example.com"


def test_relay_failure_is_502(client, relay) -> None:
    relay.fail_for.add("bounce@example.com")

    response = client.post("/api/send", data={"to": "bounce@example.com"})

    assert response.status_code == 502
    assert client.get("/api/sent").json() == {"sentEmails": []}


def test_spreadsheet_upload(client, relay) -> None:
    wb = openpyxl.Workbook()
    wb.active.append(["Email", "Subject", "Message"])
    wb.active.append(["a@example.com", "One", "1"])
    buf = io.BytesIO()
    wb.save(buf)

    good = client.post("/api/send/spreadsheet", files={"excel": ("batch.xlsx", buf.getvalue())})
    bad = client.post("/api/send/spreadsheet", files={"excel": ("batch.xlsx", b"garbage")})

    assert good.json()["sent"] == 1
    assert bad.status_code == 400
