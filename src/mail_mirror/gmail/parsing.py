"""Helpers for parsing Gmail API payloads into mirror models."""

from __future__ import annotations

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Callable

import structlog

from mail_mirror.exceptions import MalformedMessageError
from mail_mirror.models import NO_SUBJECT, UNKNOWN_SENDER, ChangeEvent, ChangeKind, ChangePage, MessageRecord

logger = structlog.get_logger()


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def header_map(message: dict[str, Any]) -> dict[str, str]:
    """Return lower-cased header name -> value.

    Raises:
        MalformedMessageError: If the payload carries no header list.
    """

    payload = message.get("payload")
    if not isinstance(payload, dict):
        raise MalformedMessageError(f"message {message.get('id')!r} has no payload")
    headers = payload.get("headers")
    if not isinstance(headers, list):
        raise MalformedMessageError(f"message {message.get('id')!r} has no headers")

    result: dict[str, str] = {}
    for h in headers:
        if not isinstance(h, dict):
            continue
        name = h.get("name")
        value = h.get("value")
        if isinstance(name, str) and isinstance(value, str):
            # Gmail can include duplicates; keep the first.
            result.setdefault(name.lower(), value)
    return result


def parse_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError, OverflowError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _internal_date(message: dict[str, Any]) -> datetime | None:
    raw = message.get("internalDate")
    try:
        ms = int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None
    if not ms:
        return None
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)


def message_to_record(
    message: dict[str, Any],
    *,
    mailbox_address: str,
    now: Callable[[], datetime] = _now_utc,
) -> MessageRecord:
    """Convert a Gmail API message (format=metadata) to a MessageRecord.

    Missing metadata never raises: subject, sender, receiver and timestamp
    fall back to placeholders, the mailbox address and the current time.

    Args:
        message: Gmail API message dict.
        mailbox_address: Receiver used when the To header is absent.
        now: Clock used for the timestamp fallback.
    """

    message_id = str(message.get("id") or "")
    try:
        hm = header_map(message)
    except MalformedMessageError as exc:
        logger.warning("message_metadata_malformed", message_id=message_id, error=str(exc))
        hm = {}

    received_at = parse_date(hm.get("date")) or _internal_date(message) or now()

    label_ids = message.get("labelIds") or []
    if not isinstance(label_ids, list):
        label_ids = []

    return MessageRecord(
        id=message_id,
        subject=hm.get("subject") or NO_SUBJECT,
        sender=hm.get("from") or UNKNOWN_SENDER,
        receiver=hm.get("to") or mailbox_address,
        received_at=received_at,
        is_unread="UNREAD" in label_ids,
    )


def history_to_page(response: dict[str, Any]) -> ChangePage:
    """Flatten one users.history.list response into ordered change events."""

    events: list[ChangeEvent] = []
    for record in response.get("history") or []:
        for key, kind in (("messagesAdded", ChangeKind.ADDED), ("messagesDeleted", ChangeKind.DELETED)):
            for item in record.get(key) or []:
                msg = item.get("message") or {}
                msg_id = msg.get("id")
                if isinstance(msg_id, str) and msg_id:
                    events.append(ChangeEvent(kind=kind, message_id=msg_id))

    cursor = response.get("historyId")
    return ChangePage(events=events, cursor=str(cursor) if cursor is not None else None)
