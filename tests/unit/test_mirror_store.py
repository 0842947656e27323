"""Unit tests for the mirror tables and the cursor log."""

from __future__ import annotations

from datetime import timedelta

import pytest

from mail_mirror.exceptions import CursorRegressionError, StoreWriteError, UnknownWatermarkError
from mail_mirror.models import ChangeEvent, ChangeKind
from mail_mirror.store import CountScope, CursorStore, MirrorStore, ensure_schema
from mail_mirror.store.cursors import is_older


def _store_unread(mirror: MirrorStore, record) -> None:
    mirror.upsert_message(record)
    mirror.mark_as_unread(record.id)


class TestMirrorStore:
    def test_upsert_is_idempotent(self, mirror, make_record) -> None:
        record = make_record(1)

        assert mirror.upsert_message(record) is True
        assert mirror.upsert_message(record) is False
        assert mirror.mark_as_unread(record.id) is True
        assert mirror.mark_as_unread(record.id) is False

        assert mirror.count(CountScope.MIRROR) == 1
        assert mirror.count(CountScope.UNREAD) == 1
        assert mirror.count(CountScope.RECEIVED) == 1

    def test_first_write_wins(self, mirror, make_record) -> None:
        mirror.upsert_message(make_record(1))
        mirror.upsert_message(make_record(1).model_copy(update={"subject": "edited"}))

        assert mirror.list_all(page=1, page_size=10)[0].subject == "Subject 1"

    def test_mark_as_unread_clears_seen_flag(self, mirror, make_record) -> None:
        mirror.upsert_message(make_record(1), seen=True)

        mirror.mark_as_unread("m01")

        assert mirror.list_all(page=1, page_size=10)[0].seen is False
        assert [item.id for item in mirror.list_unread()] == ["m01"]

    def test_mark_as_unread_requires_mirrored_message(self, mirror) -> None:
        with pytest.raises(StoreWriteError):
            mirror.mark_as_unread("never-seen")

    def test_unread_is_ordered_oldest_first_with_id_tie_break(self, mirror, make_record, base_time) -> None:
        same_time = base_time + timedelta(hours=1)
        for record in (
            make_record(3),
            make_record(0, message_id="b", received_at=same_time),
            make_record(0, message_id="a", received_at=same_time),
            make_record(1),
        ):
            _store_unread(mirror, record)

        ids = [item.id for item in mirror.list_unread()]

        assert ids == ["m01", "m03", "a", "b"]
        assert [item.id for item in mirror.list_unread_after("a", limit=10)] == ["b"]
        assert [item.id for item in mirror.list_unread(offset=1, limit=2)] == ["m03", "a"]

    def test_unread_after_unknown_watermark_raises(self, mirror) -> None:
        with pytest.raises(UnknownWatermarkError):
            mirror.list_unread_after("missing", limit=10)

    def test_list_unread_by_ids_is_newest_first(self, mirror, make_record, base_time) -> None:
        for i in range(4):
            _store_unread(mirror, make_record(i))

        items = mirror.list_unread_by_ids(["m00", "m02", "m02", "unknown"])

        assert [item.id for item in items] == ["m02", "m00"]
        assert items[0].received_at == base_time + timedelta(minutes=2)

    def test_list_all_pages_newest_first_and_reports_seen(self, mirror, make_record) -> None:
        for i in range(3):
            mirror.upsert_message(make_record(i), seen=(i == 0))

        first = mirror.list_all(page=1, page_size=2)
        second = mirror.list_all(page=2, page_size=2)

        assert [m.id for m in first] == ["m02", "m01"]
        assert [(m.id, m.seen) for m in second] == [("m00", True)]

    def test_deleted_change_is_logged_once_and_never_purges(self, mirror, make_record) -> None:
        _store_unread(mirror, make_record(1))
        event = ChangeEvent(kind=ChangeKind.DELETED, message_id="m01")

        assert mirror.record_change(event, cursor="105") is True
        assert mirror.record_change(event, cursor="106") is False
        assert mirror.contains("m01")
        assert mirror.count(CountScope.UNREAD) == 1

    def test_count_within_range(self, mirror, make_record, base_time) -> None:
        for i in range(5):
            _store_unread(mirror, make_record(i))

        start = base_time + timedelta(minutes=1)
        end = base_time + timedelta(minutes=3)

        assert mirror.count(CountScope.MIRROR, start=start, end=end) == 2
        assert mirror.count(CountScope.UNREAD, start=end) == 2

    def test_mailboxes_are_isolated(self, engine, mirror, make_record) -> None:
        _store_unread(mirror, make_record(1))
        other = MirrorStore(engine, "other@example.com")

        assert other.count(CountScope.MIRROR) == 0
        assert other.list_unread() == []

    def test_ensure_schema_is_idempotent(self, engine, mirror, make_record) -> None:
        mirror.upsert_message(make_record(1))

        ensure_schema(engine)

        assert mirror.count() == 1


class TestCursorStore:
    def test_empty_log_has_no_cursor(self, cursors) -> None:
        assert cursors.current() is None
        assert cursors.history() == []

    def test_advance_appends_and_skips_duplicates(self, cursors) -> None:
        assert cursors.advance("100") is True
        assert cursors.advance("100") is False
        assert cursors.advance("120") is True

        assert cursors.current() == "120"
        assert [e.cursor for e in cursors.history()] == ["120", "100"]

    def test_advance_refuses_to_move_backwards(self, cursors) -> None:
        cursors.advance("200")

        with pytest.raises(CursorRegressionError):
            cursors.advance("150")
        assert cursors.current() == "200"

    def test_seen_offset_roundtrip(self, cursors) -> None:
        assert cursors.seen_offset() == 0

        cursors.set_seen_offset(4)
        cursors.set_seen_offset(9)

        assert cursors.seen_offset() == 9

    def test_cursors_are_per_mailbox(self, engine, cursors) -> None:
        cursors.advance("300")

        assert CursorStore(engine, "other@example.com").current() is None

    def test_is_older_compares_numerically(self) -> None:
        assert is_older("99", "100")
        assert not is_older("100", "99")
        assert not is_older("abc", "100")

    def test_concurrent_newer_cursor_is_not_overwritten(self, engine, cursors, monkeypatch) -> None:
        cursors.advance("100")
        other = CursorStore(engine, cursors.mailbox)
        read_head = cursors._head
        reads = []

        def head_then_other_writer():
            head = read_head()
            if not reads:
                other.advance("107")
            reads.append(head)
            return head

        monkeypatch.setattr(cursors, "_head", head_then_other_writer)

        assert cursors.advance("105") is False
        assert cursors.current() == "107"
        assert [e.cursor for e in cursors.history()] == ["107", "100"]

    def test_losing_writer_still_appends_a_newer_cursor(self, engine, cursors, monkeypatch) -> None:
        cursors.advance("100")
        other = CursorStore(engine, cursors.mailbox)
        read_head = cursors._head
        reads = []

        def head_then_other_writer():
            head = read_head()
            if not reads:
                other.advance("103")
            reads.append(head)
            return head

        monkeypatch.setattr(cursors, "_head", head_then_other_writer)

        assert cursors.advance("105") is True
        assert len(reads) == 2
        assert [e.cursor for e in cursors.history()] == ["105", "103", "100"]
