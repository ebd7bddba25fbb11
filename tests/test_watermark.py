"""Tests for watermark persistence and the fetch window."""

import json

import pytest

from gmail_analyzer.exceptions import PersistenceError, WatermarkNotFound
from gmail_analyzer.models import Message, Watermark, parse_date_ms
from gmail_analyzer.watermark import WatermarkStore, filter_new_messages, next_watermark

# Mon, 1 Jan 2024 12:00:00 UTC
NOON = 1704110400000


def make_message(msg_id, date):
    return Message(id=msg_id, date=date, sender="a@example.com", subject="s")


class TestParseDate:
    """Tests for message date parsing."""

    def test_rfc2822(self):
        assert parse_date_ms("Mon, 1 Jan 2024 12:00:00 +0000") == NOON

    def test_rfc2822_with_offset(self):
        assert parse_date_ms("Mon, 1 Jan 2024 13:00:00 +0100") == NOON

    def test_iso8601(self):
        assert parse_date_ms("2024-01-01T12:00:00Z") == NOON

    def test_naive_is_utc(self):
        assert parse_date_ms("2024-01-01T12:00:00") == NOON

    @pytest.mark.parametrize("value", ["", "   ", None, "not a date", "Mon, 99 Foo 2024"])
    def test_malformed(self, value):
        assert parse_date_ms(value) is None


class TestWatermarkStore:
    """Tests for WatermarkStore."""

    def test_read_missing(self, tmp_path):
        store = WatermarkStore(tmp_path / "state.json")
        with pytest.raises(WatermarkNotFound):
            store.read()

    def test_write_then_read(self, tmp_path):
        path = tmp_path / "state.json"
        store = WatermarkStore(path)

        store.write(Watermark(timestamp=NOON))

        assert json.loads(path.read_text()) == {"timestamp": NOON}
        assert store.read() == Watermark(timestamp=NOON)

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")

        with pytest.raises(PersistenceError):
            WatermarkStore(path).read()

    @pytest.mark.parametrize("content", ['{"ts": 1}', '{"timestamp": "soon"}', "[]", '{"timestamp": true}'])
    def test_invalid_content(self, tmp_path, content):
        path = tmp_path / "state.json"
        path.write_text(content)

        with pytest.raises(PersistenceError):
            WatermarkStore(path).read()

    def test_write_failure(self, tmp_path):
        # A directory in the way of the file makes the write fail
        path = tmp_path / "state.json"
        path.mkdir()

        with pytest.raises(PersistenceError):
            WatermarkStore(path).write(Watermark(timestamp=NOON))

    def test_load_or_initialize_first_run(self, tmp_path):
        path = tmp_path / "state.json"
        store = WatermarkStore(path)
        before = Watermark.now().timestamp

        watermark = store.load_or_initialize()

        assert watermark.timestamp >= before
        assert path.exists()
        assert store.read() == watermark

    def test_load_or_initialize_existing(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"timestamp": NOON}))

        assert WatermarkStore(path).load_or_initialize() == Watermark(timestamp=NOON)

    def test_load_or_initialize_keeps_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("garbage")

        with pytest.raises(PersistenceError):
            WatermarkStore(path).load_or_initialize()
        assert path.read_text() == "garbage"


class TestNextWatermark:
    """Tests for watermark advancement."""

    def test_advances_to_max_date(self):
        messages = [
            make_message("a", "Mon, 1 Jan 2024 13:00:00 +0000"),
            make_message("b", "Mon, 1 Jan 2024 15:00:00 +0000"),
            make_message("c", "Mon, 1 Jan 2024 14:00:00 +0000"),
        ]

        result = next_watermark(messages, Watermark(timestamp=NOON))

        assert result == Watermark(timestamp=NOON + 3 * 3600 * 1000)

    def test_advances_to_arrival_time(self):
        messages = [
            Message(id="a", date="Mon, 1 Jan 2024 18:00:00 +0000", internal_date=NOON + 1000),
            Message(id="b", date="Mon, 1 Jan 2024 11:00:00 +0000", internal_date=NOON + 5000),
        ]

        assert next_watermark(messages, Watermark(timestamp=NOON)) == Watermark(timestamp=NOON + 5000)

    def test_ignores_malformed_dates(self):
        messages = [
            make_message("a", "garbage"),
            make_message("b", "Mon, 1 Jan 2024 13:00:00 +0000"),
        ]

        result = next_watermark(messages, Watermark(timestamp=NOON))

        assert result == Watermark(timestamp=NOON + 3600 * 1000)

    def test_all_malformed_keeps_watermark(self):
        messages = [make_message("a", "garbage"), make_message("b", "")]
        assert next_watermark(messages, Watermark(timestamp=NOON)) is None

    def test_never_moves_backwards(self):
        messages = [make_message("a", "Mon, 1 Jan 2024 11:00:00 +0000")]
        assert next_watermark(messages, Watermark(timestamp=NOON)) is None

    def test_equal_date_does_not_advance(self):
        messages = [make_message("a", "Mon, 1 Jan 2024 12:00:00 +0000")]
        assert next_watermark(messages, Watermark(timestamp=NOON)) is None

    def test_empty_batch(self):
        assert next_watermark([], Watermark(timestamp=NOON)) is None


class TestFilterNewMessages:
    """Tests for the fetch-window filter."""

    def test_arrival_time_wins_over_date_header(self):
        # Sent before the watermark but delivered after it
        delayed = Message(
            id="delayed",
            date="Mon, 1 Jan 2024 11:00:00 +0000",
            internal_date=NOON + 60 * 1000,
        )
        # Header claims a later time than the actual arrival
        skewed = Message(
            id="skewed",
            date="Mon, 1 Jan 2024 18:00:00 +0000",
            internal_date=NOON - 60 * 1000,
        )

        fresh = filter_new_messages([delayed, skewed], Watermark(timestamp=NOON))

        assert [m.id for m in fresh] == ["delayed"]

    def test_arrival_time_without_date_header(self):
        message = Message(id="a", date="garbage", internal_date=NOON - 1)
        assert filter_new_messages([message], Watermark(timestamp=NOON)) == []

    def test_drops_messages_at_or_before_watermark(self):
        messages = [
            make_message("old", "Mon, 1 Jan 2024 08:00:00 +0000"),
            make_message("same", "Mon, 1 Jan 2024 12:00:00 +0000"),
            make_message("new", "Mon, 1 Jan 2024 12:00:01 +0000"),
        ]

        fresh = filter_new_messages(messages, Watermark(timestamp=NOON))

        assert [m.id for m in fresh] == ["new"]

    def test_keeps_undated_messages(self):
        messages = [make_message("undated", "garbage")]
        assert filter_new_messages(messages, Watermark(timestamp=NOON)) == messages

    def test_preserves_order(self):
        messages = [
            make_message("b", "Mon, 1 Jan 2024 14:00:00 +0000"),
            make_message("a", "Mon, 1 Jan 2024 13:00:00 +0000"),
        ]
        fresh = filter_new_messages(messages, Watermark(timestamp=NOON))
        assert [m.id for m in fresh] == ["b", "a"]
