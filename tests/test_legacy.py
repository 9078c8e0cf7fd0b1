import asyncio
from datetime import datetime, timezone

from chatcore.services.identity import resolve_group_key
from chatcore.services.legacy import import_embedded, normalize_embedded_messages, parse_timestamp
from chatcore.services.messages import MessageStore

NOON = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
NOON_MS = int(NOON.timestamp() * 1000)


class TestParseTimestamp:
    def test_accepted_forms(self):
        assert parse_timestamp(NOON) == NOON
        assert parse_timestamp(NOON_MS) == NOON
        assert parse_timestamp(NOON_MS // 1000) == NOON
        assert parse_timestamp({"seconds": NOON_MS // 1000, "nanoseconds": 0}) == NOON
        assert parse_timestamp("2024-05-01T12:00:00Z") == NOON

    def test_naive_datetime_is_utc(self):
        assert parse_timestamp(datetime(2024, 5, 1, 12, 0)) == NOON

    def test_unreadable(self):
        assert parse_timestamp(None) is None
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp({"when": 1}) is None
        assert parse_timestamp(True) is None
        assert parse_timestamp(10**20) is None
        assert parse_timestamp(float("nan")) is None
        assert parse_timestamp(float("inf")) is None
        assert parse_timestamp({"seconds": "soon"}) is None
        assert parse_timestamp({"seconds": 1, "nanoseconds": None}) is None


class TestNormalize:
    def test_orders_by_time_and_mixes_field_names(self):
        raw = [
            {"id": "b", "sender": "u2", "text": "second", "timestamp": NOON_MS + 1000},
            {"id": "a", "sender": "u1", "text": "first", "createdAt": NOON_MS},
        ]
        assert [m.text for m in normalize_embedded_messages(raw)] == ["first", "second"]

    def test_drops_broken_entries(self):
        raw = [
            "junk",
            {"id": "x", "text": "no sender", "timestamp": NOON_MS},
            {"id": "y", "sender": "u1", "text": "no time"},
            {"id": "z", "sender": "u1", "text": "ok", "timestamp": NOON_MS},
        ]
        assert [m.id for m in normalize_embedded_messages(raw)] == ["z"]

    def test_duplicate_ids_keep_first(self):
        raw = [
            {"id": "1", "sender": "u1", "text": "original", "timestamp": NOON_MS},
            {"id": "1", "sender": "u1", "text": "copy", "timestamp": NOON_MS + 5},
        ]
        assert [m.text for m in normalize_embedded_messages(raw)] == ["original"]

    def test_missing_id_is_derived_from_time(self):
        (msg,) = normalize_embedded_messages([{"sender": "u1", "text": "hi", "timestamp": NOON_MS}])
        assert msg.id == str(NOON_MS)

    def test_equal_timestamps_keep_array_order(self):
        raw = [{"id": str(i), "sender": "u1", "text": str(i), "timestamp": NOON_MS} for i in range(5)]
        assert [m.text for m in normalize_embedded_messages(raw)] == ["0", "1", "2", "3", "4"]

    def test_out_of_range_timestamps_are_dropped(self):
        raw = [
            {"id": "far", "sender": "u1", "text": "far future", "timestamp": 10**20},
            {"id": "nan", "sender": "u1", "text": "not a number", "timestamp": float("nan")},
            {"id": "ok", "sender": "u1", "text": "fine", "timestamp": NOON_MS},
        ]
        assert [m.id for m in normalize_embedded_messages(raw)] == ["ok"]

    def test_none_is_empty(self):
        assert normalize_embedded_messages(None) == []


class TestImport:
    def test_import_keeps_times_and_remaps_replies(self, db):
        raw = [
            {"id": NOON_MS, "sender": "u1", "text": "question", "timestamp": NOON_MS},
            {"id": NOON_MS + 10, "sender": "u2", "text": "answer", "timestamp": NOON_MS + 10, "replyTo": NOON_MS},
            {"id": NOON_MS + 20, "sender": "u3", "text": "orphan", "timestamp": NOON_MS + 20, "replyTo": "gone"},
            {"id": NOON_MS + 30, "sender": "u3", "text": "  ", "timestamp": NOON_MS + 30},
        ]

        async def scenario():
            async with db.sessionmaker() as s:
                store = MessageStore(s)
                await import_embedded(store, "g1", raw)
                return await store.list_ordered(resolve_group_key("g1"))

        question, answer, orphan = asyncio.run(scenario())
        assert [m.text for m in (question, answer, orphan)] == ["question", "answer", "orphan"]
        assert answer.reply_to_message_id == question.id
        assert orphan.reply_to_message_id is None
        assert question.id != str(NOON_MS)
        assert all(m.is_read is None for m in (question, answer, orphan))
        assert question.created_at.replace(tzinfo=timezone.utc) == NOON
