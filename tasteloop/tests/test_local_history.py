"""Tests for local history stores."""

import asyncio
import json
from datetime import datetime, timedelta, timezone

import pytest

from tasteloop.core.contracts import Polarity
from tasteloop.core.local_history import InMemoryLocalHistoryStore, JsonFileLocalHistoryStore

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryLocalHistoryStore()
    return JsonFileLocalHistoryStore(tmp_path / "history")


@pytest.mark.anyio
async def test_record_upserts_in_place(store):
    await store.record("u1", "a", Polarity.DISLIKE, T0)
    await store.record("u1", "b", None, T0)
    await store.record("u1", "a", Polarity.LIKE, T0 + timedelta(hours=1))

    entries = await store.list_entries("u1")

    assert [e.item_id for e in entries] == ["a", "b"]
    assert entries[0].polarity is Polarity.LIKE
    assert entries[0].timestamp == T0 + timedelta(hours=1)
    assert entries[1].polarity is None


@pytest.mark.anyio
async def test_shown_entry_never_replaces_verdict(store):
    await store.record("u1", "a", Polarity.LIKE, T0)

    held = await store.record("u1", "a", None, T0 + timedelta(days=1))
    await store.record("u1", "b", None, T0)
    await store.record("u1", "b", Polarity.DISLIKE, T0 + timedelta(hours=1))

    entries = {e.item_id: e for e in await store.list_entries("u1")}
    assert held.polarity is Polarity.LIKE
    assert entries["a"].polarity is Polarity.LIKE
    assert entries["a"].timestamp == T0
    assert entries["b"].polarity is Polarity.DISLIKE


@pytest.mark.anyio
async def test_default_timestamp_is_now(store):
    before = datetime.now(timezone.utc)
    entry = await store.record("u1", "a", Polarity.LIKE)

    assert entry.timestamp >= before
    assert entry.timestamp.tzinfo is not None


@pytest.mark.anyio
async def test_clear_only_affects_one_user(store):
    await store.record("u1", "a", Polarity.LIKE, T0)
    await store.record("u2", "a", Polarity.LIKE, T0)

    await store.clear("u1")

    assert await store.list_entries("u1") == []
    assert len(await store.list_entries("u2")) == 1


@pytest.mark.anyio
async def test_clear_unknown_user(store):
    await store.clear("nobody")
    assert await store.list_entries("nobody") == []


@pytest.mark.anyio
async def test_concurrent_writes_are_not_lost(store):
    await asyncio.gather(
        *(store.record("u1", f"item-{i}", Polarity.DISLIKE, T0) for i in range(20))
    )

    entries = await store.list_entries("u1")

    assert {e.item_id for e in entries} == {f"item-{i}" for i in range(20)}


@pytest.mark.anyio
async def test_json_file_layout(tmp_path):
    store = JsonFileLocalHistoryStore(tmp_path)
    await store.record("user/1", "a", Polarity.DISLIKE, T0)

    path = tmp_path / "recommendation-history-user%2F1.json"
    rows = json.loads(path.read_text(encoding="utf-8"))

    assert rows == [{"id": "a", "timestamp": T0.isoformat(), "feedbackType": "dislike"}]


@pytest.mark.anyio
async def test_corrupt_json_reads_as_empty(tmp_path):
    (tmp_path / "recommendation-history-u1.json").write_text("{not json", encoding="utf-8")
    store = JsonFileLocalHistoryStore(tmp_path)

    assert await store.list_entries("u1") == []


@pytest.mark.anyio
async def test_bad_rows_are_skipped(tmp_path):
    rows = [
        {"id": "ok", "timestamp": T0.isoformat(), "feedbackType": "like"},
        {"id": "", "timestamp": T0.isoformat()},
        {"id": "no-ts"},
        {"id": "bad-type", "timestamp": T0.isoformat(), "feedbackType": "meh"},
        "garbage",
    ]
    (tmp_path / "recommendation-history-u1.json").write_text(json.dumps(rows), encoding="utf-8")
    store = JsonFileLocalHistoryStore(tmp_path)

    entries = await store.list_entries("u1")

    assert [e.item_id for e in entries] == ["ok"]


@pytest.mark.anyio
async def test_similar_user_ids_get_separate_files(tmp_path):
    store = JsonFileLocalHistoryStore(tmp_path)
    await store.record("alice.smith", "m1", Polarity.LIKE, T0)
    await store.record("alice_smith", "m2", Polarity.DISLIKE, T0)

    assert [e.item_id for e in await store.list_entries("alice.smith")] == ["m1"]
    assert [e.item_id for e in await store.list_entries("alice_smith")] == ["m2"]

    await store.clear("alice.smith")

    assert await store.list_entries("alice.smith") == []
    assert [e.item_id for e in await store.list_entries("alice_smith")] == ["m2"]


@pytest.mark.anyio
async def test_undecodable_file_reads_as_empty(tmp_path):
    path = tmp_path / "recommendation-history-u1.json"
    path.write_bytes(b"\xff\xfe[garbage")
    store = JsonFileLocalHistoryStore(tmp_path)

    assert await store.list_entries("u1") == []

    await store.record("u1", "a", Polarity.LIKE, T0)

    assert [e.item_id for e in await store.list_entries("u1")] == ["a"]
