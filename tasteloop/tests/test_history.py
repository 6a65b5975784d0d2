"""Tests for history merging and remote fallback."""

import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from tasteloop.core.contracts import HistoryEntry, Polarity
from tasteloop.core.history import fetch_remote_history, load_merged_history, merge_history
from tasteloop.core.local_history import InMemoryLocalHistoryStore

T0 = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)


class TestMergeHistory:
    """Tests for the pure merge."""

    def test_newer_remote_wins(self):
        local = [HistoryEntry("x", T0, Polarity.DISLIKE)]
        remote = [HistoryEntry("x", T0 + timedelta(hours=1), Polarity.LIKE)]

        merged = merge_history(local, remote)

        assert merged["x"].polarity is Polarity.LIKE

    def test_newer_local_wins(self):
        local = [HistoryEntry("x", T0 + timedelta(hours=1), Polarity.DISLIKE)]
        remote = [HistoryEntry("x", T0, Polarity.LIKE)]

        merged = merge_history(local, remote)

        assert merged["x"].polarity is Polarity.DISLIKE

    def test_tie_prefers_remote(self):
        local = [HistoryEntry("x", T0, Polarity.DISLIKE)]
        remote = [HistoryEntry("x", T0, Polarity.LIKE)]

        merged = merge_history(local, remote)

        assert merged["x"].polarity is Polarity.LIKE

    def test_union_of_keys(self):
        local = [HistoryEntry("a", T0, Polarity.LIKE)]
        remote = [HistoryEntry("b", T0, Polarity.DISLIKE)]

        merged = merge_history(local, remote)

        assert set(merged) == {"a", "b"}

    def test_local_duplicates_keep_newest(self):
        local = [
            HistoryEntry("a", T0 + timedelta(minutes=5), Polarity.LIKE),
            HistoryEntry("a", T0, Polarity.DISLIKE),
        ]

        merged = merge_history(local, [])

        assert merged["a"].polarity is Polarity.LIKE

    def test_newer_shown_entry_keeps_remote_verdict(self):
        local = [HistoryEntry("x", T0 + timedelta(days=3), None)]
        remote = [HistoryEntry("x", T0, Polarity.LIKE)]

        merged = merge_history(local, remote)

        assert merged["x"].polarity is Polarity.LIKE

    def test_newer_shown_entry_keeps_local_verdict(self):
        local = [HistoryEntry("x", T0, Polarity.DISLIKE)]
        remote = [HistoryEntry("x", T0 + timedelta(days=3), None)]

        merged = merge_history(local, remote)

        assert merged["x"].polarity is Polarity.DISLIKE
        assert merged["x"].timestamp == T0

    def test_verdict_replaces_newer_shown_entry(self):
        local = [
            HistoryEntry("x", T0 + timedelta(hours=1), None),
            HistoryEntry("x", T0, Polarity.LIKE),
        ]

        merged = merge_history(local, [])

        assert merged["x"].polarity is Polarity.LIKE

    def test_empty(self):
        assert merge_history([], []) == {}


@pytest.mark.anyio
async def test_remote_failure_falls_back_to_local():
    """A failing remote source never raises; local entries still count."""
    local = InMemoryLocalHistoryStore()
    await local.record("u1", "a", Polarity.LIKE, T0)
    remote = AsyncMock()
    remote.list_history.side_effect = ConnectionError("down")

    merged = await load_merged_history("u1", local, remote, timeout=1.0)

    assert list(merged) == ["a"]
    remote.list_history.assert_awaited_once_with("u1")


@pytest.mark.anyio
async def test_remote_timeout_treated_as_empty():
    async def slow(user_id):
        await asyncio.sleep(5)
        return [HistoryEntry("late", T0, Polarity.LIKE)]

    remote = AsyncMock()
    remote.list_history.side_effect = slow

    entries = await fetch_remote_history("u1", remote, timeout=0.05)

    assert entries == []


@pytest.mark.anyio
async def test_no_sources_configured():
    assert await load_merged_history("u1", None, None) == {}


@pytest.mark.anyio
async def test_local_read_failure_uses_remote():
    local = AsyncMock()
    local.list_entries.side_effect = OSError("disk gone")
    remote = AsyncMock()
    remote.list_history.return_value = [HistoryEntry("r", T0, Polarity.DISLIKE)]

    merged = await load_merged_history("u1", local, remote)

    assert list(merged) == ["r"]
