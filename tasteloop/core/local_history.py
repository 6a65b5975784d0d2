"""Local (client-held) history provenance stores."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Any
from urllib.parse import quote

from tasteloop.core.contracts import HistoryEntry, Polarity, as_utc, utc_now
from tasteloop.logging import get_logger
from tasteloop.storage.json_utils import safe_json_dumps, safe_json_loads

logger = get_logger(__name__)


class _PerUserLocks:
    """One asyncio.Lock per user ID, created on first use."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def get(self, user_id: str) -> asyncio.Lock:
        return self._locks.setdefault(user_id, asyncio.Lock())


def _upsert(entries: list[HistoryEntry], entry: HistoryEntry) -> HistoryEntry:
    """Insert or replace ``entry`` in place and return the entry now held.

    A shown-only entry never replaces a like or dislike for the same item.
    """
    for index, existing in enumerate(entries):
        if existing.item_id == entry.item_id:
            if entry.polarity is None and existing.polarity is not None:
                return existing
            entries[index] = entry
            return entry
    entries.append(entry)
    return entry


class InMemoryLocalHistoryStore:
    """Process-local history, one list per user."""

    def __init__(self) -> None:
        self._entries: dict[str, list[HistoryEntry]] = {}
        self._locks = _PerUserLocks()

    async def record(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity | None = None,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            item_id=str(item_id),
            timestamp=as_utc(timestamp) if timestamp else utc_now(),
            polarity=polarity,
        )
        async with self._locks.get(user_id):
            entries = list(self._entries.get(user_id, []))
            held = _upsert(entries, entry)
            self._entries[user_id] = entries
        return held

    async def list_entries(self, user_id: str) -> list[HistoryEntry]:
        return list(self._entries.get(user_id, []))

    async def clear(self, user_id: str) -> None:
        async with self._locks.get(user_id):
            self._entries.pop(user_id, None)


class JsonFileLocalHistoryStore:
    """On-disk history: one JSON document per user in a directory.

    File I/O runs in a worker thread; read-modify-write is serialized
    per user within the process.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._locks = _PerUserLocks()

    def _path(self, user_id: str) -> Path:
        # Percent-encoding keeps distinct user IDs in distinct files
        return self.directory / f"recommendation-history-{quote(user_id, safe='')}.json"

    def _read(self, user_id: str) -> list[HistoryEntry]:
        path = self._path(user_id)
        if not path.exists():
            return []

        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Ignoring unreadable local history file {path}: {e}")
            return []

        rows = safe_json_loads(raw, default=[])
        if not isinstance(rows, list):
            logger.warning(f"Ignoring malformed local history file {path}")
            return []

        entries = []
        for row in rows:
            entry = _entry_from_row(row)
            if entry is not None:
                entries.append(entry)
        return entries

    def _write(self, user_id: str, entries: list[HistoryEntry]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(user_id)
        tmp_path = path.with_suffix(".tmp")
        tmp_path.write_text(
            safe_json_dumps([_entry_to_row(e) for e in entries], default="[]"),
            encoding="utf-8",
        )
        tmp_path.replace(path)

    async def record(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity | None = None,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            item_id=str(item_id),
            timestamp=as_utc(timestamp) if timestamp else utc_now(),
            polarity=polarity,
        )
        async with self._locks.get(user_id):
            entries = await asyncio.to_thread(self._read, user_id)
            held = _upsert(entries, entry)
            if held is entry:
                await asyncio.to_thread(self._write, user_id, entries)
        return held

    async def list_entries(self, user_id: str) -> list[HistoryEntry]:
        return await asyncio.to_thread(self._read, user_id)

    async def clear(self, user_id: str) -> None:
        async with self._locks.get(user_id):
            path = self._path(user_id)
            await asyncio.to_thread(path.unlink, missing_ok=True)


def _entry_to_row(entry: HistoryEntry) -> dict[str, Any]:
    return {
        "id": entry.item_id,
        "timestamp": entry.timestamp.isoformat(),
        "feedbackType": entry.polarity.value if entry.polarity else None,
    }


def _entry_from_row(row: Any) -> HistoryEntry | None:
    if not isinstance(row, dict) or not row.get("id"):
        return None
    try:
        timestamp = as_utc(datetime.fromisoformat(str(row["timestamp"])))
    except (KeyError, TypeError, ValueError):
        return None

    polarity = None
    if row.get("feedbackType"):
        try:
            polarity = Polarity(row["feedbackType"])
        except ValueError:
            return None

    return HistoryEntry(item_id=str(row["id"]), timestamp=timestamp, polarity=polarity)
