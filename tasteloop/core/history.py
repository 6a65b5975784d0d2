"""Merging of local and remote per-item feedback history."""

import asyncio
from collections.abc import Iterable

from tasteloop.core.contracts import HistoryEntry, LocalHistoryStore, RemoteHistorySource
from tasteloop.logging import get_logger

logger = get_logger(__name__)

DEFAULT_REMOTE_TIMEOUT = 5.0


def merge_history(
    local: Iterable[HistoryEntry],
    remote: Iterable[HistoryEntry],
) -> dict[str, HistoryEntry]:
    """Reconcile two history provenances into one view.

    Local entries go in first. A remote entry replaces the stored entry
    when the key is absent or its timestamp is not older, so equal
    timestamps resolve to remote. An entry without a verdict (shown only)
    never replaces a like or dislike, whatever its timestamp.

    Args:
        local: Client-held entries
        remote: Authoritative entries

    Returns:
        Dict of item_id -> winning HistoryEntry
    """
    merged: dict[str, HistoryEntry] = {}

    for entry in local:
        current = merged.get(entry.item_id)
        # A local store may hold duplicates; keep its newest
        if _supersedes(entry, current, on_tie=False):
            merged[entry.item_id] = entry

    for entry in remote:
        current = merged.get(entry.item_id)
        if _supersedes(entry, current, on_tie=True):
            merged[entry.item_id] = entry

    return merged


def _supersedes(entry: HistoryEntry, current: HistoryEntry | None, on_tie: bool) -> bool:
    if current is None:
        return True
    if entry.polarity is None and current.polarity is not None:
        return False
    if current.polarity is None and entry.polarity is not None:
        return True
    if entry.timestamp == current.timestamp:
        return on_tie
    return entry.timestamp > current.timestamp


async def fetch_remote_history(
    user_id: str,
    remote_source: RemoteHistorySource | None,
    timeout: float = DEFAULT_REMOTE_TIMEOUT,
) -> list[HistoryEntry]:
    """Fetch remote history, degrading to empty on any failure.

    Args:
        user_id: User ID
        remote_source: Remote provenance, or None when not configured
        timeout: Upper bound on the fetch, in seconds

    Returns:
        Remote entries, or [] if unavailable
    """
    if remote_source is None:
        return []

    try:
        return list(await asyncio.wait_for(remote_source.list_history(user_id), timeout))
    except asyncio.TimeoutError:
        logger.warning(f"Remote history timed out after {timeout}s for user {user_id}")
    except Exception as e:
        logger.warning(f"Remote history unavailable for user {user_id}: {e}")
    return []


async def load_merged_history(
    user_id: str,
    local_store: LocalHistoryStore | None,
    remote_source: RemoteHistorySource | None,
    timeout: float = DEFAULT_REMOTE_TIMEOUT,
) -> dict[str, HistoryEntry]:
    """Load both provenances for a user and merge them.

    Remote failure falls back to a local-only merge; never raises for
    collaborator failures.

    Args:
        user_id: User ID
        local_store: Local provenance
        remote_source: Remote provenance
        timeout: Remote fetch timeout in seconds

    Returns:
        Merged history map
    """
    local_entries: list[HistoryEntry] = []
    if local_store is not None:
        try:
            local_entries = await local_store.list_entries(user_id)
        except Exception as e:
            logger.warning(f"Local history unreadable for user {user_id}: {e}")

    remote_entries = await fetch_remote_history(user_id, remote_source, timeout)

    merged = merge_history(local_entries, remote_entries)
    logger.debug(
        f"Merged history for user {user_id}: local={len(local_entries)}, "
        f"remote={len(remote_entries)}, merged={len(merged)}"
    )
    return merged
