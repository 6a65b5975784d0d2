"""Uniqueness filtering: which candidates a user may see again."""

from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any, TypeVar

from tasteloop.core.contracts import HistoryEntry, Polarity, as_utc, utc_now

T = TypeVar("T")

# Disliked items come back after a day; liked items never do
DEFAULT_DISLIKE_COOLDOWN = timedelta(hours=24)
DEFAULT_MIN_THRESHOLD = 3


def get_item_id(candidate: Any) -> str:
    """Reduce a candidate to its item ID.

    Handles plain IDs, mappings with ``id``/``item_id`` (or a recommendation
    envelope ``{"data": {"items": [{"id": ...}]}}``) and objects exposing
    ``id``/``item_id`` attributes.

    Args:
        candidate: Candidate item in any supported shape

    Returns:
        Item ID as string, or "" if none can be found
    """
    if candidate is None:
        return ""
    if isinstance(candidate, str):
        return candidate
    if isinstance(candidate, (int, float)) and not isinstance(candidate, bool):
        return str(candidate)

    if isinstance(candidate, Mapping):
        for key in ("id", "item_id"):
            value = candidate.get(key)
            if value is not None and value != "":
                return str(value)
        data = candidate.get("data")
        if isinstance(data, Mapping):
            items = data.get("items")
            if isinstance(items, Sequence) and not isinstance(items, str) and items:
                return get_item_id(items[0])
        return ""

    for attr in ("id", "item_id"):
        value = getattr(candidate, attr, None)
        if value is not None and value != "":
            return str(value)
    return ""


def is_eligible(
    entry: HistoryEntry | None,
    cooldown: timedelta = DEFAULT_DISLIKE_COOLDOWN,
    now: datetime | None = None,
) -> bool:
    """Decide whether an item with the given history may be shown now.

    - no entry, or shown without a verdict: eligible
    - liked: never eligible again
    - disliked: eligible once strictly more than ``cooldown`` has elapsed

    Args:
        entry: Merged history entry for the item
        cooldown: Dislike cooldown window
        now: Reference time (defaults to current UTC time)

    Returns:
        True if eligible
    """
    if entry is None or entry.polarity is None:
        return True
    if entry.polarity is Polarity.LIKE:
        return False

    now = as_utc(now) if now else utc_now()
    return now - as_utc(entry.timestamp) > cooldown


def filter_eligible(
    history: Mapping[str, HistoryEntry],
    candidates: Sequence[T],
    cooldown: timedelta | None = None,
    now: datetime | None = None,
) -> list[T]:
    """Filter a candidate batch against merged history.

    Input order is preserved. Candidates without an ID are kept.

    Args:
        history: Merged item_id -> HistoryEntry map
        candidates: Candidate batch
        cooldown: Dislike cooldown (default 24h)
        now: Reference time

    Returns:
        Eligible candidates
    """
    cooldown = DEFAULT_DISLIKE_COOLDOWN if cooldown is None else cooldown
    now = as_utc(now) if now else utc_now()

    eligible = []
    for candidate in candidates:
        item_id = get_item_id(candidate)
        if not item_id or is_eligible(history.get(item_id), cooldown, now):
            eligible.append(candidate)
    return eligible


def needs_more(filtered: Sequence[Any], min_threshold: int = DEFAULT_MIN_THRESHOLD) -> bool:
    """Advise the caller to fetch a fresh batch when too few survived."""
    return len(filtered) < min_threshold
