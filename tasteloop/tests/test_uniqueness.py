"""Tests for the uniqueness filter."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from tasteloop.core.contracts import HistoryEntry, Polarity
from tasteloop.core.uniqueness import (
    DEFAULT_DISLIKE_COOLDOWN,
    filter_eligible,
    get_item_id,
    is_eligible,
    needs_more,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def entry(item_id, polarity, age):
    return HistoryEntry(item_id=item_id, timestamp=NOW - age, polarity=polarity)


@dataclass
class Track:
    id: str
    title: str


class TestGetItemId:
    """Tests for candidate ID extraction."""

    def test_string(self):
        assert get_item_id("abc") == "abc"

    def test_number(self):
        assert get_item_id(42) == "42"

    def test_mapping_keys(self):
        assert get_item_id({"id": 7}) == "7"
        assert get_item_id({"item_id": "m-1"}) == "m-1"

    def test_recommendation_envelope(self):
        candidate = {"data": {"items": [{"id": "inner"}, {"id": "other"}]}}
        assert get_item_id(candidate) == "inner"

    def test_object_attribute(self):
        assert get_item_id(Track(id="t1", title="Song")) == "t1"

    def test_missing_id(self):
        assert get_item_id({"title": "No id"}) == ""
        assert get_item_id(None) == ""
        assert get_item_id({"data": {"items": []}}) == ""


class TestIsEligible:
    """Tests for single-entry eligibility."""

    def test_no_history(self):
        assert is_eligible(None, now=NOW)

    def test_shown_without_verdict(self):
        assert is_eligible(entry("a", None, timedelta(0)), now=NOW)

    def test_like_is_permanent(self):
        assert not is_eligible(entry("a", Polarity.LIKE, timedelta(days=3650)), now=NOW)

    def test_dislike_inside_cooldown(self):
        age = DEFAULT_DISLIKE_COOLDOWN - timedelta(seconds=1)
        assert not is_eligible(entry("a", Polarity.DISLIKE, age), now=NOW)

    def test_dislike_exactly_at_cooldown(self):
        assert not is_eligible(entry("a", Polarity.DISLIKE, DEFAULT_DISLIKE_COOLDOWN), now=NOW)

    def test_dislike_past_cooldown(self):
        age = DEFAULT_DISLIKE_COOLDOWN + timedelta(seconds=1)
        assert is_eligible(entry("a", Polarity.DISLIKE, age), now=NOW)

    def test_naive_timestamps_treated_as_utc(self):
        naive = HistoryEntry("a", datetime(2026, 2, 27, 12, 0), Polarity.DISLIKE)
        assert is_eligible(naive, now=NOW)


class TestFilterEligible:
    """Tests for batch filtering."""

    def test_mixed_history(self):
        """Like blocks, recent dislike blocks, old dislike and unseen pass."""
        history = {
            "liked": entry("liked", Polarity.LIKE, timedelta(days=30)),
            "fresh-dislike": entry("fresh-dislike", Polarity.DISLIKE, timedelta(hours=2)),
            "old-dislike": entry("old-dislike", Polarity.DISLIKE, timedelta(hours=25)),
        }
        candidates = ["liked", "unseen", "fresh-dislike", "old-dislike"]

        result = filter_eligible(history, candidates, now=NOW)

        assert result == ["unseen", "old-dislike"]

    def test_preserves_order_and_shape(self):
        candidates = [{"id": "c"}, {"id": "a"}, {"id": "b"}]
        history = {"a": entry("a", Polarity.LIKE, timedelta(hours=1))}

        result = filter_eligible(history, candidates, now=NOW)

        assert result == [{"id": "c"}, {"id": "b"}]

    def test_candidates_without_id_are_kept(self):
        result = filter_eligible({}, [{"title": "mystery"}], now=NOW)
        assert result == [{"title": "mystery"}]

    def test_custom_cooldown(self):
        history = {"a": entry("a", Polarity.DISLIKE, timedelta(hours=2))}

        assert filter_eligible(history, ["a"], cooldown=timedelta(hours=1), now=NOW) == ["a"]
        assert filter_eligible(history, ["a"], cooldown=timedelta(hours=3), now=NOW) == []

    def test_zero_cooldown(self):
        history = {"a": entry("a", Polarity.DISLIKE, timedelta(seconds=1))}
        assert filter_eligible(history, ["a"], cooldown=timedelta(0), now=NOW) == ["a"]

    def test_empty_candidates(self):
        assert filter_eligible({}, [], now=NOW) == []


class TestNeedsMore:
    """Tests for the refill advisory."""

    def test_below_threshold(self):
        assert needs_more(["a", "b"])

    def test_at_threshold(self):
        assert not needs_more(["a", "b", "c"])

    def test_custom_threshold(self):
        assert needs_more(["a"], min_threshold=2)
        assert not needs_more([], min_threshold=0)
