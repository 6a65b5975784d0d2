"""Preference aggregation over liked feedback."""

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

from tasteloop.core.contracts import Domain, FeedbackEvent, Polarity, PreferenceVector
from tasteloop.core.signals import extract_field_tokens

# Signal fields read per domain, in priority order
GENRE_FIELDS: tuple[str, ...] = ("genre", "genres")
SECONDARY_FIELDS: dict[Domain, tuple[str, ...]] = {
    Domain.MUSIC: ("artist", "artists"),
    Domain.FILM: ("cast",),
}
DIRECTOR_FIELDS: tuple[str, ...] = ("director", "directors")

TokenExtractor = Callable[[dict[str, Any], tuple[str, ...]], list[str]]


@dataclass
class AggregatedSignals:
    """All vectors aggregated for one domain."""

    domain: Domain
    genres: PreferenceVector
    secondary: PreferenceVector
    directors: PreferenceVector

    @property
    def is_empty(self) -> bool:
        return self.genres.is_empty


def aggregate_preferences(
    events: Iterable[FeedbackEvent],
    domain: Domain,
    fields: tuple[str, ...] = GENRE_FIELDS,
    extractor: TokenExtractor = extract_field_tokens,
) -> PreferenceVector:
    """Count token occurrences across liked events.

    Dislikes never contribute. A token counts once per event. Tokens are
    ranked by descending count; ties keep first-seen order.

    Args:
        events: Feedback events, any polarity
        domain: Domain the vector describes
        fields: Signal fields to read tokens from
        extractor: Token extractor (raw_signals, fields) -> tokens

    Returns:
        PreferenceVector; empty when no liked event carries a token
    """
    counts: dict[str, int] = {}

    for event in events:
        if event.polarity is not Polarity.LIKE:
            continue
        seen_in_event: set[str] = set()
        for token in extractor(event.raw_signals, fields):
            if token in seen_in_event:
                continue
            seen_in_event.add(token)
            counts[token] = counts.get(token, 0) + 1

    # dict preserves first-seen order; sorted() is stable
    ranked = sorted(counts.items(), key=lambda pair: pair[1], reverse=True)
    return PreferenceVector(domain=domain, token_counts=dict(ranked))


def aggregate_domain(
    events: Iterable[FeedbackEvent],
    domain: Domain,
) -> AggregatedSignals:
    """Aggregate genre, secondary attribute and director vectors for a domain.

    Args:
        events: Feedback events; events tagged with another domain are ignored
        domain: Domain to aggregate

    Returns:
        AggregatedSignals bundle
    """
    relevant = [e for e in events if e.domain is None or e.domain is domain]

    return AggregatedSignals(
        domain=domain,
        genres=aggregate_preferences(relevant, domain, GENRE_FIELDS),
        secondary=aggregate_preferences(relevant, domain, SECONDARY_FIELDS[domain]),
        directors=aggregate_preferences(relevant, domain, DIRECTOR_FIELDS),
    )
