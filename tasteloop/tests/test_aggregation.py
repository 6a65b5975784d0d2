"""Tests for preference aggregation."""

from datetime import datetime, timezone

from tasteloop.core.aggregation import aggregate_domain, aggregate_preferences
from tasteloop.core.contracts import Domain, FeedbackEvent, Polarity, PreferenceVector

NOW = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_event(item_id, polarity=Polarity.LIKE, domain=Domain.FILM, **signals):
    return FeedbackEvent(
        item_id=item_id,
        user_id="u1",
        polarity=polarity,
        timestamp=NOW,
        raw_signals=signals,
        domain=domain,
    )


def test_counts_and_weights():
    """Two liked films: Action twice, Drama and Comedy once."""
    events = [
        make_event("f1", genres=["Action", "Drama"]),
        make_event("f2", genres="action, comedy"),
    ]

    vector = aggregate_preferences(events, Domain.FILM)

    assert vector.token_counts == {"Action": 2, "Drama": 1, "Comedy": 1}
    assert vector.weights == {"Action": 1.0, "Drama": 0.5, "Comedy": 0.5}
    assert vector.tokens[0] == "Action"


def test_dislikes_do_not_contribute():
    events = [
        make_event("f1", genres=["Horror"]),
        make_event("f2", polarity=Polarity.DISLIKE, genres=["Romance", "Horror"]),
    ]

    vector = aggregate_preferences(events, Domain.FILM)

    assert vector.token_counts == {"Horror": 1}


def test_token_counted_once_per_event():
    events = [make_event("f1", genre="Drama", genres=["drama", "Drama"])]

    vector = aggregate_preferences(events, Domain.FILM)

    assert vector.token_counts == {"Drama": 1}


def test_ties_keep_first_seen_order():
    events = [
        make_event("f1", genres=["Western", "Noir"]),
        make_event("f2", genres=["Musical", "Noir"]),
    ]

    vector = aggregate_preferences(events, Domain.FILM)

    assert vector.tokens == ["Noir", "Western", "Musical"]


def test_empty_input_yields_empty_vector():
    vector = aggregate_preferences([], Domain.MUSIC)

    assert vector.is_empty
    assert vector.weights == {}


def test_events_without_signals():
    events = [make_event("f1"), make_event("f2", genres=None)]

    assert aggregate_preferences(events, Domain.FILM).is_empty


def test_aggregate_domain_ignores_other_domain():
    events = [
        make_event("t1", domain=Domain.MUSIC, genres=["Rock"], artists=["Muse"]),
        make_event("f1", domain=Domain.FILM, genres=["Drama"], cast=["Actor A"]),
        make_event("x1", domain=None, genres=["Jazz"]),
    ]

    music = aggregate_domain(events, Domain.MUSIC)

    assert music.genres.tokens == ["Rock", "Jazz"]
    assert music.secondary.tokens == ["Muse"]
    assert music.directors.is_empty


def test_aggregate_domain_film_fields():
    events = [
        make_event("f1", genres=["Drama"], cast="Actor A, Actor B", director="Director X"),
    ]

    film = aggregate_domain(events, Domain.FILM)

    assert film.secondary.token_counts == {"Actor a": 1, "Actor b": 1}
    assert film.directors.tokens == ["Director x"]
    assert not film.is_empty


def test_vector_metadata_rows():
    vector = PreferenceVector(Domain.MUSIC, {"Hip hop": 4, "Jazz": 2})

    rows = vector.to_metadata()

    assert rows == [
        {"id": "hip-hop", "type": "music_genre", "name": "Hip hop", "count": 4, "weight": 1.0},
        {"id": "jazz", "type": "music_genre", "name": "Jazz", "count": 2, "weight": 0.5},
    ]
