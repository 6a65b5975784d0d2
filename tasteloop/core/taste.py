"""Taste profiling: moods, style, intensity and variety per domain."""

import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from tasteloop.core.aggregation import AggregatedSignals
from tasteloop.core.contracts import Domain, TasteProfile, TasteSummary

MAX_MOODS = 3
MAX_VARIETY_PER_AXIS = 5
DEFAULT_INTENSITY = 5
UNKNOWN_GENRE_MOOD = "universal"
EMPTY_MOODS = ("universal", "eclectic")

MUSIC_MOODS: dict[str, tuple[str, ...]] = {
    "rock": ("energetic", "rebellious"),
    "pop": ("cheerful", "light"),
    "jazz": ("sophisticated", "contemplative"),
    "classical": ("subtle", "emotional"),
    "metal": ("intense", "dark"),
    "electronic": ("rhythmic", "modern"),
    "hip-hop": ("rhythmic", "urban"),
    "reggae": ("relaxing", "carefree"),
    "blues": ("melancholic", "deep"),
    "country": ("storytelling", "rustic"),
    "indie": ("reflective", "alternative"),
}

FILM_MOODS: dict[str, tuple[str, ...]] = {
    "drama": ("emotional", "reflective"),
    "comedy": ("funny", "carefree"),
    "action": ("dynamic", "adrenaline"),
    "thriller": ("suspenseful", "uncertain"),
    "horror": ("frightening", "unsettling"),
    "sci-fi": ("visionary", "futuristic"),
    "romance": ("romantic", "tender"),
    "fantasy": ("magical", "imaginative"),
    "documentary": ("informative", "analytical"),
    "animation": ("creative", "colorful"),
}

MUSIC_INTENSITY: dict[str, int] = {
    "metal": 9,
    "rock": 7,
    "electronic": 6,
    "hip-hop": 6,
    "pop": 4,
    "jazz": 3,
    "classical": 2,
    "ambient": 1,
}

FILM_INTENSITY: dict[str, int] = {
    "action": 9,
    "horror": 8,
    "thriller": 7,
    "sci-fi": 6,
    "drama": 5,
    "comedy": 4,
    "romance": 3,
    "documentary": 2,
}


@dataclass(frozen=True)
class StyleContext:
    """Inputs a style rule may look at."""

    genres: frozenset[str]
    genre_count: int
    secondary_count: int
    has_director: bool

    def has(self, *genres: str) -> bool:
        return all(g in self.genres for g in genres)

    def has_any(self, *genres: str) -> bool:
        return any(g in self.genres for g in genres)


StyleRule = tuple[Callable[[StyleContext], bool], str]

# Evaluated top to bottom; the first matching predicate wins
MUSIC_STYLE_RULES: tuple[StyleRule, ...] = (
    (lambda c: c.has("rock", "metal"), "heavy sounds"),
    (lambda c: c.has_any("jazz", "classical"), "refined classics"),
    (lambda c: c.has_any("electronic", "pop"), "modern hits"),
    (lambda c: c.has_any("hip-hop", "rap"), "dynamic rhythms"),
    (lambda c: c.has_any("indie", "alternative"), "alternative discoveries"),
    (lambda c: c.secondary_count > c.genre_count, "artist-driven"),
)
MUSIC_DEFAULT_STYLE = "eclectic mix"

FILM_STYLE_RULES: tuple[StyleRule, ...] = (
    (lambda c: c.has("action", "thriller"), "energetic suspense"),
    (lambda c: c.has("drama") and c.has_any("romance", "comedy"), "emotional stories"),
    (lambda c: c.has_any("horror", "thriller"), "dark tales"),
    (lambda c: c.has_any("sci-fi", "fantasy"), "creative worlds"),
    (lambda c: c.has_director, "visionary cinema"),
)
FILM_DEFAULT_STYLE = "diverse experiences"

DOMAIN_TABLES = {
    Domain.MUSIC: (MUSIC_MOODS, MUSIC_INTENSITY, MUSIC_STYLE_RULES, MUSIC_DEFAULT_STYLE),
    Domain.FILM: (FILM_MOODS, FILM_INTENSITY, FILM_STYLE_RULES, FILM_DEFAULT_STYLE),
}

PROFILE_FORMING_NAME = "Taste Still Forming"
PROFILE_FORMING_DESCRIPTION = (
    "Your taste profile is still forming. "
    "Like a few more recommendations to get a more precise analysis."
)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def determine_moods(genres: Sequence[str], domain: Domain) -> list[str]:
    """Map genres to at most three mood words, in genre order.

    Args:
        genres: Genre tokens, ranked
        domain: Domain whose lookup table applies

    Returns:
        Distinct mood words
    """
    if not genres:
        return list(EMPTY_MOODS)

    mood_table = DOMAIN_TABLES[domain][0]
    moods: list[str] = []
    for genre in genres:
        for mood in mood_table.get(genre.lower(), (UNKNOWN_GENRE_MOOD,)):
            if mood not in moods:
                moods.append(mood)
    return moods[:MAX_MOODS]


def determine_style(
    genres: Sequence[str],
    domain: Domain,
    secondary: Sequence[str] = (),
    has_director: bool = False,
) -> str:
    """Pick a style label from the domain's ordered rule list."""
    _, _, rules, default = DOMAIN_TABLES[domain]
    context = StyleContext(
        genres=frozenset(g.lower() for g in genres),
        genre_count=len(genres),
        secondary_count=len(secondary),
        has_director=has_director,
    )
    for predicate, label in rules:
        if predicate(context):
            return label
    return default


def calculate_intensity(genres: Sequence[str], domain: Domain) -> int:
    """Average intensity of mapped genres, rounded; 5 when none map."""
    intensity_table = DOMAIN_TABLES[domain][1]
    scores = [
        intensity_table[genre.lower()]
        for genre in genres
        if genre.lower() in intensity_table
    ]
    if not scores:
        return DEFAULT_INTENSITY
    return _round_half_up(sum(scores) / len(scores))


def calculate_variety(genres: Sequence[str], secondary: Sequence[str]) -> int:
    """min(5, distinct genres) + min(5, distinct artists or cast)."""
    distinct_genres = {g.lower() for g in genres}
    distinct_secondary = {s.lower() for s in secondary}
    return min(MAX_VARIETY_PER_AXIS, len(distinct_genres)) + min(
        MAX_VARIETY_PER_AXIS, len(distinct_secondary)
    )


def analyze_taste(
    domain: Domain,
    genres: Sequence[str],
    secondary: Sequence[str] = (),
    directors: Sequence[str] = (),
) -> TasteProfile:
    """Build a TasteProfile for one domain.

    Args:
        domain: Music or film
        genres: Ranked genre tokens
        secondary: Artists (music) or cast (film)
        directors: Directors (film only)

    Returns:
        TasteProfile
    """
    return TasteProfile(
        domain=domain,
        genres=list(dict.fromkeys(genres)),
        moods=determine_moods(genres, domain),
        style=determine_style(genres, domain, secondary, has_director=bool(directors)),
        intensity=calculate_intensity(genres, domain),
        variety=calculate_variety(genres, secondary),
    )


def profile_from_signals(signals: AggregatedSignals | None) -> TasteProfile | None:
    """Profile aggregated signals; an empty genre vector means no profile."""
    if signals is None or signals.is_empty:
        return None
    return analyze_taste(
        signals.domain,
        signals.genres.tokens,
        signals.secondary.tokens,
        signals.directors.tokens if signals.domain is Domain.FILM else (),
    )


def generate_taste_name(
    music: TasteProfile | None,
    film: TasteProfile | None,
) -> str:
    """Archetype name from intensity/variety thresholds."""
    if music and film:
        if music.intensity > 7 and film.intensity > 7:
            return "Intense Enthusiast"
        if music.variety > 7 and film.variety > 7:
            return "Versatile Explorer"
        if music.intensity < 4 and film.intensity < 4:
            return "Contemplative Connoisseur"
        return "Balanced Enthusiast"

    if music:
        if music.intensity > 7:
            return "Music Energizer"
        if music.variety > 7:
            return "Music Explorer"
        if music.intensity < 4:
            return "Music Lover"
        return "Music Enthusiast"

    if film:
        if film.intensity > 7:
            return "Thrill Seeker"
        if film.variety > 7:
            return "Film Connoisseur"
        if film.intensity < 4:
            return "Film Aesthete"
        return "Film Enthusiast"

    return PROFILE_FORMING_NAME


def generate_taste_description(
    music: TasteProfile | None,
    film: TasteProfile | None,
) -> str:
    """Templated description; falls back to the still-forming message."""
    if not music and not film:
        return PROFILE_FORMING_DESCRIPTION

    description = "Your taste is defined by "

    if music and film:
        if music.intensity > 7 and film.intensity > 7:
            description += "a love of intense experiences in both music and film. "
        elif music.variety > 7 and film.variety > 7:
            description += "a wide range of interests across musical and film genres. "
        elif music.intensity < 4 and film.intensity < 4:
            description += "a fondness for subtle, reflective tracks and films. "
        else:
            description += "a balanced approach to different art forms. "
        description += (
            f'You favour music described as "{music.style}" '
            f'and films in the "{film.style}" style.'
        )
    elif music:
        description += f'a love of music in the "{music.style}" style. '
        description += f"You value tracks with a {' and '.join(music.moods)} character."
    else:
        description += f'a love of films in the "{film.style}" style. '
        description += f"You value productions with a {' and '.join(film.moods)} character."

    return description


def build_taste_summary(
    music_signals: AggregatedSignals | None,
    film_signals: AggregatedSignals | None,
) -> TasteSummary:
    """Synthesize the cross-domain summary from aggregated signals.

    Args:
        music_signals: Aggregated music signals, or None
        film_signals: Aggregated film signals, or None

    Returns:
        TasteSummary with name, description and per-domain profiles
    """
    music = profile_from_signals(music_signals)
    film = profile_from_signals(film_signals)
    genre_metadata = [
        row
        for signals in (music_signals, film_signals)
        if signals is not None
        for row in signals.genres.to_metadata()
    ]
    return TasteSummary(
        name=generate_taste_name(music, film),
        description=generate_taste_description(music, film),
        music=music,
        film=film,
        genre_metadata=genre_metadata,
    )
