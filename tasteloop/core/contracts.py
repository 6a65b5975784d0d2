"""Domain contracts and type definitions."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Protocol


class InvalidInputError(ValueError):
    """Raised when a caller passes a missing user ID, unknown domain or polarity."""


class Domain(str, Enum):
    """Content domains a user can give feedback on."""

    MUSIC = "music"
    FILM = "film"


class Polarity(str, Enum):
    """Accept/reject verdict on a recommended item."""

    LIKE = "like"
    DISLIKE = "dislike"


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_domain(value: "Domain | str | None") -> Domain:
    """Coerce caller input to a Domain.

    Raises:
        InvalidInputError: If the value is missing or not a known domain
    """
    if isinstance(value, Domain):
        return value
    if not value:
        raise InvalidInputError("domain is required")
    try:
        return Domain(str(value).strip().lower())
    except ValueError:
        raise InvalidInputError(
            f"unknown domain {value!r}, expected one of: "
            + ", ".join(d.value for d in Domain)
        )


def parse_polarity(value: "Polarity | str | None") -> Polarity:
    """Coerce caller input to a Polarity.

    Raises:
        InvalidInputError: If the value is missing or not a known polarity
    """
    if isinstance(value, Polarity):
        return value
    if not value:
        raise InvalidInputError("polarity is required")
    try:
        return Polarity(str(value).strip().lower())
    except ValueError:
        raise InvalidInputError(
            f"unknown polarity {value!r}, expected 'like' or 'dislike'"
        )


def require_user_id(user_id: Any) -> str:
    """Validate a user ID and return it as a stripped string."""
    if user_id is None or not str(user_id).strip():
        raise InvalidInputError("user_id is required")
    return str(user_id).strip()


@dataclass(frozen=True)
class FeedbackEvent:
    """A user's accept/reject action on one item.

    Identified by (user_id, item_id): a newer event for the same pair
    supersedes the stored one.
    """

    item_id: str
    user_id: str
    polarity: Polarity
    timestamp: datetime
    raw_signals: dict[str, Any] = field(default_factory=dict)
    domain: Domain | None = None


@dataclass(frozen=True)
class HistoryEntry:
    """Minimal projection of a feedback event used for uniqueness decisions.

    A polarity of None marks an item that was shown without a verdict.
    """

    item_id: str
    timestamp: datetime
    polarity: Polarity | None = None


@dataclass
class PreferenceVector:
    """Ranked token counts derived from liked-item signals."""

    domain: Domain
    token_counts: dict[str, int] = field(default_factory=dict)

    @property
    def tokens(self) -> list[str]:
        return list(self.token_counts)

    @property
    def is_empty(self) -> bool:
        return not self.token_counts

    @property
    def weights(self) -> dict[str, float]:
        """count / max count, so the mode weighs exactly 1.0."""
        max_count = max(self.token_counts.values(), default=0)
        divisor = max(max_count, 1)
        return {token: count / divisor for token, count in self.token_counts.items()}

    def to_metadata(self, kind: str = "genre") -> list[dict[str, Any]]:
        """Rows in the shape the preference panels consume."""
        weights = self.weights
        return [
            {
                "id": token.lower().replace(" ", "-"),
                "type": f"{self.domain.value}_{kind}",
                "name": token,
                "count": count,
                "weight": weights[token],
            }
            for token, count in self.token_counts.items()
        ]


@dataclass
class TasteProfile:
    """Descriptive read view of one domain's preference vector."""

    domain: Domain
    genres: list[str]
    moods: list[str]
    style: str
    intensity: int
    variety: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "domain": self.domain.value,
            "genres": list(self.genres),
            "moods": list(self.moods),
            "style": self.style,
            "intensity": self.intensity,
            "variety": self.variety,
        }


@dataclass
class TasteSummary:
    """Cross-domain taste synthesis."""

    name: str
    description: str
    music: TasteProfile | None = None
    film: TasteProfile | None = None
    # PreferenceVector.to_metadata rows for both domains' genres
    genre_metadata: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "music": self.music.to_dict() if self.music else None,
            "film": self.film.to_dict() if self.film else None,
            "genre_metadata": [dict(row) for row in self.genre_metadata],
        }


@dataclass
class StoredPreferences:
    """Durable per-user, per-domain preference record."""

    user_id: str
    domain: Domain
    fields: dict[str, Any] = field(default_factory=dict)
    updated_at: datetime | None = None


@dataclass
class InferenceProposal:
    """Preference delta proposed by an inference capability."""

    updated_preferences: dict[str, Any]
    notes: str | None = None


class FeedbackStore(Protocol):
    """Persistent feedback store, upsert on (user_id, item_id)."""

    async def record_feedback(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity,
        raw_signals: dict[str, Any],
        domain: Domain | None = None,
    ) -> FeedbackEvent:
        ...

    async def list_feedback(
        self,
        user_id: str,
        domain: Domain | None = None,
        polarity: Polarity | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[FeedbackEvent]:
        ...


class PreferencesStore(Protocol):
    """Stored preferences with field-wise merge semantics."""

    async def get(self, user_id: str, domain: Domain) -> StoredPreferences | None:
        ...

    async def upsert(
        self, user_id: str, domain: Domain, fields: dict[str, Any]
    ) -> StoredPreferences:
        ...


class RemoteHistorySource(Protocol):
    """Authoritative history provenance."""

    async def list_history(self, user_id: str) -> list[HistoryEntry]:
        ...

    async def clear_history(self, user_id: str) -> None:
        ...


class LocalHistoryStore(Protocol):
    """Fast, possibly stale, per-user history provenance."""

    async def record(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity | None = None,
        timestamp: datetime | None = None,
    ) -> HistoryEntry:
        ...

    async def list_entries(self, user_id: str) -> list[HistoryEntry]:
        ...

    async def clear(self, user_id: str) -> None:
        ...


class InferenceCapability(Protocol):
    """External service proposing a preference delta."""

    async def propose(
        self,
        current_preferences: dict[str, Any],
        recent_feedback: list[FeedbackEvent],
        domain: Domain,
    ) -> InferenceProposal | None:
        ...
