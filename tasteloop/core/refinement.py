"""Background refinement of stored preferences from recent feedback."""

import asyncio
from collections.abc import Coroutine, Mapping
from dataclasses import dataclass, field
from typing import Any

from tasteloop.core.aggregation import GENRE_FIELDS, SECONDARY_FIELDS, aggregate_preferences
from tasteloop.core.contracts import (
    Domain,
    FeedbackEvent,
    FeedbackStore,
    InferenceCapability,
    Polarity,
    PreferencesStore,
)
from tasteloop.logging import get_logger

logger = get_logger(__name__)

DEFAULT_RECENT_LIMIT = 10
DEFAULT_STEP_TIMEOUT = 20.0
REFRESH_LIKES_LIMIT = 1000

PREFERENCE_FIELDS: dict[Domain, frozenset[str]] = {
    Domain.MUSIC: frozenset({"genres", "artists", "liked_tracks"}),
    Domain.FILM: frozenset({"genres", "director", "cast", "screenwriter", "liked_movies"}),
}
SECONDARY_PREFERENCE_FIELD: dict[Domain, str] = {
    Domain.MUSIC: "artists",
    Domain.FILM: "cast",
}
LIKED_ITEMS_FIELD: dict[Domain, str] = {
    Domain.MUSIC: "liked_tracks",
    Domain.FILM: "liked_movies",
}
PROTECTED_FIELDS = frozenset({"id", "user_id", "domain", "created_at", "updated_at"})


def sanitize_delta(delta: Mapping[str, Any] | None, domain: Domain) -> dict[str, Any]:
    """Keep only known, non-protected, non-null fields of a proposed delta."""
    if not isinstance(delta, Mapping):
        return {}
    allowed = PREFERENCE_FIELDS[domain]
    return {
        key: value
        for key, value in delta.items()
        if key in allowed and key not in PROTECTED_FIELDS and value is not None
    }


def merge_preferences(
    existing: Mapping[str, Any] | None,
    delta: Mapping[str, Any] | None,
    domain: Domain,
) -> dict[str, Any]:
    """Merge a delta into stored fields.

    Fields absent from the delta are retained; fields present supersede.
    Applying the same delta twice yields the same result as applying it once.

    Args:
        existing: Stored preference fields
        delta: Proposed update
        domain: Domain the fields belong to

    Returns:
        New field mapping
    """
    merged = dict(existing or {})
    merged.update(sanitize_delta(delta, domain))
    return merged


def _prepend_ranked(ranked: list[str], existing: Any) -> list[str]:
    """Ranked tokens first, then existing values not already present."""
    result = list(ranked)
    seen = {token.lower() for token in ranked}
    if isinstance(existing, list):
        for value in existing:
            if isinstance(value, str) and value.lower() not in seen:
                seen.add(value.lower())
                result.append(value)
    return result


def heuristic_delta(
    current: Mapping[str, Any],
    recent_feedback: list[FeedbackEvent],
    domain: Domain,
) -> dict[str, Any]:
    """Local stand-in for inference: promote recently liked genres and people."""
    delta: dict[str, Any] = {}

    genres = aggregate_preferences(recent_feedback, domain, GENRE_FIELDS)
    if not genres.is_empty:
        delta["genres"] = _prepend_ranked(genres.tokens, current.get("genres"))

    secondary_field = SECONDARY_PREFERENCE_FIELD[domain]
    secondary = aggregate_preferences(recent_feedback, domain, SECONDARY_FIELDS[domain])
    if not secondary.is_empty:
        delta[secondary_field] = _prepend_ranked(secondary.tokens, current.get(secondary_field))

    return delta


@dataclass
class RefinementOutcome:
    """What a refinement run did."""

    user_id: str
    domain: Domain
    status: str  # "applied", "skipped" or "failed"
    changed_fields: list[str] = field(default_factory=list)
    reason: str | None = None
    notes: str | None = None

    @property
    def applied(self) -> bool:
        return self.status == "applied"


class PreferenceUpdateCoordinator:
    """Proposes and applies preference deltas after feedback.

    ``refine`` is the error boundary of the background pipeline: every
    failure is logged and reported in the outcome, never raised.
    """

    def __init__(
        self,
        feedback_store: FeedbackStore,
        preferences_store: PreferencesStore,
        inference: InferenceCapability | None = None,
        recent_limit: int = DEFAULT_RECENT_LIMIT,
        step_timeout: float = DEFAULT_STEP_TIMEOUT,
        local_fallback: bool = False,
    ) -> None:
        self.feedback_store = feedback_store
        self.preferences_store = preferences_store
        self.inference = inference
        self.recent_limit = recent_limit
        self.step_timeout = step_timeout
        self.local_fallback = local_fallback

    async def _bounded(self, coro: Coroutine[Any, Any, Any]) -> Any:
        return await asyncio.wait_for(coro, self.step_timeout)

    async def _propose_delta(
        self,
        current: dict[str, Any],
        recent: list[FeedbackEvent],
        domain: Domain,
    ) -> tuple[dict[str, Any], str | None, str | None]:
        """Return (delta, notes, skip_reason)."""
        if self.inference is not None:
            proposal = await self._bounded(self.inference.propose(current, recent, domain))
            if proposal is None:
                return {}, None, "inference_unavailable"
            return sanitize_delta(proposal.updated_preferences, domain), proposal.notes, None

        if self.local_fallback:
            return sanitize_delta(heuristic_delta(current, recent, domain), domain), None, None

        return {}, None, "inference_not_configured"

    async def refine(self, user_id: str, domain: Domain) -> RefinementOutcome:
        """Run one refinement pass for a user and domain.

        Args:
            user_id: User ID
            domain: Domain whose stored preferences may change

        Returns:
            RefinementOutcome
        """
        try:
            recent = await self._bounded(
                self.feedback_store.list_feedback(user_id, domain=domain, limit=self.recent_limit)
            )
            stored = await self._bounded(self.preferences_store.get(user_id, domain))
            current = dict(stored.fields) if stored else {}

            delta, notes, skip_reason = await self._propose_delta(current, recent, domain)
            if skip_reason:
                logger.debug(f"Refinement skipped for user {user_id}/{domain.value}: {skip_reason}")
                return RefinementOutcome(user_id, domain, "skipped", reason=skip_reason)
            if not delta:
                return RefinementOutcome(user_id, domain, "skipped", reason="empty_delta", notes=notes)

            merged = merge_preferences(current, delta, domain)
            changed = sorted(k for k in merged if k not in current or current[k] != merged[k])
            if not changed:
                return RefinementOutcome(user_id, domain, "skipped", reason="no_change", notes=notes)

            await self._bounded(
                self.preferences_store.upsert(user_id, domain, {k: merged[k] for k in changed})
            )
            logger.info(
                f"Refined preferences: fields={changed}",
                extra={"user_id": user_id, "domain": domain.value},
            )
            return RefinementOutcome(user_id, domain, "applied", changed_fields=changed, notes=notes)

        except asyncio.TimeoutError:
            logger.warning(f"Refinement timed out for user {user_id}/{domain.value}")
            return RefinementOutcome(user_id, domain, "failed", reason="timeout")
        except Exception as e:
            logger.exception(f"Refinement failed for user {user_id}/{domain.value}: {e}")
            return RefinementOutcome(user_id, domain, "failed", reason=type(e).__name__)

    async def refresh_from_likes(self, user_id: str, domain: Domain) -> bool:
        """Rebuild genres and liked-item IDs from all liked feedback.

        Args:
            user_id: User ID
            domain: Domain to refresh

        Returns:
            True if preferences were saved, False if nothing to save or on failure
        """
        try:
            liked = await self._bounded(
                self.feedback_store.list_feedback(
                    user_id, domain=domain, polarity=Polarity.LIKE, limit=REFRESH_LIKES_LIMIT
                )
            )
            genres = aggregate_preferences(liked, domain, GENRE_FIELDS)
            liked_ids = [event.item_id for event in liked]

            if genres.is_empty and not liked_ids:
                logger.info(f"No genres or liked items to save for user {user_id}/{domain.value}")
                return False

            await self._bounded(
                self.preferences_store.upsert(
                    user_id,
                    domain,
                    {"genres": genres.tokens, LIKED_ITEMS_FIELD[domain]: liked_ids},
                )
            )
            logger.info(
                f"Refreshed {domain.value} preferences for user {user_id}: "
                f"{len(liked_ids)} liked items, {len(genres.tokens)} genres"
            )
            return True
        except Exception as e:
            logger.exception(f"Preference refresh failed for user {user_id}/{domain.value}: {e}")
            return False


class RefinementQueue:
    """Bounded hand-off between the feedback path and refinement workers.

    ``submit`` never blocks: a full queue drops the request. A (user, domain)
    pair already waiting in the queue is not queued twice.
    """

    def __init__(
        self,
        coordinator: PreferenceUpdateCoordinator,
        maxsize: int = 100,
        workers: int = 2,
    ) -> None:
        self.coordinator = coordinator
        self.workers = max(1, workers)
        self._queue: asyncio.Queue[tuple[str, Domain]] = asyncio.Queue(maxsize=maxsize)
        self._pending: set[tuple[str, Domain]] = set()
        self._tasks: list[asyncio.Task[None]] = []
        self.dropped = 0

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def submit(self, user_id: str, domain: Domain) -> bool:
        """Queue a refinement run; returns False if it was not queued."""
        key = (user_id, domain)
        if key in self._pending:
            return False
        try:
            self._queue.put_nowait(key)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                f"Refinement queue full, dropping run for user {user_id}/{domain.value}"
            )
            return False
        self._pending.add(key)
        return True

    async def _worker(self, index: int) -> None:
        while True:
            user_id, domain = await self._queue.get()
            self._pending.discard((user_id, domain))
            try:
                await self.coordinator.refine(user_id, domain)
            except Exception as e:
                logger.exception(f"Refinement worker {index} error: {e}")
            finally:
                self._queue.task_done()

    def start(self) -> None:
        """Launch worker tasks on the running loop."""
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"refinement-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info(f"Refinement queue started with {self.workers} workers")

    async def join(self) -> None:
        """Wait until every queued run has been processed."""
        await self._queue.join()

    async def stop(self) -> None:
        """Cancel workers; queued runs are abandoned."""
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Refinement queue stopped")


_background_tasks: set[asyncio.Task[Any]] = set()


def spawn_background(coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task[Any]:
    """Start a fire-and-forget task whose failures are logged, not raised."""
    task = asyncio.create_task(coro, name=name)
    _background_tasks.add(task)

    def _done(finished: asyncio.Task[Any]) -> None:
        _background_tasks.discard(finished)
        if not finished.cancelled() and finished.exception() is not None:
            logger.error(f"Background task {finished.get_name()} failed: {finished.exception()}")

    task.add_done_callback(_done)
    return task
