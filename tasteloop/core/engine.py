"""Engine facade: uniqueness filtering, taste profiles and feedback intake."""

from collections.abc import Iterable, Mapping, Sequence
from datetime import timedelta
from typing import Any, TypeVar

from tasteloop.core.aggregation import aggregate_domain
from tasteloop.core.contracts import (
    Domain,
    FeedbackEvent,
    FeedbackStore,
    InvalidInputError,
    LocalHistoryStore,
    Polarity,
    RemoteHistorySource,
    TasteSummary,
    parse_domain,
    parse_polarity,
    require_user_id,
)
from tasteloop.core.history import DEFAULT_REMOTE_TIMEOUT, load_merged_history
from tasteloop.core.refinement import PreferenceUpdateCoordinator, RefinementQueue, spawn_background
from tasteloop.core.taste import build_taste_summary
from tasteloop.core.uniqueness import (
    DEFAULT_DISLIKE_COOLDOWN,
    DEFAULT_MIN_THRESHOLD,
    filter_eligible,
    needs_more,
)
from tasteloop.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_PROFILE_WINDOW = 100


class TasteEngine:
    """Wires the engine components to their collaborators.

    Args:
        feedback_store: Persistent feedback store
        local_history: Local history provenance
        remote_history: Authoritative history provenance (writes and reads)
        coordinator: Preference refinement coordinator, optional
        refinement_queue: Bounded queue for refinement runs, optional; without
            one, runs are spawned as background tasks
        cooldown: Default dislike cooldown
        min_threshold: Default minimum batch size for ``needs_more``
        remote_timeout: Remote history fetch timeout in seconds
        profile_window: Liked events per domain considered for the profile
    """

    def __init__(
        self,
        feedback_store: FeedbackStore,
        local_history: LocalHistoryStore | None = None,
        remote_history: RemoteHistorySource | None = None,
        coordinator: PreferenceUpdateCoordinator | None = None,
        refinement_queue: RefinementQueue | None = None,
        cooldown: timedelta = DEFAULT_DISLIKE_COOLDOWN,
        min_threshold: int = DEFAULT_MIN_THRESHOLD,
        remote_timeout: float = DEFAULT_REMOTE_TIMEOUT,
        profile_window: int = DEFAULT_PROFILE_WINDOW,
    ) -> None:
        self.feedback_store = feedback_store
        self.local_history = local_history
        self.remote_history = remote_history
        self.coordinator = coordinator
        self.refinement_queue = refinement_queue
        self.cooldown = cooldown
        self.min_threshold = min_threshold
        self.remote_timeout = remote_timeout
        self.profile_window = profile_window

    async def filter_eligible(
        self,
        user_id: str,
        candidates: Sequence[T],
        cooldown: timedelta | None = None,
    ) -> list[T]:
        """Drop candidates the user liked, or disliked within the cooldown."""
        user_id = require_user_id(user_id)
        history = await load_merged_history(
            user_id, self.local_history, self.remote_history, self.remote_timeout
        )
        eligible = filter_eligible(
            history, candidates, self.cooldown if cooldown is None else cooldown
        )
        logger.debug(
            f"Uniqueness filter: {len(eligible)}/{len(candidates)} eligible",
            extra={"user_id": user_id},
        )
        return eligible

    def needs_more(self, filtered: Sequence[Any], min_threshold: int | None = None) -> bool:
        return needs_more(filtered, self.min_threshold if min_threshold is None else min_threshold)

    async def get_taste_profile(self, user_id: str) -> TasteSummary:
        """Build the taste summary from recent liked feedback in both domains."""
        user_id = require_user_id(user_id)

        signals = {}
        for domain in Domain:
            liked = await self.feedback_store.list_feedback(
                user_id, domain=domain, polarity=Polarity.LIKE, limit=self.profile_window
            )
            signals[domain] = aggregate_domain(liked, domain)

        return build_taste_summary(signals[Domain.MUSIC], signals[Domain.FILM])

    async def on_feedback(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity | str,
        raw_signals: Mapping[str, Any] | None = None,
        domain: Domain | str | None = None,
    ) -> FeedbackEvent:
        """Record a like/dislike, then hand refinement off without awaiting it.

        Raises:
            InvalidInputError: On missing user/item ID or unknown polarity/domain
        """
        user_id = require_user_id(user_id)
        if item_id is None or not str(item_id).strip():
            raise InvalidInputError("item_id is required")
        item_id = str(item_id).strip()
        polarity = parse_polarity(polarity)
        parsed_domain = parse_domain(domain) if domain is not None else None
        signals = dict(raw_signals) if isinstance(raw_signals, Mapping) else {}

        event = await self.feedback_store.record_feedback(
            user_id, item_id, polarity, signals, domain=parsed_domain
        )
        await self._record_history(user_id, item_id, polarity, event)

        if parsed_domain is not None:
            self._schedule_refinement(user_id, parsed_domain)

        return event

    async def _record_history(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity,
        event: FeedbackEvent,
    ) -> None:
        record_remote = getattr(self.remote_history, "record", None)
        if record_remote is not None:
            try:
                await record_remote(user_id, item_id, polarity, event.timestamp)
            except Exception as e:
                logger.warning(f"Remote history write failed for user {user_id}: {e}")

        if self.local_history is not None:
            try:
                await self.local_history.record(user_id, item_id, polarity, event.timestamp)
            except Exception as e:
                logger.warning(f"Local history write failed for user {user_id}: {e}")

    def _schedule_refinement(self, user_id: str, domain: Domain) -> None:
        if self.coordinator is None:
            return
        if self.refinement_queue is not None and self.refinement_queue.running:
            self.refinement_queue.submit(user_id, domain)
            return
        spawn_background(
            self.coordinator.refine(user_id, domain),
            name=f"refine-{user_id}-{domain.value}",
        )

    async def track_shown(self, user_id: str, item_ids: Iterable[str]) -> int:
        """Note items as shown (no verdict) in the local provenance."""
        user_id = require_user_id(user_id)
        if self.local_history is None:
            return 0

        history = await load_merged_history(
            user_id, self.local_history, self.remote_history, self.remote_timeout
        )
        count = 0
        for item_id in item_ids:
            if not item_id:
                continue
            # A verdict from either provenance is never downgraded to "shown"
            current = history.get(str(item_id))
            if current is not None and current.polarity is not None:
                continue
            await self.local_history.record(user_id, str(item_id))
            count += 1
        return count

    async def clear_history(self, user_id: str) -> bool:
        """Empty both history provenances for this user only.

        The local provenance is cleared even when the remote one fails.

        Returns:
            True if the remote provenance was cleared (or there is none),
            False if it could not be reached
        """
        user_id = require_user_id(user_id)
        remote_cleared = True
        if self.remote_history is not None:
            try:
                await self.remote_history.clear_history(user_id)
            except Exception as e:
                logger.warning(f"Remote history clear failed for user {user_id}: {e}")
                remote_cleared = False
        if self.local_history is not None:
            await self.local_history.clear(user_id)
        logger.info(
            f"Cleared recommendation history for user {user_id} (remote_cleared={remote_cleared})"
        )
        return remote_cleared
