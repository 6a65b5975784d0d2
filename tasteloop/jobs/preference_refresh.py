"""Rebuild stored preferences from liked feedback.

Runs every ``PREF_REFRESH_INTERVAL_HOURS``. For each user with feedback in
the last ``PREF_REFRESH_LOOKBACK_HOURS``, genres and liked-item IDs are
recomputed per domain from all of the user's likes.
"""

from datetime import datetime, timedelta, timezone

from tasteloop.config import config
from tasteloop.core.contracts import Domain
from tasteloop.core.refinement import PreferenceUpdateCoordinator
from tasteloop.logging import get_logger

logger = get_logger(__name__)


def _default_coordinator() -> PreferenceUpdateCoordinator:
    from tasteloop.storage import SqlFeedbackStore, SqlPreferencesStore, get_session_factory

    session_factory = get_session_factory()
    return PreferenceUpdateCoordinator(
        SqlFeedbackStore(session_factory),
        SqlPreferencesStore(session_factory),
        step_timeout=config.inference_timeout_seconds,
    )


async def run_preference_refresh(
    coordinator: PreferenceUpdateCoordinator | None = None,
    lookback_hours: int | None = None,
    now_dt: datetime | None = None,
) -> dict:
    """Refresh preferences for recently active users.

    Args:
        coordinator: Coordinator to use; built from the database when omitted.
            Its feedback store must offer ``list_recent_user_ids``.
        lookback_hours: Activity window (defaults to config)
        now_dt: Current time (defaults to now)

    Returns:
        Summary dict with user and refresh counts
    """
    if coordinator is None:
        coordinator = _default_coordinator()
    if lookback_hours is None:
        lookback_hours = config.pref_refresh_lookback_hours
    if now_dt is None:
        now_dt = datetime.now(timezone.utc)

    since = now_dt - timedelta(hours=lookback_hours)
    user_ids = await coordinator.feedback_store.list_recent_user_ids(since)

    refreshed = 0
    for user_id in user_ids:
        for domain in Domain:
            if await coordinator.refresh_from_likes(user_id, domain):
                refreshed += 1

    summary = {"users": len(user_ids), "refreshed": refreshed}
    logger.info(
        f"Preference refresh done: users={summary['users']}, "
        f"refreshed={summary['refreshed']}"
    )
    return summary
