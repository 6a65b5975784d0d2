"""Database-backed implementations of the engine's store protocols.

Each call opens its own short session from the factory, so one adapter
instance is safe to share between request handlers and background workers.
"""

from datetime import datetime
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tasteloop.core.contracts import (
    Domain,
    FeedbackEvent,
    HistoryEntry,
    Polarity,
    StoredPreferences,
    as_utc,
    parse_domain,
)
from tasteloop.logging import get_logger
from tasteloop.storage.json_utils import loads_dict
from tasteloop.storage.models import HistoryRecord, ItemFeedback, StoredPreference
from tasteloop.storage.repo_events import (
    FEEDBACK_RECORDED,
    HISTORY_CLEARED,
    PREFERENCES_REFINED,
    EventsRepo,
)
from tasteloop.storage.repo_feedback import FeedbackRepo
from tasteloop.storage.repo_history import HistoryRepo
from tasteloop.storage.repo_preferences import PreferencesRepo

logger = get_logger(__name__)


def feedback_to_event(row: ItemFeedback) -> FeedbackEvent:
    """Convert an ItemFeedback row to a FeedbackEvent."""
    return FeedbackEvent(
        item_id=row.item_id,
        user_id=row.user_id,
        polarity=Polarity(row.polarity),
        timestamp=as_utc(row.updated_at),
        raw_signals=loads_dict(row.signals_json),
        domain=Domain(row.domain) if row.domain else None,
    )


def record_to_entry(row: HistoryRecord) -> HistoryEntry:
    return HistoryEntry(
        item_id=row.item_id,
        timestamp=as_utc(row.seen_at),
        polarity=Polarity(row.polarity) if row.polarity else None,
    )


def preference_to_stored(row: StoredPreference) -> StoredPreferences:
    return StoredPreferences(
        user_id=row.user_id,
        domain=Domain(row.domain),
        fields=loads_dict(row.fields_json),
        updated_at=as_utc(row.updated_at),
    )


class SqlFeedbackStore:
    """FeedbackStore over the item_feedback table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record_feedback(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity,
        raw_signals: dict[str, Any],
        domain: Domain | None = None,
    ) -> FeedbackEvent:
        async with self.session_factory() as session:
            await EventsRepo(session).log_event(
                FEEDBACK_RECORDED,
                user_id=user_id,
                item_id=item_id,
                payload={"polarity": polarity.value, "domain": domain.value if domain else None},
                commit=False,
            )
            row = await FeedbackRepo(session).upsert_feedback(
                user_id,
                item_id,
                polarity.value,
                raw_signals,
                domain=domain.value if domain else None,
            )
            return feedback_to_event(row)

    async def list_feedback(
        self,
        user_id: str,
        domain: Domain | None = None,
        polarity: Polarity | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[FeedbackEvent]:
        async with self.session_factory() as session:
            rows = await FeedbackRepo(session).list_feedback(
                user_id,
                domain=domain.value if domain else None,
                polarity=polarity.value if polarity else None,
                limit=limit,
                offset=offset,
            )
            return [feedback_to_event(row) for row in rows]

    async def list_recent_user_ids(self, since_dt: datetime) -> list[str]:
        async with self.session_factory() as session:
            return await FeedbackRepo(session).list_recent_user_ids(since_dt)


class SqlPreferencesStore:
    """PreferencesStore over the stored_preferences table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def get(self, user_id: str, domain: Domain | str) -> StoredPreferences | None:
        domain = parse_domain(domain)
        async with self.session_factory() as session:
            row = await PreferencesRepo(session).get(user_id, domain.value)
            return preference_to_stored(row) if row else None

    async def upsert(
        self, user_id: str, domain: Domain | str, fields: dict[str, Any]
    ) -> StoredPreferences:
        domain = parse_domain(domain)
        async with self.session_factory() as session:
            await EventsRepo(session).log_event(
                PREFERENCES_REFINED,
                user_id=user_id,
                payload={"domain": domain.value, "fields": sorted(fields)},
                commit=False,
            )
            row = await PreferencesRepo(session).upsert(user_id, domain.value, fields)
            return preference_to_stored(row)


class SqlRemoteHistory:
    """RemoteHistorySource over the history_entries table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def record(
        self,
        user_id: str,
        item_id: str,
        polarity: Polarity | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        async with self.session_factory() as session:
            await HistoryRepo(session).upsert_entry(
                user_id,
                item_id,
                polarity.value if polarity else None,
                seen_at=timestamp,
            )

    async def list_history(self, user_id: str) -> list[HistoryEntry]:
        async with self.session_factory() as session:
            rows = await HistoryRepo(session).list_entries(user_id)
            return [record_to_entry(row) for row in rows]

    async def clear_history(self, user_id: str) -> None:
        async with self.session_factory() as session:
            await EventsRepo(session).log_event(HISTORY_CLEARED, user_id=user_id, commit=False)
            deleted = await HistoryRepo(session).clear(user_id)
        logger.info(f"Deleted {deleted} history entries for user {user_id}")
