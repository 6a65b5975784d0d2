"""Repository for recommendation history entries."""

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from tasteloop.storage.models import HistoryRecord


class HistoryRepo:
    """Repository for the authoritative history provenance."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_entry(
        self,
        user_id: str,
        item_id: str,
        polarity: str | None = None,
        seen_at: datetime | None = None,
    ) -> bool:
        """Insert or replace the entry for (user, item).

        Args:
            user_id: User ID
            item_id: Item ID
            polarity: "like", "dislike" or None for shown-only
            seen_at: Entry timestamp (defaults to now)

        Returns:
            True if a row was written
        """
        if seen_at is None:
            seen_at = datetime.now(timezone.utc)

        insert_stmt = sqlite_insert(HistoryRecord).values(
            user_id=user_id,
            item_id=item_id,
            polarity=polarity,
            seen_at=seen_at,
        )
        upsert_stmt = insert_stmt.on_conflict_do_update(
            index_elements=["user_id", "item_id"],
            set_={"polarity": polarity, "seen_at": seen_at},
        )
        result = await self.session.execute(upsert_stmt)
        await self.session.commit()
        return result.rowcount > 0

    async def list_entries(self, user_id: str) -> list[HistoryRecord]:
        """Get a user's history entries, newest first."""
        stmt = (
            select(HistoryRecord)
            .where(HistoryRecord.user_id == user_id)
            .order_by(HistoryRecord.seen_at.desc())
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def clear(self, user_id: str) -> int:
        """Delete every entry for one user.

        Returns:
            Number of rows deleted
        """
        stmt = delete(HistoryRecord).where(HistoryRecord.user_id == user_id)
        result = await self.session.execute(stmt)
        await self.session.commit()
        return result.rowcount or 0
