"""Repository for item feedback operations."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from tasteloop.storage.json_utils import safe_json_dumps
from tasteloop.storage.models import ItemFeedback


class FeedbackRepo:
    """Repository for user like/dislike feedback."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def upsert_feedback(
        self,
        user_id: str,
        item_id: str,
        polarity: str,
        signals: dict[str, Any] | None = None,
        domain: str | None = None,
        now_dt: datetime | None = None,
    ) -> ItemFeedback:
        """Record feedback, superseding any earlier verdict on the same item.

        Args:
            user_id: User ID
            item_id: Item ID
            polarity: "like" or "dislike"
            signals: Raw item metadata captured with the feedback
            domain: "music", "film" or None
            now_dt: Timestamp of the feedback (defaults to now)

        Returns:
            The stored ItemFeedback row
        """
        if now_dt is None:
            now_dt = datetime.now(timezone.utc)

        signals_json = safe_json_dumps(signals or {})
        insert_stmt = sqlite_insert(ItemFeedback).values(
            user_id=user_id,
            item_id=item_id,
            domain=domain,
            polarity=polarity,
            signals_json=signals_json,
            created_at=now_dt,
            updated_at=now_dt,
        )
        # created_at keeps the first verdict's time
        upsert_stmt = insert_stmt.on_conflict_do_update(
            index_elements=["user_id", "item_id"],
            set_={
                "domain": domain,
                "polarity": polarity,
                "signals_json": signals_json,
                "updated_at": now_dt,
            },
        )
        await self.session.execute(upsert_stmt)
        await self.session.commit()

        row = await self.get_feedback(user_id, item_id)
        if row is None:
            raise RuntimeError(f"Feedback row missing after upsert: {user_id}/{item_id}")
        return row

    async def get_feedback(self, user_id: str, item_id: str) -> ItemFeedback | None:
        """Get the stored feedback for one item."""
        stmt = select(ItemFeedback).where(
            ItemFeedback.user_id == user_id,
            ItemFeedback.item_id == item_id,
        ).execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_feedback(
        self,
        user_id: str,
        domain: str | None = None,
        polarity: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ItemFeedback]:
        """List a user's feedback, newest first.

        Args:
            user_id: User ID
            domain: Filter by domain
            polarity: Filter by polarity
            limit: Maximum rows to return
            offset: Rows to skip

        Returns:
            List of ItemFeedback instances
        """
        stmt = select(ItemFeedback).where(ItemFeedback.user_id == user_id)

        if domain:
            stmt = stmt.where(ItemFeedback.domain == domain)

        if polarity:
            stmt = stmt.where(ItemFeedback.polarity == polarity)

        stmt = (
            stmt.order_by(ItemFeedback.updated_at.desc(), ItemFeedback.id.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def list_recent_user_ids(self, since_dt: datetime) -> list[str]:
        """Get users who gave feedback since a point in time.

        Args:
            since_dt: Lower bound on updated_at

        Returns:
            Sorted list of user IDs
        """
        stmt = (
            select(ItemFeedback.user_id)
            .distinct()
            .where(ItemFeedback.updated_at >= since_dt)
            .order_by(ItemFeedback.user_id)
        )
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
