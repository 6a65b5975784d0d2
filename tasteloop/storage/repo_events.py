"""Audit trail of feedback, refinement and history-clearing events."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from tasteloop.storage.json_utils import loads_dict, safe_json_dumps
from tasteloop.storage.models import Event

FEEDBACK_RECORDED = "feedback_recorded"
PREFERENCES_REFINED = "preferences_refined"
HISTORY_CLEARED = "history_cleared"

AUDIT_EVENTS = frozenset({FEEDBACK_RECORDED, PREFERENCES_REFINED, HISTORY_CLEARED})


def event_payload(event: Event) -> dict[str, Any]:
    return loads_dict(event.payload_json)


def event_to_dict(event: Event) -> dict[str, Any]:
    """Plain-dict view of an audit row for API responses."""
    created_at = event.created_at
    if created_at is not None and created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    return {
        "event_name": event.event_name,
        "user_id": event.user_id,
        "item_id": event.item_id,
        "payload": event_payload(event),
        "created_at": created_at.isoformat() if created_at else None,
    }


def _filtered(stmt: Select, event_name: str | None, user_id: str | None) -> Select:
    if event_name:
        stmt = stmt.where(Event.event_name == event_name)
    if user_id:
        stmt = stmt.where(Event.user_id == user_id)
    return stmt


class EventsRepo:
    """Append-only access to the ``events`` table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def log_event(
        self,
        event_name: str,
        user_id: str | None = None,
        item_id: str | None = None,
        payload: dict[str, Any] | None = None,
        commit: bool = True,
    ) -> Event:
        """Append an audit event.

        Args:
            event_name: One of ``AUDIT_EVENTS``
            user_id: User the event concerns
            item_id: Item the event concerns, if any
            payload: Extra details, stored as JSON
            commit: Commit immediately; pass False so the row is written by
                the caller's own commit together with the change it audits

        Returns:
            The pending or committed Event row

        Raises:
            ValueError: For an event name outside the audit vocabulary
        """
        if event_name not in AUDIT_EVENTS:
            raise ValueError(f"Unknown audit event: {event_name}")

        event = Event(
            event_name=event_name,
            user_id=user_id,
            item_id=item_id,
            payload_json=safe_json_dumps(payload or {}),
            created_at=datetime.now(timezone.utc),
        )
        self.session.add(event)
        if commit:
            await self.session.commit()
            await self.session.refresh(event)
        return event

    async def list_events(
        self,
        event_name: str | None = None,
        user_id: str | None = None,
        since_dt: datetime | None = None,
        limit: int = 200,
    ) -> list[Event]:
        """Newest first; ties on ``created_at`` fall back to insertion order."""
        stmt = _filtered(select(Event), event_name, user_id)
        if since_dt:
            stmt = stmt.where(Event.created_at >= since_dt)

        stmt = stmt.order_by(Event.created_at.desc(), Event.id.desc()).limit(limit)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def count_events(
        self,
        event_name: str | None = None,
        user_id: str | None = None,
    ) -> int:
        stmt = _filtered(select(func.count()).select_from(Event), event_name, user_id)
        result = await self.session.execute(stmt)
        return result.scalar() or 0
