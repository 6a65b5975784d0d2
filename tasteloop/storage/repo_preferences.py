"""Repository for stored user preferences."""

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tasteloop.storage.json_utils import loads_dict, safe_json_dumps
from tasteloop.storage.models import StoredPreference


class PreferencesRepo:
    """Repository for per-user, per-domain preference records."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, user_id: str, domain: str) -> StoredPreference | None:
        stmt = select(StoredPreference).where(
            StoredPreference.user_id == user_id,
            StoredPreference.domain == domain,
        )
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: str,
        domain: str,
        fields: dict[str, Any],
        now_dt: datetime | None = None,
    ) -> StoredPreference:
        """Merge fields into the stored record, creating it if needed.

        Fields not named in ``fields`` keep their stored values.

        Args:
            user_id: User ID
            domain: "music" or "film"
            fields: Fields to set
            now_dt: Update timestamp (defaults to now)

        Returns:
            The updated StoredPreference
        """
        if now_dt is None:
            now_dt = datetime.now(timezone.utc)

        row = await self.get(user_id, domain)
        if row is None:
            row = StoredPreference(
                user_id=user_id,
                domain=domain,
                fields_json=safe_json_dumps(dict(fields)),
                created_at=now_dt,
                updated_at=now_dt,
            )
            self.session.add(row)
        else:
            merged = loads_dict(row.fields_json)
            merged.update(fields)
            row.fields_json = safe_json_dumps(merged)
            row.updated_at = now_dt

        await self.session.commit()
        await self.session.refresh(row)
        return row
