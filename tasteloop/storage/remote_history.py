"""HTTP client for a remote item-feedback history service."""

from datetime import datetime
from typing import Any

import httpx

from tasteloop.core.contracts import HistoryEntry, Polarity, as_utc
from tasteloop.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 5.0


class RemoteHistoryError(Exception):
    """Remote history service returned an error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        # fromisoformat on older interpreters rejects the Z suffix
        return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        return None


def parse_history_items(data: Any) -> list[HistoryEntry]:
    """Turn an ``{"items": [...]}`` payload into history entries.

    Rows without an item ID or a readable timestamp are skipped.
    Feedback types other than like/dislike read as shown-only.
    """
    items = data.get("items") if isinstance(data, dict) else None
    if not isinstance(items, list):
        return []

    entries: list[HistoryEntry] = []
    for row in items:
        if not isinstance(row, dict):
            continue
        item_id = row.get("item_id")
        timestamp = _parse_timestamp(row.get("created_at"))
        if item_id is None or str(item_id) == "" or timestamp is None:
            continue
        try:
            polarity: Polarity | None = Polarity(row.get("feedback_type"))
        except ValueError:
            polarity = None
        entries.append(HistoryEntry(str(item_id), timestamp, polarity))
    return entries


class HttpRemoteHistory:
    """Remote history provenance backed by an HTTP service.

    ``GET {base_url}/users/{user_id}/item-feedback`` lists entries,
    ``DELETE`` on the same path clears them.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """Initialize the client.

        Args:
            base_url: Service root URL
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
                transport=self.transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, user_id: str) -> httpx.Response:
        client = await self._get_client()
        path = f"/users/{user_id}/item-feedback"
        try:
            response = await client.request(method, path)
        except httpx.RequestError as e:
            raise RemoteHistoryError(f"Request failed: {e}") from e

        if response.status_code >= 400:
            raise RemoteHistoryError(
                f"{method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    async def list_history(self, user_id: str) -> list[HistoryEntry]:
        """Fetch a user's remote history.

        Raises:
            RemoteHistoryError: On transport errors or non-2xx responses
        """
        response = await self._request("GET", user_id)
        try:
            data = response.json()
        except ValueError as e:
            raise RemoteHistoryError(f"Invalid JSON from history service: {e}") from e

        entries = parse_history_items(data)
        logger.debug(f"Fetched {len(entries)} remote history entries for user {user_id}")
        return entries

    async def clear_history(self, user_id: str) -> None:
        await self._request("DELETE", user_id)
        logger.info(f"Cleared remote history for user {user_id}")
