"""JSON codec for signal, preference and history blobs.

Reads and writes never raise: a blob that cannot be encoded or decoded is
logged and replaced by a caller-chosen fallback, so one bad row cannot break
a profile or a history merge.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any

from tasteloop.logging import get_logger

logger = get_logger(__name__)


def _encode_extra(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (set, frozenset, tuple)):
        return list(value)
    return str(value)


def safe_json_dumps(data: Any, default: str = "{}") -> str:
    """Encode ``data`` compactly; ``default`` for None or unencodable input."""
    if data is None:
        return default

    try:
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"), default=_encode_extra)
    except (TypeError, ValueError, OverflowError) as e:
        logger.warning(f"Could not encode blob: {e}")
        return default


def safe_json_loads(text: str | None, default: dict | list | None = None) -> Any:
    """Decode ``text``; ``default`` (an empty dict unless given) on failure."""
    fallback = {} if default is None else default
    if not text:
        return fallback

    try:
        return json.loads(text)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not decode blob: {e}")
        return fallback


def loads_dict(text: str | None) -> dict[str, Any]:
    """Decode a JSON object column; anything but an object reads as {}."""
    data = safe_json_loads(text)
    return data if isinstance(data, dict) else {}
