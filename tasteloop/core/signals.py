"""Signal extraction from loosely-typed feedback fields."""

import json
import re
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Iterable

from tasteloop.logging import get_logger

logger = get_logger(__name__)

DELIMITERS = re.compile(r"[,;|]")

# Keys tried, in order, when a signal value is an object such as {"id": 28, "name": "Action"}
MAPPING_NAME_KEYS = ("name", "value", "title", "label")

# Nested containers deeper than this are treated as garbage
MAX_DEPTH = 4


class SignalShape(str, Enum):
    """Shape of a raw signal value."""

    ABSENT = "absent"
    TEXT = "text"
    SEQUENCE = "sequence"
    MAPPING = "mapping"
    UNPARSABLE = "unparsable"


def classify_signal(value: Any) -> SignalShape:
    """Classify a raw signal value.

    Strings that hold a JSON array or object (as stored by some clients)
    are classified by their decoded shape.

    Args:
        value: Raw signal value

    Returns:
        SignalShape of the value
    """
    if value is None:
        return SignalShape.ABSENT
    if isinstance(value, str):
        return SignalShape.TEXT if value.strip() else SignalShape.ABSENT
    if isinstance(value, Mapping):
        return SignalShape.MAPPING
    if isinstance(value, Sequence) and not isinstance(value, (bytes, bytearray)):
        return SignalShape.SEQUENCE
    return SignalShape.UNPARSABLE


def normalize_token(raw: str) -> str:
    """Trim and capitalize a token: first letter upper, rest lower.

    Args:
        raw: Raw token text

    Returns:
        Normalized token, or empty string for blank input
    """
    token = raw.strip()
    if not token:
        return ""
    return token[0].upper() + token[1:].lower()


def _decode_json_text(text: str) -> Any:
    stripped = text.strip()
    if not stripped or stripped[0] not in "[{":
        return None
    try:
        return json.loads(stripped)
    except (json.JSONDecodeError, ValueError):
        return None


def _raw_parts(value: Any, depth: int) -> list[str]:
    if depth > MAX_DEPTH:
        return []

    shape = classify_signal(value)

    if shape is SignalShape.TEXT:
        decoded = _decode_json_text(value)
        if decoded is not None:
            return _raw_parts(decoded, depth + 1)
        return DELIMITERS.split(value)

    if shape is SignalShape.SEQUENCE:
        parts: list[str] = []
        for element in value:
            if isinstance(element, (int, float)) and not isinstance(element, bool):
                # Bare numeric IDs carry no taste signal
                continue
            parts.extend(_raw_parts(element, depth + 1))
        return parts

    if shape is SignalShape.MAPPING:
        for key in MAPPING_NAME_KEYS:
            named = value.get(key)
            if isinstance(named, str):
                return _raw_parts(named, depth + 1)
        return []

    return []


def extract_tokens(value: Any) -> list[str]:
    """Extract normalized tokens from a raw signal value.

    Accepts absent values, plain or delimiter-joined strings (comma,
    semicolon, pipe), sequences and name-bearing objects. Never raises.

    Args:
        value: Raw signal value

    Returns:
        Tokens in source order, empty tokens dropped
    """
    try:
        parts = _raw_parts(value, 0)
    except Exception as e:
        logger.debug(f"Unparsable signal value {type(value).__name__}: {e}")
        return []

    tokens = []
    for part in parts:
        token = normalize_token(part)
        if token:
            tokens.append(token)
    return tokens


def extract_field_tokens(
    raw_signals: Mapping[str, Any] | None,
    fields: Iterable[str],
) -> list[str]:
    """Extract tokens from the first-to-last of several candidate fields.

    Args:
        raw_signals: Signal mapping from a feedback event
        fields: Field names to read, in order

    Returns:
        Tokens from all listed fields, in field order then source order
    """
    if not isinstance(raw_signals, Mapping):
        return []

    tokens: list[str] = []
    for name in fields:
        tokens.extend(extract_tokens(raw_signals.get(name)))
    return tokens
