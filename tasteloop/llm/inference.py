"""LLM-backed preference inference capability."""

import asyncio
from typing import Any

from tasteloop.core.contracts import Domain, FeedbackEvent, InferenceProposal
from tasteloop.llm.llm_adapter import LLMDisabledError, LLMError, generate_text
from tasteloop.logging import get_logger
from tasteloop.storage.json_utils import safe_json_dumps, safe_json_loads

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are a taste analysis algorithm that identifies patterns in user "
    "preferences. Reply with a single JSON object only."
)


def _feedback_rows(events: list[FeedbackEvent]) -> list[dict[str, Any]]:
    return [
        {
            "item_id": e.item_id,
            "feedback": e.polarity.value,
            "at": e.timestamp.isoformat(),
            "signals": e.raw_signals,
        }
        for e in events
    ]


def build_prompt(
    current_preferences: dict[str, Any],
    recent_feedback: list[FeedbackEvent],
    domain: Domain,
) -> str:
    """Assemble the user prompt for a preference delta request."""
    return (
        f"Domain: {domain.value}\n"
        f"Current preferences: {safe_json_dumps(current_preferences)}\n"
        f"Recent feedback (newest first): {safe_json_dumps(_feedback_rows(recent_feedback), default='[]')}\n"
        "Identify genres and attributes the user consistently likes or dislikes. "
        'Return {"updatedPreferences": {...}, "analysisNotes": "..."} where '
        "updatedPreferences holds only the fields that should change."
    )


def parse_proposal(text: str | None) -> InferenceProposal | None:
    """Extract a proposal from a model reply.

    Accepts a bare JSON object or one wrapped in prose or code fences.

    Args:
        text: Raw model reply

    Returns:
        InferenceProposal, or None if no usable object is found
    """
    if not text:
        return None

    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None

    data = safe_json_loads(text[start:end + 1], default={})
    if not isinstance(data, dict):
        return None

    updated = data.get("updatedPreferences")
    if not isinstance(updated, dict):
        return None

    notes = data.get("analysisNotes") or data.get("notes")
    return InferenceProposal(
        updated_preferences=updated,
        notes=notes if isinstance(notes, str) else None,
    )


class LLMPreferenceInference:
    """Proposes preference deltas by asking the configured LLM provider."""

    def __init__(self, timeout: float = 20.0, temperature: float = 0.2) -> None:
        self.timeout = timeout
        self.temperature = temperature

    async def propose(
        self,
        current_preferences: dict[str, Any],
        recent_feedback: list[FeedbackEvent],
        domain: Domain,
    ) -> InferenceProposal | None:
        """Ask for a delta; None when unavailable or the reply is unusable."""
        prompt = build_prompt(current_preferences, recent_feedback, domain)

        try:
            reply = await asyncio.wait_for(
                generate_text(
                    SYSTEM_PROMPT,
                    prompt,
                    max_tokens=600,
                    temperature=self.temperature,
                    timeout=self.timeout,
                    max_retries=1,
                ),
                timeout=self.timeout,
            )
        except LLMDisabledError as e:
            logger.info(f"Preference inference skipped: {e}")
            return None
        except asyncio.TimeoutError:
            logger.warning(f"Preference inference timed out after {self.timeout}s")
            return None
        except LLMError as e:
            logger.warning(f"Preference inference failed: {e}")
            return None

        proposal = parse_proposal(reply)
        if proposal is None:
            logger.warning("Preference inference returned no usable updatedPreferences")
        return proposal
