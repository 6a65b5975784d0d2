"""LLM integration for preference inference."""

from tasteloop.llm.inference import LLMPreferenceInference, build_prompt, parse_proposal
from tasteloop.llm.llm_adapter import LLMDisabledError, LLMError, generate_text

__all__ = [
    "LLMPreferenceInference",
    "build_prompt",
    "parse_proposal",
    "generate_text",
    "LLMDisabledError",
    "LLMError",
]
