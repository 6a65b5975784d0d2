"""Chat-completion calls to OpenAI or Anthropic over plain httpx.

Each provider is described by a small ``Provider`` record (endpoint, how to
build the request, how to read the reply) so retry and error handling live
in one place.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

import httpx

from tasteloop.config import Config, config
from tasteloop.logging import get_logger

logger = get_logger(__name__)

OPENAI_API_URL = "https://api.openai.com/v1/chat/completions"
ANTHROPIC_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
DEFAULT_TIMEOUT = 30.0
MAX_RETRIES = 3
BASE_BACKOFF = 1.0


class LLMDisabledError(Exception):
    """Raised when LLM is disabled but generation is attempted."""


class LLMError(Exception):
    """LLM API error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.status_code is not None and self.status_code >= 500


class LLMRateLimitError(LLMError):
    def __init__(self, retry_after: int | None = None):
        super().__init__("Rate limit exceeded", status_code=429)
        self.retry_after = retry_after

    @property
    def retryable(self) -> bool:
        return True


@dataclass(frozen=True)
class Provider:
    label: str
    url: str
    headers: dict[str, str]
    build_payload: Callable[[str, str, int, float], dict[str, Any]]
    read_reply: Callable[[dict[str, Any]], str]


def _read_openai(data: dict[str, Any]) -> str:
    choices = data.get("choices") or []
    if not choices:
        raise LLMError("Empty response from OpenAI")
    logger.debug(f"OpenAI tokens: {data.get('usage', {}).get('total_tokens', 'N/A')}")
    return (choices[0].get("message", {}).get("content") or "").strip()


def _read_anthropic(data: dict[str, Any]) -> str:
    usage = data.get("usage", {})
    logger.debug(
        f"Anthropic tokens: in={usage.get('input_tokens', '?')}, "
        f"out={usage.get('output_tokens', '?')}"
    )
    texts = [b.get("text", "") for b in data.get("content", []) if b.get("type") == "text"]
    return "\n".join(texts).strip()


def resolve_provider(cfg: Config) -> Provider:
    """Pick the configured provider.

    Raises:
        LLMDisabledError: If LLM is disabled or the provider has no API key
    """
    if not cfg.llm_enabled:
        raise LLMDisabledError("LLM is disabled in configuration")

    if cfg.llm_provider == "anthropic":
        if not cfg.anthropic_api_key:
            raise LLMDisabledError("ANTHROPIC_API_KEY is not configured")
        return Provider(
            label=f"Anthropic/{cfg.anthropic_model}",
            url=ANTHROPIC_API_URL,
            headers={"x-api-key": cfg.anthropic_api_key, "anthropic-version": ANTHROPIC_VERSION},
            build_payload=lambda system, user, max_tokens, temperature: {
                "model": cfg.anthropic_model,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "system": system,
                "messages": [{"role": "user", "content": user}],
            },
            read_reply=_read_anthropic,
        )

    if not cfg.openai_api_key:
        raise LLMDisabledError("OPENAI_API_KEY is not configured")
    return Provider(
        label=f"OpenAI/{cfg.openai_model}",
        url=OPENAI_API_URL,
        headers={"Authorization": f"Bearer {cfg.openai_api_key}"},
        build_payload=lambda system, user, max_tokens, temperature: {
            "model": cfg.openai_model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        },
        read_reply=_read_openai,
    )


def _error_for(response: httpx.Response, provider: Provider) -> LLMError:
    status = response.status_code
    if status == 429:
        retry_after = response.headers.get("retry-after", "")
        return LLMRateLimitError(int(retry_after) if retry_after.isdigit() else None)
    if status >= 500:
        return LLMError(f"{provider.label} server error: {status}", status_code=status)

    try:
        message = response.json().get("error", {}).get("message")
    except ValueError:
        message = None
    return LLMError(message or f"HTTP {status}", status_code=status)


async def _complete_once(
    client: httpx.AsyncClient, provider: Provider, payload: dict[str, Any]
) -> str:
    response = await client.post(provider.url, headers=provider.headers, json=payload)
    if response.status_code != 200:
        raise _error_for(response, provider)
    return provider.read_reply(response.json())


async def generate_text(
    system_prompt: str,
    user_prompt: str,
    max_tokens: int = 500,
    temperature: float = 0.2,
    timeout: float = DEFAULT_TIMEOUT,
    max_retries: int = MAX_RETRIES,
    transport: httpx.AsyncBaseTransport | None = None,
) -> str:
    """Generate text using the configured LLM provider.

    Rate limits, 5xx replies and transport errors are retried with
    exponential backoff; other 4xx replies fail at once.

    Args:
        system_prompt: System instructions for the model
        user_prompt: User message/request
        max_tokens: Maximum tokens in response
        temperature: Sampling temperature
        timeout: Per-request timeout in seconds
        max_retries: Attempts before giving up (1 = no retry)
        transport: Optional httpx transport (tests)

    Returns:
        Generated text

    Raises:
        LLMDisabledError: If LLM is disabled or has no credentials
        LLMError: On a non-retryable reply, or once retries are exhausted
    """
    provider = resolve_provider(config)
    payload = provider.build_payload(system_prompt, user_prompt, max_tokens, temperature)
    attempts = max(1, max_retries)
    last_error: Exception | None = None

    async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
        for attempt in range(1, attempts + 1):
            backoff = BASE_BACKOFF * (2 ** (attempt - 1))
            try:
                return await _complete_once(client, provider, payload)
            except LLMError as e:
                if not e.retryable:
                    raise
                if isinstance(e, LLMRateLimitError) and e.retry_after:
                    backoff = e.retry_after
                last_error = e
            except httpx.RequestError as e:
                last_error = e

            logger.warning(
                f"{provider.label} attempt {attempt}/{attempts} failed: {last_error!r}"
            )
            if attempt < attempts:
                await asyncio.sleep(backoff)

    raise LLMError(f"Max retries exceeded ({provider.label}): {last_error}")
