"""Tests for LLM preference inference."""

import asyncio
import dataclasses
import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from tasteloop.config import config
from tasteloop.core.contracts import Domain, FeedbackEvent, Polarity
from tasteloop.llm import (
    LLMDisabledError,
    LLMError,
    LLMPreferenceInference,
    build_prompt,
    generate_text,
    parse_proposal,
)

NOW = datetime(2026, 4, 1, tzinfo=timezone.utc)


@pytest.fixture
def openai_enabled(monkeypatch):
    enabled = dataclasses.replace(
        config, llm_enabled=True, llm_provider="openai", openai_api_key="sk-test"
    )
    monkeypatch.setattr("tasteloop.llm.llm_adapter.config", enabled)
    return enabled


@pytest.fixture
def anthropic_enabled(monkeypatch):
    enabled = dataclasses.replace(
        config, llm_enabled=True, llm_provider="anthropic", anthropic_api_key="ak-test"
    )
    monkeypatch.setattr("tasteloop.llm.llm_adapter.config", enabled)
    return enabled


class TestParseProposal:
    """Tests for reply parsing."""

    def test_bare_object(self):
        proposal = parse_proposal(
            '{"updatedPreferences": {"genres": ["Jazz"]}, "analysisNotes": "jazz fan"}'
        )
        assert proposal.updated_preferences == {"genres": ["Jazz"]}
        assert proposal.notes == "jazz fan"

    def test_wrapped_in_prose_and_fences(self):
        text = 'Sure!\n```json\n{"updatedPreferences": {"artists": ["Muse"]}}\n```\nDone.'
        proposal = parse_proposal(text)
        assert proposal.updated_preferences == {"artists": ["Muse"]}
        assert proposal.notes is None

    @pytest.mark.parametrize(
        "text",
        [None, "", "no json here", "{broken", '{"analysisNotes": "x"}', '{"updatedPreferences": []}'],
    )
    def test_unusable_replies(self, text):
        assert parse_proposal(text) is None


def test_build_prompt_includes_feedback():
    event = FeedbackEvent("t1", "u1", Polarity.DISLIKE, NOW, {"genre": "Polka"}, Domain.MUSIC)

    prompt = build_prompt({"genres": ["Rock"]}, [event], Domain.MUSIC)

    assert "Domain: music" in prompt
    assert '"genres":["Rock"]' in prompt
    assert '"feedback":"dislike"' in prompt
    assert "updatedPreferences" in prompt


@pytest.mark.anyio
async def test_generate_text_disabled():
    with pytest.raises(LLMDisabledError):
        await generate_text("system", "user")


@pytest.mark.anyio
async def test_generate_text_openai(openai_enabled):
    captured = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["auth"] = request.headers["Authorization"]
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            200, json={"choices": [{"message": {"content": "  hello  "}}], "usage": {}}
        )

    text = await generate_text("sys", "hi", transport=httpx.MockTransport(handler))

    assert text == "hello"
    assert captured["auth"] == "Bearer sk-test"
    assert captured["body"]["messages"][0] == {"role": "system", "content": "sys"}


@pytest.mark.anyio
async def test_generate_text_anthropic(anthropic_enabled):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["x-api-key"] == "ak-test"
        return httpx.Response(
            200,
            json={"content": [{"type": "text", "text": "part one"}, {"type": "text", "text": "two"}]},
        )

    text = await generate_text("sys", "hi", transport=httpx.MockTransport(handler))

    assert text == "part one\ntwo"


@pytest.mark.anyio
async def test_generate_text_client_error_not_retried(openai_enabled):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(400, json={"error": {"message": "bad request"}})

    with pytest.raises(LLMError) as exc_info:
        await generate_text("sys", "hi", transport=httpx.MockTransport(handler))

    assert exc_info.value.status_code == 400
    assert len(calls) == 1


@pytest.mark.anyio
async def test_generate_text_server_error_exhausts_retries(openai_enabled):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503)

    with pytest.raises(LLMError, match="Max retries exceeded"):
        await generate_text("sys", "hi", max_retries=1, transport=httpx.MockTransport(handler))


class TestLLMPreferenceInference:
    """Tests for the inference capability."""

    @pytest.mark.anyio
    async def test_returns_proposal(self):
        reply = '{"updatedPreferences": {"genres": ["Jazz"]}, "analysisNotes": "ok"}'
        with patch(
            "tasteloop.llm.inference.generate_text", new=AsyncMock(return_value=reply)
        ) as mock_generate:
            proposal = await LLMPreferenceInference().propose({}, [], Domain.MUSIC)

        assert proposal.updated_preferences == {"genres": ["Jazz"]}
        assert mock_generate.await_args.kwargs["max_retries"] == 1

    @pytest.mark.anyio
    async def test_disabled_returns_none(self):
        assert await LLMPreferenceInference().propose({}, [], Domain.FILM) is None

    @pytest.mark.anyio
    async def test_api_error_returns_none(self):
        with patch(
            "tasteloop.llm.inference.generate_text",
            new=AsyncMock(side_effect=LLMError("server error", status_code=500)),
        ):
            assert await LLMPreferenceInference().propose({}, [], Domain.FILM) is None

    @pytest.mark.anyio
    async def test_timeout_returns_none(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(5)
            return "{}"

        with patch("tasteloop.llm.inference.generate_text", new=slow):
            result = await LLMPreferenceInference(timeout=0.05).propose({}, [], Domain.FILM)

        assert result is None

    @pytest.mark.anyio
    async def test_unusable_reply_returns_none(self):
        with patch(
            "tasteloop.llm.inference.generate_text", new=AsyncMock(return_value="I cannot help")
        ):
            assert await LLMPreferenceInference().propose({}, [], Domain.MUSIC) is None
