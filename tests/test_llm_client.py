"""
Tests for LLMClient: rate-limit backoff and error wrapping, with the OpenAI client stubbed out.
"""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, List

import pytest

import pdfchat.llm.client as client_module
from pdfchat.llm import LLMClient, LLMError


def _completion(content: str) -> Any:
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content), finish_reason="stop")]
    )


def _delta(content: str) -> Any:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class FakeCompletions:
    """Stands in for AsyncOpenAI.chat.completions; each call pops the next outcome."""

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls = 0
        self.last: Any = None

    async def create(self, **kwargs: Any) -> Any:
        self.calls += 1
        outcome = self.outcomes.pop(0) if self.outcomes else self.last
        self.last = outcome
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def _client(completions: FakeCompletions, monkeypatch: pytest.MonkeyPatch, sleeps: List[float]) -> LLMClient:
    async def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    monkeypatch.setattr(client_module, "asyncio", SimpleNamespace(sleep=fake_sleep))
    client = LLMClient(model_name="test-model", api_key="test-key", base_url="http://localhost:1/v1")
    client.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client


@pytest.mark.anyio
async def test_generate_single_backs_off_on_rate_limit(monkeypatch: pytest.MonkeyPatch):
    sleeps: List[float] = []
    completions = FakeCompletions(
        [RuntimeError("Error code: 429"), RuntimeError("Error code: 429"), _completion("  expanded  ")]
    )
    client = _client(completions, monkeypatch, sleeps)

    assert await client.generate_single("prompt") == "expanded"
    assert completions.calls == 3
    assert len(sleeps) == 2
    assert 2.0 <= sleeps[0] <= 3.0
    assert 4.0 <= sleeps[1] <= 5.0


@pytest.mark.anyio
async def test_generate_single_gives_up_after_max_retries(monkeypatch: pytest.MonkeyPatch):
    sleeps: List[float] = []
    completions = FakeCompletions([RuntimeError("Error code: 429")])
    client = _client(completions, monkeypatch, sleeps)

    with pytest.raises(LLMError, match="Rate limit exceeded"):
        await client.generate_single("prompt")
    assert completions.calls == client.max_retries
    assert len(sleeps) == client.max_retries - 1


@pytest.mark.anyio
async def test_generate_single_wraps_other_errors_without_retry(monkeypatch: pytest.MonkeyPatch):
    sleeps: List[float] = []
    completions = FakeCompletions([RuntimeError("invalid model")])
    client = _client(completions, monkeypatch, sleeps)

    with pytest.raises(LLMError, match="invalid model"):
        await client.generate_single("prompt")
    assert completions.calls == 1
    assert sleeps == []


@pytest.mark.anyio
async def test_stream_chat_wraps_mid_stream_failure(monkeypatch: pytest.MonkeyPatch):
    async def broken_stream():
        yield _delta("Revenue ")
        yield _delta("")
        raise RuntimeError("connection reset by peer")

    completions = FakeCompletions([broken_stream()])
    client = _client(completions, monkeypatch, [])

    received: List[str] = []
    with pytest.raises(LLMError, match="Streaming failed"):
        async for fragment in client.stream_chat([{"role": "user", "content": "hi"}]):
            received.append(fragment)
    assert received == ["Revenue "]


def test_client_requires_api_key(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(client_module, "LLM_API_KEY", "")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(ValueError):
        LLMClient(model_name="test-model", api_key=None)
