"""
Async LLM client for OpenAI-compatible chat APIs (OpenAI, Z.AI/GLM, DeepSeek, vLLM, etc.).
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
from pathlib import Path
from typing import AsyncIterator, Dict, Optional, Sequence

from dotenv import load_dotenv
from openai import APIStatusError, AsyncOpenAI, RateLimitError

# Load .env file if it exists
project_root = Path(__file__).resolve().parents[2]
env_file = project_root / ".env"
if env_file.exists():
    load_dotenv(env_file)


LLM_BASE_URL = os.getenv("LLM_BASE_URL")
LLM_API_KEY = os.getenv("LLM_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")

logger = logging.getLogger(__name__)


class LLMError(RuntimeError):
    """Raised when a chat completion request fails or returns nothing usable."""


def _resolve_client_params(
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> tuple[str, str, Optional[str]]:
    """Resolve model, api_key, base_url from args or env (LLM_* first, then OPENAI_API_KEY)."""
    key = api_key or LLM_API_KEY or os.getenv("OPENAI_API_KEY") or ""
    base = base_url or LLM_BASE_URL
    model = model_name or LLM_MODEL
    return model, key, base


def _is_rate_limited(exc: Exception) -> bool:
    if isinstance(exc, RateLimitError):
        return True
    if isinstance(exc, APIStatusError) and exc.status_code == 429:
        return True
    error_str = str(exc).lower()
    return "429" in error_str or "concurrency" in error_str


class LLMClient:
    """OpenAI-compatible chat client used for query expansion and answer streaming."""

    def __init__(
        self,
        model_name: Optional[str] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        max_retries: int = 3,
    ):
        self.model_name, key, self.base_url = _resolve_client_params(
            model_name=model_name, api_key=api_key, base_url=base_url
        )
        if not key:
            raise ValueError("API key required. Set LLM_API_KEY (or OPENAI_API_KEY).")
        self.max_retries = max_retries
        self.client = AsyncOpenAI(base_url=self.base_url, api_key=key)

    async def generate_single(
        self,
        prompt: str,
        max_tokens: int = 512,
        temperature: float = 0.7,
    ) -> str:
        """Generate text for a single prompt, retrying with backoff on rate limits."""
        messages = [{"role": "user", "content": prompt}]
        retry_count = 0
        while True:
            try:
                response = await self.client.chat.completions.create(
                    model=self.model_name,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                )
            except Exception as e:
                if not _is_rate_limited(e):
                    raise LLMError(f"Chat completion failed: {e}") from e
                retry_count += 1
                if retry_count >= self.max_retries:
                    raise LLMError(f"Rate limit exceeded after {self.max_retries} retries") from e
                # Exponential backoff with jitter
                backoff = (2 ** retry_count) + random.uniform(0, 1.0)
                logger.warning(
                    "Rate limit hit. Retrying in %s s (attempt %s/%s)",
                    round(backoff, 1),
                    retry_count,
                    self.max_retries,
                )
                await asyncio.sleep(backoff)
                continue

            if not response.choices:
                raise LLMError("Empty response from API")
            content = response.choices[0].message.content or ""
            if not content.strip():
                logger.warning(
                    "Empty content in response (finish_reason=%s)",
                    getattr(response.choices[0], "finish_reason", "?"),
                )
            return content.strip()

    async def stream_chat(
        self,
        messages: Sequence[Dict[str, str]],
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> AsyncIterator[str]:
        """Stream content fragments for a chat conversation. Failures propagate as LLMError."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[dict(m) for m in messages],
                max_tokens=max_tokens,
                temperature=temperature,
                stream=True,
            )
            async for chunk in response:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except Exception as e:
            logger.error("Error streaming from API: %s", e)
            raise LLMError(f"Streaming failed: {e}") from e


def create_client(
    model_name: Optional[str] = None,
    api_key: Optional[str] = None,
    base_url: Optional[str] = None,
) -> LLMClient:
    """Create an OpenAI-compatible client from arguments or LLM_* environment variables."""
    return LLMClient(model_name=model_name, api_key=api_key, base_url=base_url)
