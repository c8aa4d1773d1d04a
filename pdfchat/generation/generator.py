"""
Answer generator: streams the model's reply to an assembled conversation.
"""

from __future__ import annotations

from typing import AsyncIterator, Dict, Optional, Sequence

from pdfchat.rag.retriever import TextGenerator

from .config import GenerationConfig


class AnswerGenerator:
    """Stream answers from the LLM for a conversation that already carries context."""

    def __init__(self, client: TextGenerator, config: Optional[GenerationConfig] = None):
        self.client = client
        self.config = config or GenerationConfig()

    async def stream(self, messages: Sequence[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield non-empty text fragments as the model produces them."""
        async for chunk in self.client.stream_chat(
            messages,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        ):
            if chunk:
                yield chunk
