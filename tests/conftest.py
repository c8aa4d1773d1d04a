"""
Shared fixtures for pipeline tests.
"""

from __future__ import annotations

from typing import Callable, Optional

import pytest

from fakes import FakeChunkStore, FakeEmbedder, FakeLexicalIndex, FakeLLM, FakeVectorIndex
from pdfchat.generation import AnswerGenerator
from pdfchat.orchestrator import QueryPipeline
from pdfchat.rag import ChunkRecord, QueryExpander, RAGConfig, RankedHit, VectorMatch


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def sample_chunks() -> list[ChunkRecord]:
    return [
        ChunkRecord(id="A", document_id="doc-1", session_id="s1", text="Q2 revenue grew 12% year over year."),
        ChunkRecord(id="B", document_id="doc-1", session_id="s1", text="Second quarter sales reached $4.2M."),
        ChunkRecord(id="C", document_id="doc-2", session_id="s1", text="Operating costs were flat in Q2."),
        ChunkRecord(id="D", document_id="doc-2", session_id="s1", text="Growth was driven by new enterprise customers."),
    ]


@pytest.fixture
def make_pipeline(sample_chunks: list[ChunkRecord]) -> Callable[..., QueryPipeline]:
    """Factory for a QueryPipeline wired to fakes; keyword arguments replace single fakes."""

    def _make(
        llm: Optional[FakeLLM] = None,
        lexical: Optional[FakeLexicalIndex] = None,
        embedder: Optional[FakeEmbedder] = None,
        vector: Optional[FakeVectorIndex] = None,
        store: Optional[FakeChunkStore] = None,
        config: Optional[RAGConfig] = None,
    ) -> QueryPipeline:
        llm = llm or FakeLLM()
        config = config or RAGConfig(stage_timeout=5.0, generation_timeout=5.0)
        return QueryPipeline(
            expander=QueryExpander(llm, max_queries=config.max_queries, timeout=config.stage_timeout),
            lexical_index=lexical
            or FakeLexicalIndex(hits=[RankedHit("A", 3.0), RankedHit("B", 2.0), RankedHit("C", 1.0)]),
            embedder=embedder or FakeEmbedder(),
            vector_index=vector or FakeVectorIndex(matches=[VectorMatch("B", 0.9), VectorMatch("D", 0.8)]),
            chunk_store=store or FakeChunkStore(sample_chunks),
            generator=AnswerGenerator(llm),
            config=config,
        )

    return _make
