"""
Retrieval data types and the collaborator interfaces consumed by the pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence

from .index import ChunkRecord


@dataclass(frozen=True)
class RankedHit:
    """One lexical hit: chunk id plus relevance score (higher is better)."""

    id: str
    score: float


@dataclass(frozen=True)
class VectorMatch:
    """One nearest-neighbour match from the vector index."""

    id: str
    score: float
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class VectorMatches:
    """Matches for one vector query, best first."""

    matches: List[VectorMatch] = field(default_factory=list)


@dataclass(frozen=True)
class FusedHit:
    """Chunk id with its accumulated reciprocal-rank-fusion score."""

    id: str
    score: float


class TextGenerator(Protocol):
    """Generative model used for query rewriting and answer streaming."""

    async def generate_single(self, prompt: str, max_tokens: int = ..., temperature: float = ...) -> str:
        ...

    def stream_chat(
        self,
        messages: Sequence[Dict[str, str]],
        max_tokens: int = ...,
        temperature: float = ...,
    ) -> AsyncIterator[str]:
        ...


class Embedder(Protocol):
    """Embedding model: one vector per input text."""

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        ...


class LexicalIndex(Protocol):
    """Full-text index over chunk text."""

    async def search(
        self,
        term: str,
        limit: int,
        session_id: Optional[str] = None,
    ) -> List[RankedHit]:
        """
        Run an already sanitized term against the index.

        Returns:
            Up to ``limit`` hits ordered by descending relevance.
        """
        ...


class VectorIndex(Protocol):
    """Nearest-neighbour index over chunk embeddings."""

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        return_metadata: bool = True,
    ) -> VectorMatches:
        ...


class ChunkStore(Protocol):
    """Chunk storage lookup. Result order is unspecified; unknown ids are absent."""

    async def get_chunks_by_ids(self, ids: Sequence[str]) -> List[ChunkRecord]:
        ...
