"""
Dense retrieval: query embeddings and a session-filtered vector index.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .index import CHUNKS_PATH, ChunkRecord
from .retriever import Embedder, VectorIndex, VectorMatch, VectorMatches

logger = logging.getLogger(__name__)

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "all-MiniLM-L6-v2")
VECTOR_INDEX_PATH = Path(os.getenv("VECTOR_INDEX_PATH", str(CHUNKS_PATH.with_name("vectors.npz"))))


class SentenceTransformerEmbedder:
    """Local sentence-transformers model; encoding runs in a worker thread."""

    def __init__(self, model_name: str = EMBEDDING_MODEL):
        from sentence_transformers import SentenceTransformer

        self.model_name = model_name
        self.model = SentenceTransformer(model_name)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        emb = await asyncio.to_thread(
            self.model.encode,
            list(texts),
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return emb.tolist()


class OpenAIEmbedder:
    """Embeddings from an OpenAI-compatible /embeddings endpoint."""

    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
    ):
        from openai import AsyncOpenAI

        self.model_name = model_name
        self.client = AsyncOpenAI(
            api_key=api_key or os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=base_url or os.getenv("LLM_BASE_URL"),
        )

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(model=self.model_name, input=list(texts))
        return [list(item.embedding) for item in response.data]


def create_embedder(provider: Optional[str] = None, model_name: Optional[str] = None) -> Embedder:
    """Build the embedder named by EMBEDDING_PROVIDER (sentence-transformers or openai)."""
    provider = (provider or os.getenv("EMBEDDING_PROVIDER", "sentence-transformers")).lower().strip()
    model_name = model_name or EMBEDDING_MODEL
    if provider in ("sentence-transformers", "local"):
        return SentenceTransformerEmbedder(model_name)
    if provider == "openai":
        return OpenAIEmbedder(model_name)
    raise ValueError(f"Unsupported embedding provider: {provider}")


def _normalize(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=-1, keepdims=True)
    norms[norms == 0] = 1.0
    return matrix / norms


@dataclass
class InMemoryVectorIndex:
    """Cosine-similarity vector index with per-vector metadata filtering."""

    ids: List[str] = field(default_factory=list)
    embeddings: Optional[np.ndarray] = None  # shape: (n_vectors, dim), unit rows
    metadata: List[Dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.ids)

    def upsert(
        self,
        ids: Sequence[str],
        vectors: Sequence[Sequence[float]],
        metadata: Optional[Sequence[Dict[str, Any]]] = None,
    ) -> None:
        """Insert or replace vectors by id."""
        if len(ids) != len(vectors):
            raise ValueError("ids and vectors must have the same length")
        metadata = list(metadata) if metadata is not None else [{} for _ in ids]
        new = _normalize(np.asarray(vectors, dtype=np.float32))
        if self.embeddings is None or not self.ids:
            self.ids = []
            self.metadata = []
            self.embeddings = np.empty((0, new.shape[1]), dtype=np.float32)
        positions = {cid: i for i, cid in enumerate(self.ids)}
        rows = [row for row in self.embeddings]
        for cid, vec, meta in zip(ids, new, metadata):
            if cid in positions:
                rows[positions[cid]] = vec
                self.metadata[positions[cid]] = dict(meta)
            else:
                positions[cid] = len(self.ids)
                self.ids.append(cid)
                self.metadata.append(dict(meta))
                rows.append(vec)
        self.embeddings = np.vstack(rows) if rows else self.embeddings

    async def query(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: Optional[Dict[str, Any]] = None,
        return_metadata: bool = True,
    ) -> VectorMatches:
        """Return the top_k most similar vectors whose metadata matches every filter key."""
        if self.embeddings is None or not self.ids:
            return VectorMatches(matches=[])
        q = _normalize(np.asarray(vector, dtype=np.float32))
        sims = np.dot(self.embeddings, q)
        if filter:
            mask = np.array(
                [all(meta.get(key) == value for key, value in filter.items()) for meta in self.metadata],
                dtype=bool,
            )
            sims = np.where(mask, sims, -np.inf)
        idxs = np.argsort(-sims)[:top_k]
        matches: List[VectorMatch] = []
        for idx in idxs:
            score = float(sims[idx])
            if score == -np.inf:
                break
            i = int(idx)
            matches.append(
                VectorMatch(
                    id=self.ids[i],
                    score=score,
                    metadata=dict(self.metadata[i]) if return_metadata else None,
                )
            )
        return VectorMatches(matches=matches)

    def save(self, path: Path = VECTOR_INDEX_PATH) -> None:
        """Persist the index to an .npz file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        np.savez(
            path,
            ids=np.array(self.ids, dtype=object),
            embeddings=self.embeddings if self.embeddings is not None else np.empty((0, 0)),
            metadata=np.array(self.metadata, dtype=object),
        )

    @classmethod
    def load(cls, path: Path = VECTOR_INDEX_PATH) -> "InMemoryVectorIndex":
        """Load a persisted index; a missing or unreadable file yields an empty index."""
        if not path.exists():
            return cls()
        try:
            data = np.load(path, allow_pickle=True)
            return cls(
                ids=data["ids"].tolist(),
                embeddings=data["embeddings"],
                metadata=data["metadata"].tolist(),
            )
        except Exception as e:
            logger.warning("Failed to load vector index from %s: %s", path, e)
            return cls()


async def index_chunks(
    embedder: Embedder,
    index: InMemoryVectorIndex,
    chunks: Sequence[ChunkRecord],
    batch_size: int = 64,
) -> int:
    """Embed chunk text and upsert it with session/document metadata."""
    for start in range(0, len(chunks), batch_size):
        batch = chunks[start : start + batch_size]
        vectors = await embedder.embed([c.text for c in batch])
        index.upsert(
            [c.id for c in batch],
            vectors,
            [{"sessionId": c.session_id, "documentId": c.document_id} for c in batch],
        )
    return len(chunks)


async def search_one(
    embedder: Embedder,
    index: VectorIndex,
    query: str,
    session_id: str,
    top_k: int = 5,
) -> VectorMatches:
    """Embed one query and return its session-scoped nearest chunks."""
    vectors = await embedder.embed([query])
    return await index.query(
        vectors[0],
        top_k=top_k,
        filter={"sessionId": session_id},
        return_metadata=True,
    )


async def search_vector(
    embedder: Embedder,
    index: VectorIndex,
    queries: Sequence[str],
    session_id: str,
    *,
    top_k: int = 5,
) -> List[VectorMatches]:
    """
    Run one vector search per query concurrently.

    Returns one VectorMatches per successful query, in query order; a
    failing query is logged and left out.
    """
    results = await asyncio.gather(
        *(search_one(embedder, index, q, session_id, top_k=top_k) for q in queries),
        return_exceptions=True,
    )
    matches: List[VectorMatches] = []
    for query, result in zip(queries, results):
        if isinstance(result, BaseException):
            logger.warning("Vector search failed for %r: %r", query, result)
            continue
        matches.append(result)
    return matches
