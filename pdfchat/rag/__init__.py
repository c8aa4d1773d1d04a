"""
RAG (Retrieval-Augmented Generation) module.

Provides retrieval components for hybrid search over PDF chunks:
- LLM query expansion
- Full-text retrieval (SQLite FTS5)
- Dense retrieval over a session-filtered vector index
- Reciprocal Rank Fusion of both
"""

from .config import RAGConfig
from .dense import InMemoryVectorIndex, create_embedder, search_vector
from .index import ChunkRecord, load_chunks
from .lexical import SqliteFullTextIndex, sanitize_term, search_lexical
from .query_rewriter import QueryExpander, parse_queries
from .retriever import (
    ChunkStore,
    Embedder,
    FusedHit,
    LexicalIndex,
    RankedHit,
    TextGenerator,
    VectorIndex,
    VectorMatch,
    VectorMatches,
)
from .rrf_merger import fuse_results, rrf_merge
from .store import SqlChunkStore

__all__ = [
    "ChunkRecord",
    "ChunkStore",
    "Embedder",
    "FusedHit",
    "InMemoryVectorIndex",
    "LexicalIndex",
    "QueryExpander",
    "RAGConfig",
    "RankedHit",
    "SqlChunkStore",
    "SqliteFullTextIndex",
    "TextGenerator",
    "VectorIndex",
    "VectorMatch",
    "VectorMatches",
    "create_embedder",
    "fuse_results",
    "load_chunks",
    "parse_queries",
    "rrf_merge",
    "sanitize_term",
    "search_lexical",
    "search_vector",
]
