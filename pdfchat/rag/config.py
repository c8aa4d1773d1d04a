"""
Configuration for the hybrid retrieval pipeline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class RAGConfig:
    """Configuration for query expansion, hybrid search and fusion."""

    max_queries: int = 5
    lexical_limit: int = 5
    lexical_pool: int = 10
    vector_top_k: int = 5
    fused_top_k: int = 10
    k_rrf: int = 60
    stage_timeout: float = 30.0
    generation_timeout: float = 120.0

    @classmethod
    def from_env(cls) -> "RAGConfig":
        """Build a config from RAG_* environment variables, keeping defaults for unset ones."""
        return cls(
            max_queries=int(os.getenv("RAG_MAX_QUERIES", "5")),
            lexical_limit=int(os.getenv("RAG_LEXICAL_LIMIT", "5")),
            lexical_pool=int(os.getenv("RAG_LEXICAL_POOL", "10")),
            vector_top_k=int(os.getenv("RAG_VECTOR_TOP_K", "5")),
            fused_top_k=int(os.getenv("RAG_FUSED_TOP_K", "10")),
            k_rrf=int(os.getenv("RAG_K_RRF", "60")),
            stage_timeout=float(os.getenv("RAG_STAGE_TIMEOUT", "30")),
            generation_timeout=float(os.getenv("RAG_GENERATION_TIMEOUT", "120")),
        )
