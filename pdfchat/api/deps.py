"""
Build the query pipeline and its collaborators for the API (used in lifespan).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine

from pdfchat.db.schema import create_schema
from pdfchat.db.session import DATABASE_URL, make_engine, make_sessionmaker
from pdfchat.generation import AnswerGenerator, GenerationConfig
from pdfchat.llm import create_client
from pdfchat.orchestrator import QueryPipeline
from pdfchat.rag import (
    InMemoryVectorIndex,
    QueryExpander,
    RAGConfig,
    SqlChunkStore,
    SqliteFullTextIndex,
    create_embedder,
)
from pdfchat.rag.dense import VECTOR_INDEX_PATH

logger = logging.getLogger(__name__)


@dataclass
class PipelineResources:
    """The pipeline plus handles the app must keep or dispose of."""

    pipeline: Optional[QueryPipeline]
    engine: Optional[AsyncEngine]
    vectors_loaded: int = 0


async def build_pipeline(database_url: str = DATABASE_URL) -> PipelineResources:
    """
    Create storage, indexes, LLM client, expander and generator.

    Returns a resource bundle with pipeline=None when the LLM or the
    embedder cannot be configured, so routes can answer 503.
    """
    config = RAGConfig.from_env()
    engine = make_engine(database_url)
    await create_schema(engine)
    sessionmaker = make_sessionmaker(engine)
    vector_index = InMemoryVectorIndex.load(VECTOR_INDEX_PATH)

    try:
        client = create_client()
        embedder = create_embedder()
    except Exception as e:
        logger.error("Pipeline disabled (initialization failed): %s", e)
        return PipelineResources(pipeline=None, engine=engine, vectors_loaded=len(vector_index))

    pipeline = QueryPipeline(
        expander=QueryExpander(client, max_queries=config.max_queries, timeout=config.stage_timeout),
        lexical_index=SqliteFullTextIndex(sessionmaker),
        embedder=embedder,
        vector_index=vector_index,
        chunk_store=SqlChunkStore(sessionmaker),
        generator=AnswerGenerator(client, GenerationConfig.from_env()),
        config=config,
    )
    return PipelineResources(pipeline=pipeline, engine=engine, vectors_loaded=len(vector_index))
