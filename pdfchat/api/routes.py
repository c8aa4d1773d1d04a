"""
API routes: streamed query, retrieval-only search, health.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Optional, Set

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse, StreamingResponse

from pdfchat.orchestrator import EventChannel, PipelineError, QueryPipeline, QueryRequest, to_sse

from .models import HealthResponse, QueryRequestBody, SearchHit, SearchRequest, SearchResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])

# Coordinators keep running when a client disconnects; hold references until they finish.
_background_tasks: Set[asyncio.Task[Any]] = set()


def _get_pipeline(request: Request) -> Optional[QueryPipeline]:
    return getattr(request.app.state, "pipeline", None)


def _unavailable() -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={"detail": "Service unavailable: query pipeline not initialized."},
    )


async def _stream_events(channel: EventChannel) -> AsyncIterator[str]:
    async for event in channel:
        yield to_sse(event)


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Health check."""
    return HealthResponse(
        status="ok",
        pipeline_ready=_get_pipeline(request) is not None,
        vectors_loaded=getattr(request.app.state, "vectors_loaded", 0),
    )


@router.post("/query", response_model=None)
async def query(request: Request, body: QueryRequestBody) -> StreamingResponse | JSONResponse:
    """Answer the last message from the session's documents; progress and tokens stream via SSE."""
    pipeline = _get_pipeline(request)
    if pipeline is None:
        return _unavailable()

    channel = EventChannel()
    query_request = QueryRequest(
        session_id=body.session_id,
        messages=[m.model_dump() for m in body.messages],
    )
    task = asyncio.create_task(pipeline.run(query_request, channel))
    _background_tasks.add(task)
    task.add_done_callback(_background_tasks.discard)

    return StreamingResponse(
        _stream_events(channel),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.post("/search", response_model=SearchResponse)
async def search_endpoint(request: Request, body: SearchRequest) -> SearchResponse | JSONResponse:
    """Hybrid search without generation."""
    pipeline = _get_pipeline(request)
    if pipeline is None:
        return _unavailable()

    queries = await pipeline.expander.expand(body.query) if body.expand else [body.query]
    lexical, vector = await pipeline.search(body.session_id, queries)
    fused = pipeline.fuse(lexical, vector)
    scores = {hit.id: hit.score for hit in fused}
    try:
        chunks = await pipeline.assemble(list(scores))
    except PipelineError as e:
        logger.error("Search failed while fetching chunks: %r", e)
        return JSONResponse(status_code=502, content={"detail": "Could not fetch the relevant documents"})

    hits = [
        SearchHit(
            chunk_id=chunk.id,
            document_id=chunk.document_id,
            text=chunk.text[:500] + "…" if len(chunk.text) > 500 else chunk.text,
            score=round(scores[chunk.id], 6),
        )
        for chunk in chunks
    ]
    return SearchResponse(query=body.query, queries=queries, results=hits)
