"""
Query pipeline: expansion, hybrid search, fusion, context assembly and streamed generation.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol, Sequence

from pdfchat.generation import (
    CONTEXT_PREFIX,
    SYSTEM_MESSAGE,
    AnswerGenerator,
    assemble_context,
    build_context,
)
from pdfchat.rag.config import RAGConfig
from pdfchat.rag.dense import search_vector
from pdfchat.rag.index import ChunkRecord
from pdfchat.rag.lexical import search_lexical
from pdfchat.rag.query_rewriter import QueryExpander
from pdfchat.rag.retriever import (
    ChunkStore,
    Embedder,
    FusedHit,
    LexicalIndex,
    RankedHit,
    VectorIndex,
    VectorMatches,
)
from pdfchat.rag.rrf_merger import fuse_results

from .errors import (
    ContextAssemblyError,
    GenerationError,
    InvalidRequestError,
    PipelineError,
    StageTimeoutError,
)
from .events import Event, chunk_event, error_event, progress_event, queries_event

logger = logging.getLogger(__name__)


class PipelineState(str, Enum):
    """Per-request lifecycle."""

    RECEIVED = "received"
    EXPANDING = "expanding"
    SEARCHING = "searching"
    FUSING = "fusing"
    ASSEMBLING_CONTEXT = "assembling_context"
    GENERATING = "generating"
    DONE = "done"
    FAILED = "failed"


TERMINAL_STATES = frozenset({PipelineState.DONE, PipelineState.FAILED})


class EventSink(Protocol):
    async def send(self, event: Event) -> None:
        ...

    async def close(self) -> None:
        ...


@dataclass
class QueryRequest:
    """One question: the session whose documents are searched plus the chat history."""

    session_id: str
    messages: List[Dict[str, str]]


@dataclass
class PreparedQuery:
    """Everything produced before generation starts."""

    messages: List[Dict[str, str]]
    queries: List[str]
    fused: List[FusedHit]
    chunks: List[ChunkRecord]


@dataclass
class RequestRun:
    """State machine for a single request; records every transition."""

    state: PipelineState = PipelineState.RECEIVED
    history: List[PipelineState] = field(default_factory=lambda: [PipelineState.RECEIVED])
    prepared: Optional[PreparedQuery] = None
    error: Optional[str] = None

    def advance(self, state: PipelineState) -> None:
        if self.state in TERMINAL_STATES:
            raise RuntimeError(f"request already finished in state {self.state.value}")
        logger.debug("Pipeline %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)


def validate_request(request: QueryRequest) -> str:
    """Check a request before any external call and return the query text (last message)."""
    if not request.session_id or not request.session_id.strip():
        raise InvalidRequestError("Session ID is required")
    if not request.messages:
        raise InvalidRequestError("No messages provided")
    content = request.messages[-1].get("content") or ""
    if not content.strip():
        raise InvalidRequestError("Last message has no content")
    return content


def build_messages(history: Sequence[Dict[str, str]], context: str) -> List[Dict[str, str]]:
    """System message first, then the caller's history, then the assembled context."""
    messages: List[Dict[str, str]] = [{"role": "system", "content": SYSTEM_MESSAGE}]
    messages.extend({"role": m["role"], "content": m["content"]} for m in history)
    messages.append({"role": "assistant", "content": f"{CONTEXT_PREFIX}{context}"})
    return messages


class QueryPipeline:
    """
    Coordinates one request at a time per call; holds no per-request state.

    Collaborators are injected, never looked up globally.
    """

    def __init__(
        self,
        expander: QueryExpander,
        lexical_index: LexicalIndex,
        embedder: Embedder,
        vector_index: VectorIndex,
        chunk_store: ChunkStore,
        generator: AnswerGenerator,
        config: Optional[RAGConfig] = None,
    ):
        self.expander = expander
        self.lexical_index = lexical_index
        self.embedder = embedder
        self.vector_index = vector_index
        self.chunk_store = chunk_store
        self.generator = generator
        self.config = config or RAGConfig()

    async def _with_timeout(self, awaitable: Any, stage: str, timeout: Optional[float] = None) -> Any:
        limit = self.config.stage_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except asyncio.TimeoutError as e:
            raise StageTimeoutError(f"{stage} timed out after {limit:g}s") from e

    async def search(
        self,
        session_id: str,
        queries: Sequence[str],
    ) -> tuple[List[RankedHit], List[VectorMatches]]:
        """
        Fan out lexical and vector search for every query and join both.

        A source that fails or times out as a whole contributes nothing.
        """
        cfg = self.config
        lexical_task = self._with_timeout(
            search_lexical(
                self.lexical_index,
                queries,
                limit=cfg.lexical_limit,
                pool_size=cfg.lexical_pool,
                session_id=session_id,
            ),
            "Full-text search",
        )
        vector_task = self._with_timeout(
            search_vector(
                self.embedder,
                self.vector_index,
                queries,
                session_id,
                top_k=cfg.vector_top_k,
            ),
            "Vector search",
        )
        lexical, vector = await asyncio.gather(lexical_task, vector_task, return_exceptions=True)
        if isinstance(lexical, BaseException):
            logger.warning("Full-text search contributed nothing: %r", lexical)
            lexical = []
        if isinstance(vector, BaseException):
            logger.warning("Vector search contributed nothing: %r", vector)
            vector = []
        return lexical, vector

    def fuse(self, lexical: Sequence[RankedHit], vector: Sequence[VectorMatches]) -> List[FusedHit]:
        return fuse_results(lexical, vector, k=self.config.fused_top_k, k_rrf=self.config.k_rrf)

    async def assemble(self, ids: Sequence[str]) -> List[ChunkRecord]:
        try:
            return await self._with_timeout(assemble_context(self.chunk_store, ids), "Context assembly")
        except StageTimeoutError:
            raise
        except Exception as e:
            logger.error("Chunk lookup failed: %r", e)
            raise ContextAssemblyError("Could not fetch the relevant documents") from e

    async def prepare(
        self,
        request: QueryRequest,
        sink: EventSink,
        run: Optional[RequestRun] = None,
    ) -> PreparedQuery:
        """Run every stage up to and including context assembly, emitting progress events."""
        run = run or RequestRun()
        query = validate_request(request)

        run.advance(PipelineState.EXPANDING)
        await sink.send(progress_event("Analyzing query..."))
        queries = await self.expander.expand(query)

        run.advance(PipelineState.SEARCHING)
        await sink.send(queries_event("Searching documents...", queries))
        lexical, vector = await self.search(request.session_id, queries)

        run.advance(PipelineState.FUSING)
        fused = self.fuse(lexical, vector)
        logger.info(
            "Fused %s candidates from %s lexical hits and %s vector lists",
            len(fused),
            len(lexical),
            len(vector),
        )

        run.advance(PipelineState.ASSEMBLING_CONTEXT)
        chunks = await self.assemble([hit.id for hit in fused])
        await sink.send(progress_event("Compiling context...", found=len(chunks)))

        messages = build_messages(request.messages, build_context(chunks))
        prepared = PreparedQuery(messages=messages, queries=queries, fused=fused, chunks=chunks)
        run.prepared = prepared
        return prepared

    async def generate(self, messages: Sequence[Dict[str, str]], sink: EventSink) -> None:
        """Relay streamed answer fragments to the sink as chunk events."""

        async def _relay() -> None:
            async for fragment in self.generator.stream(messages):
                await sink.send(chunk_event(fragment))

        try:
            await self._with_timeout(_relay(), "Answer generation", self.config.generation_timeout)
        except StageTimeoutError:
            raise
        except Exception as e:
            logger.error("Answer generation failed: %r", e)
            raise GenerationError("The language model failed to produce an answer") from e

    async def run(self, request: QueryRequest, sink: EventSink) -> RequestRun:
        """
        Process one request end to end.

        Always closes the sink. On failure exactly one error event is sent;
        content already streamed stays valid.
        """
        run = RequestRun()
        try:
            prepared = await self.prepare(request, sink, run)
            run.advance(PipelineState.GENERATING)
            await self.generate(prepared.messages, sink)
            run.advance(PipelineState.DONE)
        except PipelineError as e:
            await self._fail(run, sink, str(e))
        except Exception:
            logger.exception("Query processing error")
            await self._fail(run, sink, "Internal error")
        finally:
            await sink.close()
        return run

    async def _fail(self, run: RequestRun, sink: EventSink, detail: str) -> None:
        prefix = "Failed to process query" if run.state == PipelineState.GENERATING else "Processing failed"
        run.error = f"{prefix}: {detail}"
        logger.error("Request failed in state %s: %s", run.state.value, detail)
        run.state = PipelineState.FAILED
        run.history.append(PipelineState.FAILED)
        await sink.send(error_event(run.error))
