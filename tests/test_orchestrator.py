"""
Tests for the query pipeline: event sequence, state machine and failure handling.
"""

from __future__ import annotations

import asyncio
from typing import Callable

import pytest

from fakes import FakeChunkStore, FakeEmbedder, FakeLexicalIndex, FakeLLM, FakeVectorIndex
from pdfchat.generation import CONTEXT_PREFIX, SYSTEM_MESSAGE
from pdfchat.orchestrator import (
    EventChannel,
    InvalidRequestError,
    ListSink,
    PipelineState,
    QueryPipeline,
    QueryRequest,
    RequestRun,
    build_messages,
    validate_request,
)
from pdfchat.rag import RAGConfig, RankedHit

QUESTION = "What was Q2 revenue growth?"


def _request(session_id: str = "s1", content: str = QUESTION) -> QueryRequest:
    return QueryRequest(session_id=session_id, messages=[{"role": "user", "content": content}])


async def _run(pipeline: QueryPipeline, request: QueryRequest) -> tuple[RequestRun, list[dict]]:
    channel = EventChannel()
    run = await pipeline.run(request, channel)
    assert channel.closed
    events = [event async for event in channel]
    return run, events


# --- Event channel ---


@pytest.mark.anyio
async def test_event_channel_delivers_until_closed():
    channel = EventChannel()
    await channel.send({"message": "one"})
    await channel.send({"chunk": "two"})
    await channel.close()
    await channel.close()
    assert [e async for e in channel] == [{"message": "one"}, {"chunk": "two"}]
    with pytest.raises(RuntimeError):
        await channel.send({"chunk": "late"})


# --- Validation and message assembly ---


@pytest.mark.parametrize(
    "request_",
    [
        QueryRequest(session_id="", messages=[{"role": "user", "content": "hi"}]),
        QueryRequest(session_id="   ", messages=[{"role": "user", "content": "hi"}]),
        QueryRequest(session_id="s1", messages=[]),
        QueryRequest(session_id="s1", messages=[{"role": "user", "content": "  "}]),
    ],
)
def test_validate_request_rejects(request_: QueryRequest):
    with pytest.raises(InvalidRequestError):
        validate_request(request_)


def test_build_messages_prepends_system_and_appends_context():
    history = [{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]
    messages = build_messages(history, "[1]: text")
    assert messages[0] == {"role": "system", "content": SYSTEM_MESSAGE}
    assert messages[1:3] == history
    assert messages[-1] == {"role": "assistant", "content": f"{CONTEXT_PREFIX}[1]: text"}
    assert len(history) == 2


# --- End to end ---


@pytest.mark.anyio
async def test_run_success_event_sequence(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM()
    run, events = await _run(make_pipeline(llm=llm), _request())

    assert run.state == PipelineState.DONE
    assert run.history == [
        PipelineState.RECEIVED,
        PipelineState.EXPANDING,
        PipelineState.SEARCHING,
        PipelineState.FUSING,
        PipelineState.ASSEMBLING_CONTEXT,
        PipelineState.GENERATING,
        PipelineState.DONE,
    ]
    assert not any("error" in e for e in events)

    queries_idx = next(i for i, e in enumerate(events) if "queries" in e)
    chunk_idx = [i for i, e in enumerate(events) if "chunk" in e]
    assert 1 <= len(events[queries_idx]["queries"]) <= 5
    assert chunk_idx and min(chunk_idx) > queries_idx
    assert "".join(events[i]["chunk"] for i in chunk_idx) == "Revenue grew 12% in Q2 [1]."

    compiling = next(e for e in events if e.get("message") == "Compiling context...")
    assert compiling["found"] == 4


@pytest.mark.anyio
async def test_run_sends_fused_context_in_rank_order(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM()
    run, _ = await _run(make_pipeline(llm=llm), _request())

    assert [c.id for c in run.prepared.chunks] == ["B", "A", "D", "C"]
    sent = llm.streamed[0]
    assert sent[0]["role"] == "system"
    assert sent[1] == {"role": "user", "content": QUESTION}
    assert sent[-1]["role"] == "assistant"
    assert sent[-1]["content"].startswith(CONTEXT_PREFIX + "[1]: Second quarter sales")
    assert "[4]: Operating costs were flat in Q2." in sent[-1]["content"]


@pytest.mark.anyio
async def test_run_uses_original_query_when_expansion_fails(make_pipeline: Callable[..., QueryPipeline]):
    lexical = FakeLexicalIndex(hits=[RankedHit("A", 1.0)])
    pipeline = make_pipeline(llm=FakeLLM(expansion=RuntimeError("boom")), lexical=lexical)
    run, events = await _run(pipeline, _request())

    assert run.state == PipelineState.DONE
    assert next(e for e in events if "queries" in e)["queries"] == [QUESTION]
    assert [call[0] for call in lexical.calls] == ["What was Q2 revenue growth"]


@pytest.mark.anyio
async def test_run_rejects_invalid_request_before_external_calls(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM()
    lexical = FakeLexicalIndex()
    store = FakeChunkStore()
    run, events = await _run(make_pipeline(llm=llm, lexical=lexical, store=store), _request(session_id=""))

    assert run.state == PipelineState.FAILED
    assert events == [{"error": "Processing failed: Session ID is required"}]
    assert llm.prompts == [] and llm.streamed == []
    assert lexical.calls == [] and store.calls == []


@pytest.mark.anyio
async def test_run_chunk_lookup_failure_emits_single_error(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM()
    run, events = await _run(make_pipeline(llm=llm, store=FakeChunkStore(fail=True)), _request())

    errors = [e for e in events if "error" in e]
    assert len(errors) == 1
    assert errors[0]["error"].startswith("Processing failed:")
    assert "database is locked" not in errors[0]["error"]
    assert not any("chunk" in e for e in events)
    assert events[-1] == errors[0]
    assert run.state == PipelineState.FAILED
    assert PipelineState.GENERATING not in run.history
    assert llm.streamed == []


@pytest.mark.anyio
async def test_run_generation_failure_keeps_streamed_content(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM(fragments=["Revenue ", "grew"], fail_after=1)
    run, events = await _run(make_pipeline(llm=llm), _request())

    assert [e["chunk"] for e in events if "chunk" in e] == ["Revenue "]
    errors = [e for e in events if "error" in e]
    assert len(errors) == 1
    assert errors[0]["error"].startswith("Failed to process query:")
    assert events[-1] == errors[0]
    assert run.history[-2:] == [PipelineState.GENERATING, PipelineState.FAILED]


@pytest.mark.anyio
async def test_run_generation_failure_before_first_fragment(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM(fragments=["Revenue ", "grew"], fail_after=0)
    run, events = await _run(make_pipeline(llm=llm), _request())

    assert not any("chunk" in e for e in events)
    errors = [e for e in events if "error" in e]
    assert len(errors) == 1
    assert errors[0]["error"].startswith("Failed to process query:")
    assert events[-1] == errors[0]
    assert run.history[-2:] == [PipelineState.GENERATING, PipelineState.FAILED]


@pytest.mark.anyio
async def test_run_tolerates_failing_search_source(make_pipeline: Callable[..., QueryPipeline]):
    pipeline = make_pipeline(vector=FakeVectorIndex(fail=True), embedder=FakeEmbedder())
    run, events = await _run(pipeline, _request())

    assert run.state == PipelineState.DONE
    assert [c.id for c in run.prepared.chunks] == ["A", "B", "C"]
    assert not any("error" in e for e in events)


@pytest.mark.anyio
async def test_run_with_no_hits_still_generates(make_pipeline: Callable[..., QueryPipeline]):
    llm = FakeLLM()
    pipeline = make_pipeline(llm=llm, lexical=FakeLexicalIndex(), vector=FakeVectorIndex())
    run, events = await _run(pipeline, _request())

    assert run.state == PipelineState.DONE
    assert run.prepared.chunks == []
    assert llm.streamed[0][-1]["content"] == CONTEXT_PREFIX
    assert any("chunk" in e for e in events)


@pytest.mark.anyio
async def test_run_stage_timeout_is_reported(make_pipeline: Callable[..., QueryPipeline], sample_chunks):
    class SlowStore(FakeChunkStore):
        async def get_chunks_by_ids(self, ids):
            await asyncio.sleep(1)
            return []

    config = RAGConfig(stage_timeout=0.05, generation_timeout=5.0)
    run, events = await _run(make_pipeline(store=SlowStore(sample_chunks), config=config), _request())

    errors = [e for e in events if "error" in e]
    assert len(errors) == 1
    assert "timed out" in errors[0]["error"]
    assert run.state == PipelineState.FAILED


@pytest.mark.anyio
async def test_run_closes_list_sink(make_pipeline: Callable[..., QueryPipeline]):
    sink = ListSink()
    await make_pipeline().run(_request(), sink)
    assert sink.closed
    assert sink.events[0] == {"message": "Analyzing query..."}
