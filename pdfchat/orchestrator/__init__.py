"""
Orchestrator: per-request coordination of retrieval, context assembly and streamed generation.
"""

from .errors import (
    ContextAssemblyError,
    GenerationError,
    InvalidRequestError,
    PipelineError,
    StageTimeoutError,
)
from .events import EventChannel, ListSink, to_sse
from .pipeline import (
    PipelineState,
    PreparedQuery,
    QueryPipeline,
    QueryRequest,
    RequestRun,
    build_messages,
    validate_request,
)

__all__ = [
    "ContextAssemblyError",
    "EventChannel",
    "GenerationError",
    "InvalidRequestError",
    "ListSink",
    "PipelineError",
    "PipelineState",
    "PreparedQuery",
    "QueryPipeline",
    "QueryRequest",
    "RequestRun",
    "StageTimeoutError",
    "build_messages",
    "to_sse",
    "validate_request",
]
