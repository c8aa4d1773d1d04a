"""
Request-level failures of the query pipeline.

Each error carries a message that is safe to show to the caller.
"""

from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for failures that end a request."""


class InvalidRequestError(PipelineError):
    """The request is missing a session id or usable messages."""


class ContextAssemblyError(PipelineError):
    """Chunk lookup failed, so no context can be built."""


class GenerationError(PipelineError):
    """The streaming model call failed at submission or mid-stream."""


class StageTimeoutError(PipelineError):
    """A pipeline stage exceeded its time budget."""
