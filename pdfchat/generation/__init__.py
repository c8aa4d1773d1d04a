"""
Answer generation module for the RAG pipeline.

- Context assembly from fused chunk ids (citation markers [1], [2], ...)
- Streamed answer generation
"""

from .config import GenerationConfig
from .context_builder import assemble_context, build_context, order_chunks
from .generator import AnswerGenerator
from .prompts import CONTEXT_PREFIX, QUERY_EXPANSION_PROMPT, SYSTEM_MESSAGE

__all__ = [
    "assemble_context",
    "build_context",
    "order_chunks",
    "GenerationConfig",
    "AnswerGenerator",
    "CONTEXT_PREFIX",
    "QUERY_EXPANSION_PROMPT",
    "SYSTEM_MESSAGE",
]
