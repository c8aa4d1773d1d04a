"""
Request and response models for the query API.
"""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatMessage(BaseModel):
    """One role-tagged message of the conversation."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str


class QueryRequestBody(BaseModel):
    """Request body for POST /api/query.

    Missing or empty fields are accepted here and rejected by the pipeline,
    which reports them as an error event on the stream.
    """

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field("", alias="sessionId", description="Session whose documents are searched")
    messages: List[ChatMessage] = Field(default_factory=list)


class SearchRequest(BaseModel):
    """Request body for POST /api/search."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, alias="sessionId")
    query: str = Field(..., min_length=1)
    expand: bool = Field(True, description="Rewrite the query into several search queries first")


class SearchHit(BaseModel):
    """Single fused search result."""

    chunk_id: str
    document_id: str
    text: str
    score: float


class SearchResponse(BaseModel):
    """Response for POST /api/search."""

    query: str
    queries: List[str] = Field(default_factory=list)
    results: List[SearchHit] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    status: str = "ok"
    pipeline_ready: bool = False
    vectors_loaded: int = 0
