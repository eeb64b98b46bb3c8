"""Pydantic request/response schemas for the corpuslab API.

Request schemas end with "Request", response schemas with "Response".
FastAPI validates incoming JSON against them (422 on mismatch), serialises
outgoing objects through them, and documents them at ``/docs``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, model_validator

from src.models.annotation import AnnotationResult, ChunkAttempt
from src.models.cache import CorpusFilters


class CorpusSummaryResponse(BaseModel):
    """A corpus as served by the tiered cache, without the document bodies."""

    corpus_type: str
    cache_key: str
    source: str = Field(description="Tier that served the request: memory, durable or network")
    total_documents: int
    total_words: int
    unique_words: int
    content_version: str
    artists: list[str] = Field(default_factory=list)


class InvalidateResponse(BaseModel):
    """Outcome of an invalidation request."""

    corpus_type: str
    cache_key: str | None = None
    removed: int


class ClearResponse(BaseModel):
    removed: int


class CacheStatsResponse(BaseModel):
    """Counters of the tiered cache plus per-tier details."""

    context_id: str
    metrics: dict[str, Any]
    in_flight_loads: int
    pending_writes: int
    memory: dict[str, Any]
    durable: dict[str, Any] | None = None


class AnnotationRequest(BaseModel):
    """Start an annotation run on an explicit word list or a cached corpus.

    Exactly one of ``words`` and ``corpus_type`` must be given.
    """

    words: list[str] | None = None
    corpus_type: str | None = None
    filters: CorpusFilters | None = None
    context: str | None = None
    unique: bool = Field(default=True, description="Annotate each distinct corpus word once")

    @model_validator(mode="after")
    def _one_input(self) -> AnnotationRequest:
        if (self.words is None) == (self.corpus_type is None):
            msg = "Provide exactly one of 'words' or 'corpus_type'"
            raise ValueError(msg)
        if self.words is not None and not self.words:
            msg = "'words' must not be empty"
            raise ValueError(msg)
        return self


class AnnotationStartedResponse(BaseModel):
    run_id: str
    status: str
    total_words: int
    message: str


class AnnotationStatusResponse(BaseModel):
    """Phase, latest progress, and (once complete) the aggregate of a run."""

    run_id: str
    phase: str
    progress: dict[str, Any] | None = None
    error: str | None = None
    coverage_percentage: float | None = None
    annotations: list[AnnotationResult] | None = None
    failed_chunks: list[int] | None = None
    attempt_log: list[ChunkAttempt] | None = None
    domains_found: int | None = None
    classified_words: int | None = None


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, Any]


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
    provider: str | None = None
