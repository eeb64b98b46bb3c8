"""Annotation models — chunks, per-word results, progress, and run results.

Also holds the *wire* schema of the remote classification service
(:class:`AnnotationServiceResponse` / :class:`RemoteAnnotation`).  Responses
are decoded through these models rather than trusted by shape: a payload
either validates into typed values or raises, and the provider turns that
into a named :class:`~src.utils.errors.ValidationError`.

The service historically answered with Portuguese field names
(``palavra``, ``tagset_codigo``, ``dominio_nome``, ``cor``, ``confianca``);
newer deployments use ``word`` / ``domainCode`` / ``domainLabel`` /
``colorHint`` / ``confidence``.  Both spellings are accepted.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, computed_field, field_validator


# ---------------------------------------------------------------------------
# Pipeline-side models
# ---------------------------------------------------------------------------
class AnnotationPhase(str, Enum):  # noqa: UP042
    """Lifecycle of one annotation run."""

    SCHEDULING = "scheduling"
    PROCESSING = "processing"
    AGGREGATING = "aggregating"
    COMPLETE = "complete"
    FAILED = "failed"


class AnnotationChunk(BaseModel):
    """A bounded slice of the input word list sent in one remote call."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    words: list[str]
    # Offset of words[0] inside the original input list.
    offset: int = Field(default=0, ge=0)


class AnnotationResult(BaseModel):
    """One accepted classification: a word assigned to a semantic domain."""

    model_config = ConfigDict(frozen=True)

    word: str = Field(min_length=1)
    domain_code: str = Field(min_length=1)
    label: str = ""
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    color_hint: str | None = None
    prosody: str | None = None


class AnnotationProgress(BaseModel):
    """Snapshot emitted to progress listeners during a run."""

    model_config = ConfigDict(frozen=True)

    processed: int = Field(ge=0)
    total: int = Field(ge=0)
    current_chunk: int = Field(ge=0)
    total_chunks: int = Field(ge=0)
    percentage: int = Field(ge=0, le=100)
    started_at: datetime


class ChunkAttempt(BaseModel):
    """One attempt at one chunk, as recorded by the retry policy."""

    model_config = ConfigDict(frozen=True)

    chunk_index: int
    attempt: int = Field(ge=1)
    succeeded: bool
    error_type: str | None = None
    error: str | None = None
    # Seconds slept after this attempt before the next one (0 when none).
    backoff_seconds: float = 0.0


class AnnotationRunResult(BaseModel):
    """Corpus-wide outcome of one annotation run.

    A run always completes; chunks that exhausted their retries are listed in
    ``failed_chunks`` and their words are missing from ``annotations``.
    ``coverage_percentage`` lets downstream consumers decide whether to
    re-run the gaps.
    """

    model_config = ConfigDict(frozen=True)

    annotations: list[AnnotationResult] = Field(default_factory=list)
    total_words: int = Field(ge=0)
    processed_words: int = Field(ge=0)
    covered_words: int = Field(ge=0)
    classified_words: int = Field(ge=0)
    domains_found: int = Field(ge=0)
    total_chunks: int = Field(ge=0)
    failed_chunks: list[int] = Field(default_factory=list)
    attempt_log: list[ChunkAttempt] = Field(default_factory=list)
    started_at: datetime
    completed_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def coverage_percentage(self) -> float:
        """Share of input words whose chunk was successfully annotated."""
        if self.total_words == 0:
            return 100.0
        return round(self.covered_words / self.total_words * 100, 2)

    @property
    def is_complete(self) -> bool:
        return not self.failed_chunks

    def attempts_for(self, chunk_index: int) -> list[ChunkAttempt]:
        return [a for a in self.attempt_log if a.chunk_index == chunk_index]


# ---------------------------------------------------------------------------
# Remote classification service wire schema
# ---------------------------------------------------------------------------
class RemoteAnnotation(BaseModel):
    """One entry of the service's ``annotations`` array."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    word: str = Field(min_length=1, validation_alias=AliasChoices("word", "palavra"))
    domain_code: str = Field(
        min_length=1,
        validation_alias=AliasChoices("domainCode", "domain_code", "tagset_codigo"),
    )
    domain_label: str | None = Field(
        default="",
        validation_alias=AliasChoices("domainLabel", "domain_label", "dominio_nome"),
    )
    confidence: float = Field(default=0.0, validation_alias=AliasChoices("confidence", "confianca"))
    color_hint: str | None = Field(
        default=None, validation_alias=AliasChoices("colorHint", "color_hint", "cor")
    )
    prosody: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _normalise_confidence(cls, value: Any) -> Any:
        # Some deployments report 0-100 instead of 0-1.
        if value is None:
            return 0.0
        if isinstance(value, (int, float)) and value > 1:
            return min(float(value) / 100, 1.0)
        if isinstance(value, (int, float)) and value < 0:
            return 0.0
        return value

    @field_validator("prosody", mode="before")
    @classmethod
    def _stringify_prosody(cls, value: Any) -> Any:
        if value is None or isinstance(value, str):
            return value
        return str(value)

    def to_result(self) -> AnnotationResult:
        return AnnotationResult(
            word=self.word,
            domain_code=self.domain_code,
            label=self.domain_label or "",
            confidence=self.confidence,
            color_hint=self.color_hint,
            prosody=self.prosody,
        )


class AnnotationServiceResponse(BaseModel):
    """Top-level response body of the classification service.

    ``annotations`` is required and must be a list; its entries are left
    untyped here so that one malformed entry cannot fail the whole payload.
    """

    model_config = ConfigDict(extra="ignore")

    success: bool | None = None
    annotations: list[Any]
    error: str | None = None
