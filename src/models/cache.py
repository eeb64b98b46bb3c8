"""Cache models — keys, entries, invalidation events, and statistics.

``CacheKey`` is the only thing that ever identifies a cached corpus.  Its
string form ``{corpus_type}:{kind}:{filter_digest}`` is what the memory tier,
the durable tier, the load coordinator and the invalidation bus all use, so
two logically identical queries must always produce the same key (see
:mod:`src.services.cache_key` for the canonicalisation rules).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from src.models.corpus import Corpus, CorpusType


class CorpusFilters(BaseModel):
    """Optional sub-corpus selection.

    Every field left at ``None`` (or an empty list) means "no restriction".
    """

    model_config = ConfigDict(frozen=True)

    artists: list[str] | None = None
    albums: list[str] | None = None
    year_start: int | None = None
    year_end: int | None = None


class CacheSource(str, Enum):  # noqa: UP042 — StrEnum requires Python 3.11+
    """Which tier satisfied a cache read."""

    MEMORY = "memory"
    DURABLE = "durable"
    NETWORK = "network"


class CacheKey(BaseModel):
    """Immutable, hashable cache key."""

    model_config = ConfigDict(frozen=True)

    corpus_type: CorpusType
    kind: Literal["full", "filtered"]
    filter_digest: str

    def __str__(self) -> str:
        return f"{self.corpus_type.value}:{self.kind}:{self.filter_digest}"


class CacheEntry(BaseModel):
    """A corpus held by one tier, stamped with the time it was loaded.

    ``loaded_at`` is seconds since the epoch (the cache clock's unit).
    """

    model_config = ConfigDict(frozen=True)

    key: CacheKey
    payload: Corpus
    tier: CacheSource
    loaded_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        """An entry is valid only while ``now - loaded_at < ttl``."""
        return now - self.loaded_at < ttl_seconds


class CacheLookup(BaseModel):
    """Result of :meth:`TieredCorpusCache.get` — the corpus and where it came from."""

    model_config = ConfigDict(frozen=True)

    key: CacheKey
    corpus: Corpus
    source: CacheSource


class InvalidationEvent(BaseModel):
    """Broadcast to sibling contexts so they drop the same cache state.

    ``origin`` is the publishing context's id; receivers ignore their own
    events so a re-broadcast can never loop.
    """

    model_config = ConfigDict(frozen=True)

    action: Literal["invalidate", "invalidate_type", "clear"]
    origin: str
    key: str | None = None
    corpus_type: CorpusType | None = None
    emitted_at: datetime = Field(
        default_factory=lambda: datetime.now(tz=timezone.utc)  # noqa: UP017
    )


class DurableCacheStats(BaseModel):
    """Aggregate numbers for the durable tier (admin / CLI display)."""

    entries: int = 0
    total_size_bytes: int = 0
    original_size_bytes: int = 0
    compression_ratio: float = 0.0
    oldest_entry: datetime | None = None
    newest_entry: datetime | None = None


@dataclass
class CacheMetrics:
    """Running counters for one cache service instance.

    Internal-only and mutated in place, so a plain dataclass rather than a
    frozen Pydantic model.
    """

    memory_hits: int = 0
    durable_hits: int = 0
    network_loads: int = 0
    joined_loads: int = 0
    load_errors: int = 0
    durable_write_failures: int = 0
    invalidations: int = 0
    by_key: dict[str, str] = field(default_factory=dict)

    def record(self, key: str, source: CacheSource) -> None:
        self.by_key[key] = source.value
        if source is CacheSource.MEMORY:
            self.memory_hits += 1
        elif source is CacheSource.DURABLE:
            self.durable_hits += 1
        else:
            self.network_loads += 1

    @property
    def hit_rate(self) -> float:
        total = self.memory_hits + self.durable_hits + self.network_loads
        if total == 0:
            return 0.0
        return (self.memory_hits + self.durable_hits) / total
