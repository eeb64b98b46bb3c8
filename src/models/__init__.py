"""corpuslab domain models — re-exports all public model classes.

Other parts of the codebase can import directly from ``src.models``
(e.g. ``from src.models import Corpus``) instead of the individual modules.

The models are organized across three submodules by domain concern:
    - corpus.py      — Parsed song-lyric corpora (documents, metadata, types)
    - cache.py       — Cache keys, entries, invalidation events, statistics
    - annotation.py  — Annotation chunks, results, progress, and the wire
                       schema of the remote classification service
"""

from __future__ import annotations

from src.models.annotation import (
    AnnotationChunk,
    AnnotationPhase,
    AnnotationProgress,
    AnnotationResult,
    AnnotationRunResult,
    AnnotationServiceResponse,
    ChunkAttempt,
    RemoteAnnotation,
)
from src.models.cache import (
    CacheEntry,
    CacheKey,
    CacheLookup,
    CacheMetrics,
    CacheSource,
    CorpusFilters,
    DurableCacheStats,
    InvalidationEvent,
)
from src.models.corpus import Corpus, CorpusDocument, CorpusType, SongMetadata

__all__ = [
    "AnnotationChunk",
    "AnnotationPhase",
    "AnnotationProgress",
    "AnnotationResult",
    "AnnotationRunResult",
    "AnnotationServiceResponse",
    "CacheEntry",
    "CacheKey",
    "CacheLookup",
    "CacheMetrics",
    "CacheSource",
    "ChunkAttempt",
    "Corpus",
    "CorpusDocument",
    "CorpusFilters",
    "CorpusType",
    "DurableCacheStats",
    "InvalidationEvent",
    "RemoteAnnotation",
    "SongMetadata",
]
