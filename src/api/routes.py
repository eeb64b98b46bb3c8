"""FastAPI routes for the corpus cache and the annotation pipeline.

Service dependencies are resolved from ``app.state`` (populated by
``_build_all`` in ``src/main.py``) through ``Annotated[..., Depends(...)]``
aliases, so tests can mount the router on a bare ``FastAPI()`` with fakes.

Endpoint                               Method  Description
────────────────────────────────────────────────────────────────────────
/api/v1/corpus/{corpus_type}           GET     Load (or serve cached) corpus summary
/api/v1/cache/{corpus_type}            DELETE  Invalidate one key (or the whole type)
/api/v1/cache                          DELETE  Clear both tiers everywhere
/api/v1/cache/stats                    GET     Cache counters and tier details
/api/v1/annotations                    POST    Start an annotation run
/api/v1/annotations/{run_id}/status    GET     Poll run progress / result
/api/v1/health                         GET     Health check
"""

from __future__ import annotations

import uuid
from typing import Annotated, Any

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request

from src.api.schemas import (
    AnnotationRequest,
    AnnotationStartedResponse,
    AnnotationStatusResponse,
    CacheStatsResponse,
    ClearResponse,
    CorpusSummaryResponse,
    ErrorResponse,
    HealthResponse,
    InvalidateResponse,
)
from src.models.cache import CorpusFilters
from src.pipeline.annotation_pipeline import AnnotationPipeline
from src.pipeline.progress_tracker import ProgressTracker
from src.services.cache_key import encode_cache_key
from src.services.corpus_cache import TieredCorpusCache
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


# ---------------------------------------------------------------------------
# Dependency injection helpers (resolve singletons from app.state)
# ---------------------------------------------------------------------------


def _get_corpus_cache(request: Request) -> TieredCorpusCache:
    return request.app.state.corpus_cache


def _get_pipeline(request: Request) -> AnnotationPipeline:
    return request.app.state.annotation_pipeline


def _get_progress_tracker(request: Request) -> ProgressTracker:
    return request.app.state.progress_tracker


CacheDep = Annotated[TieredCorpusCache, Depends(_get_corpus_cache)]
PipelineDep = Annotated[AnnotationPipeline, Depends(_get_pipeline)]
TrackerDep = Annotated[ProgressTracker, Depends(_get_progress_tracker)]


def _filters_from_query(
    artist: Annotated[list[str] | None, Query()] = None,
    album: Annotated[list[str] | None, Query()] = None,
    year_start: int | None = None,
    year_end: int | None = None,
) -> CorpusFilters | None:
    """Build filters from ``?artist=..&artist=..&album=..&year_start=..``."""
    if not (artist or album or year_start is not None or year_end is not None):
        return None
    return CorpusFilters(artists=artist, albums=album, year_start=year_start, year_end=year_end)


FiltersDep = Annotated[CorpusFilters | None, Depends(_filters_from_query)]


# ---------------------------------------------------------------------------
# Background task helpers
# ---------------------------------------------------------------------------


async def _run_annotation(
    pipeline: AnnotationPipeline,
    words: list[str],
    context: str | None,
    run_id: str,
) -> None:
    """Run the pipeline after the response has been sent.

    Failures are already recorded on the progress tracker by the pipeline;
    this only keeps them out of the ASGI server's error log.
    """
    try:
        await pipeline.run(words, context=context, run_id=run_id)
    except Exception as exc:
        _logger.error("background_annotation_failed", run_id=run_id, error=str(exc))


# ---------------------------------------------------------------------------
# Corpus & cache endpoints
# ---------------------------------------------------------------------------


@router.get(
    "/corpus/{corpus_type}",
    response_model=CorpusSummaryResponse,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Load a corpus through the tiered cache",
)
async def get_corpus(
    corpus_type: str,
    cache: CacheDep,
    filters: FiltersDep,
) -> CorpusSummaryResponse:
    """Return a summary of the corpus and the tier that served it."""
    lookup = await cache.get(corpus_type, filters)
    corpus = lookup.corpus
    return CorpusSummaryResponse(
        corpus_type=corpus.corpus_type.value,
        cache_key=str(lookup.key),
        source=lookup.source.value,
        total_documents=corpus.total_documents,
        total_words=corpus.total_words,
        unique_words=len(corpus.word_list(unique=True)),
        content_version=corpus.content_version(),
        artists=sorted({doc.metadata.artist for doc in corpus.documents}),
    )


@router.delete(
    "/cache/{corpus_type}",
    response_model=InvalidateResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Invalidate a cached corpus",
)
async def invalidate_corpus(
    corpus_type: str,
    cache: CacheDep,
    filters: FiltersDep,
    all_variants: bool = False,
) -> InvalidateResponse:
    """Drop one key, or with ``all_variants=true`` every key of the type."""
    if all_variants:
        removed = await cache.invalidate_type(corpus_type)
        return InvalidateResponse(corpus_type=corpus_type.lower(), removed=removed)

    key = encode_cache_key(corpus_type, filters)
    removed = await cache.invalidate(corpus_type, filters)
    return InvalidateResponse(
        corpus_type=key.corpus_type.value,
        cache_key=str(key),
        removed=int(removed),
    )


@router.delete("/cache", response_model=ClearResponse, summary="Clear every cache tier")
async def clear_cache(cache: CacheDep) -> ClearResponse:
    return ClearResponse(removed=await cache.clear())


@router.get("/cache/stats", response_model=CacheStatsResponse, summary="Cache statistics")
async def cache_stats(cache: CacheDep) -> CacheStatsResponse:
    return CacheStatsResponse(**await cache.stats())


# ---------------------------------------------------------------------------
# Annotation endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/annotations",
    response_model=AnnotationStartedResponse,
    status_code=202,
    responses={404: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
    summary="Start a semantic annotation run",
)
async def start_annotation(
    body: AnnotationRequest,
    background_tasks: BackgroundTasks,
    cache: CacheDep,
    pipeline: PipelineDep,
    tracker: TrackerDep,
) -> AnnotationStartedResponse:
    """Resolve the word list, then run the pipeline in the background.

    Progress is available at ``/annotations/{run_id}/status`` and over the
    ``/ws/progress/{run_id}`` websocket.
    """
    if body.words is not None:
        words = body.words
    else:
        lookup = await cache.get(body.corpus_type or "", body.filters)
        words = lookup.corpus.word_list(unique=body.unique)
        if not words:
            raise HTTPException(status_code=422, detail="Selected corpus has no words")

    run_id = uuid.uuid4().hex
    tracker.start_run(run_id)
    background_tasks.add_task(_run_annotation, pipeline, words, body.context, run_id)
    _logger.info("annotation_run_queued", run_id=run_id, words=len(words))

    return AnnotationStartedResponse(
        run_id=run_id,
        status="annotation_started",
        total_words=len(words),
        message="Annotation run started.",
    )


@router.get(
    "/annotations/{run_id}/status",
    response_model=AnnotationStatusResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Get annotation run progress",
)
async def get_annotation_status(run_id: str, tracker: TrackerDep) -> AnnotationStatusResponse:
    if not tracker.has_run(run_id):
        raise HTTPException(status_code=404, detail=f"Unknown annotation run: {run_id}")

    status = tracker.get_status(run_id)
    result = tracker.get_result(run_id)
    if result is None:
        return AnnotationStatusResponse(run_id=run_id, **status)
    return AnnotationStatusResponse(
        run_id=run_id,
        **status,
        annotations=result.annotations,
        failed_chunks=result.failed_chunks,
        attempt_log=result.attempt_log,
        domains_found=result.domains_found,
        classified_words=result.classified_words,
    )


# ---------------------------------------------------------------------------
# System endpoints
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(request: Request) -> HealthResponse:
    providers: dict[str, Any] = {}
    if hasattr(request.app.state, "provider_registry"):
        providers = dict(request.app.state.provider_registry)

    status = "healthy" if providers.get("corpus_source") and providers.get("annotation") else "degraded"
    return HealthResponse(status=status, version="0.1.0", providers=providers)
