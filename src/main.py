"""corpuslab FastAPI application entry point.

Wires together providers, services and routes via dependency injection.
Loads configuration from ``.env`` and ``config/config.yaml`` and configures
structured logging.

``_build_all`` is also used by the CLI (``python -m src.cli``), so the web
server and the command line share one construction path.
"""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import router as api_router
from src.api.websocket import websocket_progress
from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.corpus_source import ICorpusSource
from src.pipeline.annotation_pipeline import AnnotationPipeline
from src.pipeline.chunk_scheduler import ChunkScheduler
from src.pipeline.progress_tracker import ProgressTracker
from src.pipeline.retry_policy import RetryPolicy
from src.providers.annotation.http_annotation_provider import HttpAnnotationProvider
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.providers.cache.sqlite_durable_cache import SQLiteDurableCache
from src.providers.corpus.file_corpus_source import FileCorpusSource
from src.providers.corpus.http_corpus_source import HttpCorpusSource
from src.providers.invalidation.local_broadcast import BroadcastHub, LocalBroadcastBus
from src.services.corpus_cache import TieredCorpusCache
from src.services.corpus_loader import CorpusLoader
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()
config = load_config(settings=settings)

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


def _build_corpus_source(app_settings: Settings, http_client: httpx.AsyncClient) -> ICorpusSource:
    """Local directory when ``CORPUS_SOURCE_DIR`` is set, HTTP otherwise."""
    if app_settings.corpus_source_dir:
        return FileCorpusSource(app_settings.corpus_source_dir)
    return HttpCorpusSource(http_client=http_client, base_url=app_settings.corpus_source_url)


def _build_all(
    app_settings: Settings,
    app_config: dict[str, Any] | None = None,
    hub: BroadcastHub | None = None,
) -> dict[str, Any]:
    """Construct every provider and service instance.

    Returns a flat dict of named components to be stored on ``app.state``.
    Passing a shared *hub* connects this context's cache to sibling
    contexts for invalidation.
    """
    app_config = app_config or {}
    annotation_config = app_config.get("annotation", {})
    context_id = uuid.uuid4().hex[:8]

    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0)
    hub = hub or BroadcastHub()
    invalidation_bus = LocalBroadcastBus(hub, context_id=context_id)

    # -- Tiered corpus cache --
    corpus_source = _build_corpus_source(app_settings, http_client)
    memory_cache = MemoryCacheProvider(
        max_size=app_settings.cache_memory_max_entries,
        ttl=app_settings.cache_ttl_seconds,
    )
    durable_cache = SQLiteDurableCache(
        db_path=app_settings.cache_db_path,
        ttl_seconds=app_settings.cache_ttl_seconds,
        filtered_ttl_seconds=app_settings.cache_filtered_ttl_seconds,
        max_entry_bytes=app_settings.cache_max_entry_bytes,
        compression_threshold_bytes=app_settings.cache_compression_threshold_bytes,
        max_total_bytes=app_settings.cache_max_total_bytes,
        write_attempts=app_settings.cache_write_max_attempts,
        write_retry_delay=app_settings.cache_write_retry_delay_seconds,
    )
    corpus_cache = TieredCorpusCache(
        memory=memory_cache,
        durable=durable_cache,
        loader=CorpusLoader(corpus_source),
        bus=invalidation_bus,
        context_id=context_id,
    )

    # -- Annotation pipeline --
    annotation_provider = HttpAnnotationProvider(
        http_client=http_client,
        service_url=app_settings.annotation_service_url,
        api_key=app_settings.annotation_api_key,
        timeout=app_settings.annotation_timeout_seconds,
        malformed_warn_ratio=app_settings.annotation_malformed_warn_ratio,
    )
    progress_tracker = ProgressTracker(
        max_runs=app_settings.annotation_history_max_runs,
        retention_seconds=app_settings.annotation_history_retention_seconds,
    )
    annotation_pipeline = AnnotationPipeline(
        provider=annotation_provider,
        scheduler=ChunkScheduler(app_settings.annotation_chunk_size),
        retry_policy=RetryPolicy(
            max_attempts=app_settings.annotation_max_attempts,
            base_delay=app_settings.annotation_base_delay_seconds,
        ),
        inter_chunk_delay=app_settings.annotation_inter_chunk_delay_seconds,
        default_context=annotation_config.get("context"),
        progress_tracker=progress_tracker,
    )

    # -- Provider registry for /health --
    provider_registry: dict[str, Any] = {
        "corpus_source": corpus_source.get_provider_name(),
        "annotation": bool(app_settings.annotation_service_url),
        "durable_cache": str(durable_cache.db_path),
        "sources": app_settings.get_available_sources(),
    }

    return {
        "http_client": http_client,
        "invalidation_bus": invalidation_bus,
        "durable_cache": durable_cache,
        "corpus_cache": corpus_cache,
        "annotation_pipeline": annotation_pipeline,
        "progress_tracker": progress_tracker,
        "provider_registry": provider_registry,
        "context_id": context_id,
    }


async def startup_components(components: dict[str, Any]) -> None:
    """Initialise the durable tier (schema + expired-row cleanup) and the cache."""
    await components["durable_cache"].initialize()
    await components["corpus_cache"].start()


async def shutdown_components(components: dict[str, Any]) -> None:
    """Join background cache writes, leave the bus, close the HTTP client."""
    await components["corpus_cache"].aclose()
    components["invalidation_bus"].close()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings, config)

    for key, value in components.items():
        setattr(application.state, key, value)

    await startup_components(components)

    _logger.info(
        "app_startup",
        version="0.1.0",
        environment=settings.app_env,
        context_id=components["context_id"],
        corpus_source=components["provider_registry"]["corpus_source"],
    )

    yield

    await shutdown_components(components)
    _logger.info("app_shutdown", message="cache drained, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="corpuslab API",
        version="0.1.0",
        description=(
            "Load regional song-lyric corpora through a memory/durable/network "
            "cache and annotate their words with semantic domains."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application, allowed_origins=config.get("app", {}).get("cors_origins"))

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/progress/{run_id}")
    async def ws_progress(websocket: WebSocket, run_id: str) -> None:
        await websocket_progress(websocket, run_id)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
