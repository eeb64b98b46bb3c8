"""In-memory cache tier using cachetools.TTLCache.

Fast, process-local tier consulted before the durable store.  Holds parsed
:class:`~src.models.corpus.Corpus` objects directly, so a hit hands every
caller the very same (frozen) object.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any

import structlog
from cachetools import TTLCache

from src.interfaces.cache_provider import ICacheProvider
from src.models.cache import CacheEntry, CacheKey, CacheSource
from src.models.corpus import Corpus, CorpusType

logger = structlog.get_logger(logger_name=__name__)


class MemoryCacheProvider(ICacheProvider):
    """In-memory TTL cache backed by ``cachetools.TTLCache``.

    Parameters
    ----------
    max_size:
        Maximum number of corpora held before the least-recently-used entry
        is evicted.  Corpora are large, so this is deliberately small.
    ttl:
        Time-to-live in seconds.  An entry is served only while
        ``now - loaded_at < ttl``.
    clock:
        Wall-clock source in seconds.  Shared with ``TTLCache`` so tests can
        move time forward without sleeping.
    """

    def __init__(
        self,
        max_size: int = 16,
        ttl: float = 1800,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._ttl = ttl
        self._clock = clock
        self._cache: TTLCache[CacheKey, CacheEntry] = TTLCache(
            maxsize=max_size, ttl=ttl, timer=clock
        )

    @property
    def ttl(self) -> float:
        return self._ttl

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: CacheKey) -> CacheEntry | None:
        """Return the live entry for *key*, or ``None`` if missing/expired."""
        entry = self._cache.get(key)
        if entry is not None and not entry.is_fresh(self._clock(), self._ttl):
            self._cache.pop(key, None)
            entry = None
        if entry is None:
            logger.debug("memory_cache_miss", key=str(key))
        else:
            logger.debug("memory_cache_hit", key=str(key))
        return entry

    async def set(
        self, key: CacheKey, corpus: Corpus, loaded_at: float | None = None
    ) -> CacheEntry:
        entry = CacheEntry(
            key=key,
            payload=corpus,
            tier=CacheSource.MEMORY,
            loaded_at=self._clock() if loaded_at is None else loaded_at,
        )
        self._cache[key] = entry
        logger.debug("memory_cache_set", key=str(key), documents=corpus.total_documents)
        return entry

    async def delete(self, key: CacheKey) -> bool:
        removed = self._cache.pop(key, None) is not None
        logger.debug("memory_cache_delete", key=str(key), removed=removed)
        return removed

    async def delete_type(self, corpus_type: CorpusType) -> int:
        doomed = [key for key in list(self._cache.keys()) if key.corpus_type is corpus_type]
        for key in doomed:
            self._cache.pop(key, None)
        return len(doomed)

    async def clear(self) -> int:
        self._cache.expire()
        count = len(self._cache)
        self._cache.clear()
        return count

    def get_provider_name(self) -> str:
        return "memory"

    async def describe(self) -> dict[str, Any]:
        self._cache.expire()
        return {
            "provider": self.get_provider_name(),
            "entries": len(self._cache),
            "max_entries": int(self._cache.maxsize),
            "ttl_seconds": self._ttl,
            "keys": sorted(str(key) for key in self._cache.keys()),
        }
