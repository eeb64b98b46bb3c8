"""Tiered corpus cache service.

Read path for a key, each step a fallback on a miss of the previous one:

1. memory tier; a live entry is returned immediately;
2. durable tier; a live, intact entry is written through to memory,
   keeping its original ``loaded_at`` so it expires on the same schedule;
3. network: fetch and parse via :class:`CorpusLoader`, populate memory, and
   schedule a best-effort durable write as a tracked background task.

Steps 2 and 3 run inside the :class:`LoadCoordinator`, so concurrent callers
for one key share a single durable read and a single network fetch.  A
filtered corpus is derived from the (cached) full corpus of its type rather
than fetched again.

Invalidation drops the key from both tiers and publishes an event on the
bus; events received from sibling contexts drop the same state locally
without being re-published.  A load that was in flight when its key was
invalidated still answers its callers but does not repopulate the tiers;
the next caller for that key waits for it to settle and then loads afresh.

The service owns its background writes: :meth:`drain` joins them and
:meth:`aclose` must be awaited at shutdown.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Callable, Mapping
from dataclasses import asdict
from functools import partial
from typing import Any

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.invalidation_bus import IInvalidationBus
from src.models.cache import (
    CacheKey,
    CacheLookup,
    CacheMetrics,
    CacheSource,
    CorpusFilters,
    InvalidationEvent,
)
from src.models.corpus import Corpus, CorpusType
from src.services.cache_key import (
    coerce_filters,
    decode_cache_key,
    encode_cache_key,
    resolve_corpus_type,
)
from src.services.corpus_loader import CorpusLoader
from src.services.corpus_parser import filter_corpus, validate_corpus_integrity
from src.services.load_coordinator import LoadCoordinator
from src.utils.errors import CorpusLabError, DurableWriteError
from src.utils.logging import get_logger, log_context

FilterInput = CorpusFilters | Mapping[str, Any] | None


class TieredCorpusCache:
    """Memory → durable → network corpus cache for one execution context.

    Parameters
    ----------
    memory:
        The fast, process-local tier.
    durable:
        The persistent tier, or ``None`` for a memory-only cache.
    loader:
        Network loader used when both tiers miss.
    coordinator:
        Single-flight executor; a fresh one is created when omitted.
    bus:
        Cross-context invalidation bus, or ``None`` for a lone context.
    context_id:
        Identifier stamped on published events.  Random when omitted.
    """

    def __init__(
        self,
        memory: ICacheProvider,
        durable: ICacheProvider | None,
        loader: CorpusLoader,
        coordinator: LoadCoordinator | None = None,
        bus: IInvalidationBus | None = None,
        context_id: str | None = None,
    ) -> None:
        self._memory = memory
        self._durable = durable
        self._loader = loader
        self._coordinator = coordinator or LoadCoordinator()
        self._bus = bus
        self._context_id = context_id or uuid.uuid4().hex[:8]
        self._metrics = CacheMetrics()
        self._pending_writes: dict[asyncio.Task, CacheKey] = {}
        # Bumped on every invalidation; a load only populates the tiers when
        # the stamp it captured at start is still current.
        self._generation = 0
        self._type_generations: dict[CorpusType, int] = {}
        self._key_generations: dict[CacheKey, int] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    @property
    def context_id(self) -> str:
        return self._context_id

    @property
    def metrics(self) -> CacheMetrics:
        return self._metrics

    @property
    def pending_writes(self) -> int:
        return len(self._pending_writes)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to the invalidation bus.  Idempotent."""
        if self._bus is not None and self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(self._on_remote_event)
        self._logger.info(
            "corpus_cache_started",
            context_id=self._context_id,
            memory=self._memory.get_provider_name(),
            durable=self._durable.get_provider_name() if self._durable else None,
        )

    async def drain(self) -> None:
        """Wait until every background durable write has finished."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes), return_exceptions=True)

    async def aclose(self) -> None:
        """Unsubscribe from the bus and join outstanding durable writes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        pending = len(self._pending_writes)
        await self.drain()
        self._logger.info("corpus_cache_closed", context_id=self._context_id, joined_writes=pending)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    async def get(self, corpus_type: CorpusType | str, filters: FilterInput = None) -> CacheLookup:
        """Return the corpus for *corpus_type* / *filters* and the tier that served it.

        Raises
        ------
        UnsupportedCorpusError
            Before any tier is consulted.
        TransportError
            When the network load fails.  Not retried.
        CorpusLoadError
            When the fetched dump cannot be parsed.  Tiers are left untouched.
        """
        key = encode_cache_key(corpus_type, filters)

        entry = await self._memory.get(key)
        if entry is not None:
            self._metrics.record(str(key), CacheSource.MEMORY)
            self._logger.debug("cache_hit", key=str(key), tier=CacheSource.MEMORY.value)
            return CacheLookup(key=key, corpus=entry.payload, source=CacheSource.MEMORY)

        joined = self._coordinator.is_in_flight(key)
        try:
            with log_context(cache_key=str(key)):
                corpus, source = await self._coordinator.run(
                    key, partial(self._load_slow, key, coerce_filters(filters))
                )
        except CorpusLabError as exc:
            if not joined:
                self._metrics.load_errors += 1
            self._logger.warning("cache_load_failed", key=str(key), error=str(exc), joined=joined)
            raise

        if joined:
            self._metrics.joined_loads += 1
        else:
            self._metrics.record(str(key), source)
        return CacheLookup(key=key, corpus=corpus, source=source)

    async def _load_slow(
        self, key: CacheKey, filters: CorpusFilters | None
    ) -> tuple[Corpus, CacheSource]:
        stamp = self._stamp(key)

        if self._durable is not None:
            entry = await self._durable.get(key)
            if entry is not None and validate_corpus_integrity(entry.payload):
                if stamp == self._stamp(key):
                    await self._memory.set(key, entry.payload, loaded_at=entry.loaded_at)
                self._logger.debug("cache_hit", key=str(key), tier=CacheSource.DURABLE.value)
                return entry.payload, CacheSource.DURABLE
            if entry is not None:
                self._logger.warning("durable_entry_failed_integrity", key=str(key))
                await self._durable.delete(key)

        if key.kind == "filtered":
            full = await self.get(key.corpus_type)
            corpus = filter_corpus(full.corpus, filters)
        else:
            corpus = await self._loader.load(key.corpus_type)

        if stamp == self._stamp(key):
            stored = await self._memory.set(key, corpus)
            self._schedule_durable_write(key, corpus, stored.loaded_at)
        else:
            self._logger.info("load_result_not_cached", key=str(key), reason="invalidated")
        self._logger.info(
            "cache_miss_loaded",
            key=str(key),
            documents=corpus.total_documents,
            words=corpus.total_words,
        )
        return corpus, CacheSource.NETWORK

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate(self, corpus_type: CorpusType | str, filters: FilterInput = None) -> bool:
        """Drop one key from both tiers and tell sibling contexts.

        Returns ``True`` when either tier held the key.
        """
        key = encode_cache_key(corpus_type, filters)
        removed = await self._drop_key(key)
        self._metrics.invalidations += 1
        self._logger.info("cache_invalidated", key=str(key), removed=removed)
        await self._publish(
            InvalidationEvent(
                action="invalidate",
                origin=self._context_id,
                key=str(key),
                corpus_type=key.corpus_type,
            )
        )
        return removed

    async def invalidate_type(self, corpus_type: CorpusType | str) -> int:
        """Drop every key (full and filtered) of one corpus type."""
        resolved = resolve_corpus_type(corpus_type)
        removed = await self._drop_type(resolved)
        self._metrics.invalidations += 1
        self._logger.info("cache_type_invalidated", corpus_type=resolved.value, removed=removed)
        await self._publish(
            InvalidationEvent(
                action="invalidate_type",
                origin=self._context_id,
                corpus_type=resolved,
            )
        )
        return removed

    async def clear(self) -> int:
        """Empty both tiers everywhere.  Returns the number of entries removed here."""
        removed = await self._drop_all()
        self._metrics.invalidations += 1
        self._logger.info("cache_cleared", removed=removed)
        await self._publish(InvalidationEvent(action="clear", origin=self._context_id))
        return removed

    async def _on_remote_event(self, event: InvalidationEvent) -> None:
        if event.origin == self._context_id:
            return
        self._logger.info(
            "remote_invalidation_received",
            context_id=self._context_id,
            origin=event.origin,
            action=event.action,
            key=event.key,
        )
        if event.action == "clear":
            await self._drop_all()
        elif event.action == "invalidate_type" and event.corpus_type is not None:
            await self._drop_type(event.corpus_type)
        elif event.key is not None:
            await self._drop_key(decode_cache_key(event.key))

    async def _drop_key(self, key: CacheKey) -> bool:
        self._key_generations[key] = self._key_generations.get(key, 0) + 1
        self._coordinator.supersede(lambda k: k == key)
        await self._await_writes(lambda k: k == key)
        removed = await self._memory.delete(key)
        if self._durable is not None:
            removed = await self._durable.delete(key) or removed
        return removed

    async def _drop_type(self, corpus_type: CorpusType) -> int:
        self._type_generations[corpus_type] = self._type_generations.get(corpus_type, 0) + 1
        self._coordinator.supersede(lambda k: k.corpus_type is corpus_type)
        await self._await_writes(lambda k: k.corpus_type is corpus_type)
        removed = await self._memory.delete_type(corpus_type)
        if self._durable is not None:
            removed += await self._durable.delete_type(corpus_type)
        return removed

    async def _drop_all(self) -> int:
        self._generation += 1
        self._coordinator.supersede(lambda _k: True)
        await self.drain()
        removed = await self._memory.clear()
        if self._durable is not None:
            removed += await self._durable.clear()
        return removed

    async def _publish(self, event: InvalidationEvent) -> None:
        if self._bus is not None:
            await self._bus.publish(event)

    def _stamp(self, key: CacheKey) -> tuple[int, int, int]:
        return (
            self._generation,
            self._type_generations.get(key.corpus_type, 0),
            self._key_generations.get(key, 0),
        )

    # ------------------------------------------------------------------
    # Background durable writes
    # ------------------------------------------------------------------

    def _schedule_durable_write(self, key: CacheKey, corpus: Corpus, loaded_at: float) -> None:
        if self._durable is None:
            return
        if not validate_corpus_integrity(corpus):
            self._logger.warning("durable_write_skipped", key=str(key), reason="integrity")
            return
        task = asyncio.create_task(
            self._write_durable(key, corpus, loaded_at), name=f"durable-write:{key}"
        )
        self._pending_writes[task] = key
        task.add_done_callback(self._on_write_done)

    async def _write_durable(self, key: CacheKey, corpus: Corpus, loaded_at: float) -> None:
        if self._durable is None:
            return
        try:
            await self._durable.set(key, corpus, loaded_at=loaded_at)
        except DurableWriteError as exc:
            self._metrics.durable_write_failures += 1
            self._logger.warning("durable_write_failed", key=str(key), error=str(exc))

    def _on_write_done(self, task: asyncio.Task) -> None:
        key = self._pending_writes.pop(task, None)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._metrics.durable_write_failures += 1
            self._logger.error("durable_write_crashed", key=str(key), error=str(exc))

    async def _await_writes(self, predicate: Callable[[CacheKey], bool]) -> None:
        tasks = [task for task, key in self._pending_writes.items() if predicate(key)]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    async def stats(self) -> dict[str, Any]:
        metrics = asdict(self._metrics)
        metrics["hit_rate"] = round(self._metrics.hit_rate, 4)
        return {
            "context_id": self._context_id,
            "metrics": metrics,
            "in_flight_loads": self._coordinator.in_flight,
            "pending_writes": len(self._pending_writes),
            "memory": await self._memory.describe(),
            "durable": await self._durable.describe() if self._durable else None,
        }
