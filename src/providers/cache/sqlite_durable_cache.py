"""SQLite-backed durable cache tier.

Survives process restarts.  Each row stores one corpus serialised as JSON,
zlib-compressed when larger than the compression threshold, next to the
metadata needed to decide whether the row can still be trusted:

- ``schema_version``: rows written by an older layout are discarded on read;
- ``content_version``: fingerprint of the corpus content, for diagnostics;
- ``expires_at``: absolute expiry, checked lazily on every read.

The file is kept under a total size budget: before a write that would
overflow it, expired rows are purged and then the oldest rows are evicted.
A write that hits a locked or busy database is retried with exponential
backoff; any other storage error fails at once.

Uses ``aiosqlite`` with one connection per operation.
"""

from __future__ import annotations

import asyncio
import time
import zlib
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite
import structlog
from pydantic import ValidationError as PydanticValidationError

from src.interfaces.cache_provider import ICacheProvider
from src.models.cache import CacheEntry, CacheKey, CacheSource, DurableCacheStats
from src.models.corpus import Corpus, CorpusType
from src.utils.errors import DurableWriteError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/corpus_cache.db")
_SCHEMA_VERSION = 2

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS corpus_cache (
    cache_key           TEXT    PRIMARY KEY,
    corpus_type         TEXT    NOT NULL,
    kind                TEXT    NOT NULL,
    schema_version      INTEGER NOT NULL,
    content_version     TEXT    NOT NULL,
    is_compressed       INTEGER NOT NULL DEFAULT 0,
    payload             BLOB    NOT NULL,
    cached_at           REAL    NOT NULL,
    expires_at          REAL    NOT NULL,
    size_bytes          INTEGER NOT NULL,
    original_size_bytes INTEGER NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_corpus_cache_type ON corpus_cache(corpus_type);",
    "CREATE INDEX IF NOT EXISTS idx_corpus_cache_expires ON corpus_cache(expires_at);",
]

_UPSERT_SQL = """\
INSERT OR REPLACE INTO corpus_cache (
    cache_key, corpus_type, kind, schema_version, content_version,
    is_compressed, payload, cached_at, expires_at, size_bytes, original_size_bytes
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
"""

_TRANSIENT_MARKERS = ("locked", "busy")

_SELECT_SQL = """\
SELECT schema_version, content_version, is_compressed, payload, cached_at, expires_at
FROM corpus_cache
WHERE cache_key = ?;
"""


def _to_datetime(timestamp: float | None) -> datetime | None:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)  # noqa: UP017


class SQLiteDurableCache(ICacheProvider):
    """Durable corpus tier persisted in a local SQLite file.

    Parameters
    ----------
    db_path:
        Location of the SQLite database file; parent directories are created.
    ttl_seconds:
        Lifetime of full-corpus entries.
    filtered_ttl_seconds:
        Lifetime of filtered sub-corpus entries.  Defaults to *ttl_seconds*.
    clock:
        Wall-clock source in seconds since the epoch.
    max_entry_bytes:
        Entries whose serialised size exceeds this are refused with
        :class:`DurableWriteError`.
    compression_threshold_bytes:
        Serialised payloads larger than this are zlib-compressed.
    max_total_bytes:
        Budget for the stored payloads of all rows together.
    write_attempts:
        Attempts per write when the database reports it is locked or busy.
    write_retry_delay:
        Backoff after the first failed attempt, doubled after each further one.
    sleep:
        Awaitable sleep used between write attempts.
    """

    def __init__(
        self,
        db_path: str | Path = _DEFAULT_DB_PATH,
        ttl_seconds: float = 1800,
        filtered_ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
        max_entry_bytes: int = 50 * 1024 * 1024,
        compression_threshold_bytes: int = 50 * 1024,
        max_total_bytes: int = 200 * 1024 * 1024,
        write_attempts: int = 3,
        write_retry_delay: float = 0.1,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._db_path = Path(db_path)
        self._ttl = ttl_seconds
        self._filtered_ttl = ttl_seconds if filtered_ttl_seconds is None else filtered_ttl_seconds
        self._clock = clock
        self._max_entry_bytes = max_entry_bytes
        self._compression_threshold = compression_threshold_bytes
        self._max_total_bytes = max_total_bytes
        self._write_attempts = max(1, write_attempts)
        self._write_retry_delay = write_retry_delay
        self._sleep = sleep

    @property
    def db_path(self) -> Path:
        return self._db_path

    def ttl_for(self, key: CacheKey) -> float:
        return self._filtered_ttl if key.kind == "filtered" else self._ttl

    async def initialize(self) -> None:
        """Create the table and indices, then purge rows that already expired."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_CREATE_TABLE_SQL)
            for idx_sql in _CREATE_INDICES_SQL:
                await db.execute(idx_sql)
            await db.commit()
        removed = await self.cleanup_expired()
        logger.info(
            "durable_cache_initialized",
            path=str(self._db_path),
            schema_version=_SCHEMA_VERSION,
            expired_removed=removed,
        )

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: CacheKey) -> CacheEntry | None:
        """Return the stored entry, or ``None`` when absent, expired or unreadable.

        Stale-schema, expired and corrupt rows are deleted as a side effect.
        A failing database is logged and reported as a miss so the caller
        can fall through to the network.
        """
        key_str = str(key)
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_SELECT_SQL, (key_str,))
                row = await cursor.fetchone()
        except (aiosqlite.Error, OSError) as exc:
            logger.warning("durable_read_failed", key=key_str, error=str(exc))
            return None

        if row is None:
            return None

        schema_version, content_version, is_compressed, payload, cached_at, expires_at = row
        if schema_version != _SCHEMA_VERSION:
            logger.info(
                "durable_entry_stale_schema",
                key=key_str,
                found=schema_version,
                expected=_SCHEMA_VERSION,
            )
            await self._discard(key_str)
            return None

        if self._clock() >= expires_at:
            logger.debug("durable_entry_expired", key=key_str)
            await self._discard(key_str)
            return None

        try:
            raw = zlib.decompress(payload) if is_compressed else bytes(payload)
            corpus = Corpus.model_validate_json(raw)
        except (zlib.error, PydanticValidationError, UnicodeDecodeError) as exc:
            logger.warning("durable_entry_corrupt", key=key_str, error=str(exc))
            await self._discard(key_str)
            return None

        logger.debug("durable_cache_hit", key=key_str, content_version=content_version)
        return CacheEntry(
            key=key,
            payload=corpus,
            tier=CacheSource.DURABLE,
            loaded_at=cached_at,
        )

    async def set(
        self, key: CacheKey, corpus: Corpus, loaded_at: float | None = None
    ) -> CacheEntry:
        """Persist *corpus*, expiring one TTL after *loaded_at* (default: now).

        Raises
        ------
        DurableWriteError
            When the entry is too large, does not fit the total budget, or the
            database rejects the write (after retries, if it was locked).
        """
        key_str = str(key)
        raw = corpus.model_dump_json().encode("utf-8")
        original_size = len(raw)
        if original_size > self._max_entry_bytes:
            raise DurableWriteError(
                f"Entry {key_str} is {original_size} bytes, over the "
                f"{self._max_entry_bytes}-byte limit",
                provider_name=self.get_provider_name(),
            )

        is_compressed = original_size > self._compression_threshold
        payload = zlib.compress(raw) if is_compressed else raw
        if len(payload) > self._max_total_bytes:
            raise DurableWriteError(
                f"Entry {key_str} is {len(payload)} bytes, over the "
                f"{self._max_total_bytes}-byte cache budget",
                provider_name=self.get_provider_name(),
            )
        stamped_at = self._clock() if loaded_at is None else loaded_at
        row = (
            key_str,
            key.corpus_type.value,
            key.kind,
            _SCHEMA_VERSION,
            corpus.content_version(),
            int(is_compressed),
            payload,
            stamped_at,
            stamped_at + self.ttl_for(key),
            len(payload),
            original_size,
        )

        for attempt in range(1, self._write_attempts + 1):
            try:
                await self._ensure_capacity(key_str, len(payload))
                await self._write_row(row)
                break
            except aiosqlite.OperationalError as exc:
                transient = any(marker in str(exc).lower() for marker in _TRANSIENT_MARKERS)
                if not transient or attempt == self._write_attempts:
                    raise DurableWriteError(
                        f"Failed to persist {key_str} after {attempt} attempt(s): {exc}",
                        provider_name=self.get_provider_name(),
                    ) from exc
                backoff = self._write_retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    "durable_write_retry",
                    key=key_str,
                    attempt=attempt,
                    error=str(exc),
                    backoff_s=backoff,
                )
                await self._sleep(backoff)
            except (aiosqlite.Error, OSError) as exc:
                raise DurableWriteError(
                    f"Failed to persist {key_str}: {exc}",
                    provider_name=self.get_provider_name(),
                ) from exc

        logger.debug(
            "durable_cache_set",
            key=key_str,
            size_bytes=len(payload),
            original_size_bytes=original_size,
            compressed=is_compressed,
        )
        return CacheEntry(key=key, payload=corpus, tier=CacheSource.DURABLE, loaded_at=stamped_at)

    async def _write_row(self, row: tuple[Any, ...]) -> None:
        async with aiosqlite.connect(str(self._db_path)) as db:
            await db.execute(_UPSERT_SQL, row)
            await db.commit()

    async def _ensure_capacity(self, key_str: str, needed: int) -> None:
        """Make room for *needed* bytes under *key_str* within the total budget.

        Expired rows go first; if that is not enough, the oldest rows are
        evicted one at a time.  The row being replaced never counts.
        """
        if await self._used_bytes(key_str) + needed <= self._max_total_bytes:
            return
        expired = await self.cleanup_expired()
        evicted = 0
        async with aiosqlite.connect(str(self._db_path)) as db:
            while True:
                cursor = await db.execute(
                    "SELECT COALESCE(SUM(size_bytes), 0) FROM corpus_cache WHERE cache_key != ?",
                    (key_str,),
                )
                (used,) = await cursor.fetchone()
                if used + needed <= self._max_total_bytes:
                    break
                cursor = await db.execute(
                    "SELECT cache_key FROM corpus_cache WHERE cache_key != ? "
                    "ORDER BY cached_at ASC LIMIT 1",
                    (key_str,),
                )
                oldest = await cursor.fetchone()
                if oldest is None:
                    break
                await db.execute("DELETE FROM corpus_cache WHERE cache_key = ?", (oldest[0],))
                evicted += 1
                logger.info("durable_cache_evicted", key=oldest[0], reason="size_budget")
            await db.commit()
        logger.info(
            "durable_cache_capacity_freed",
            key=key_str,
            needed_bytes=needed,
            expired_removed=expired,
            evicted=evicted,
        )

    async def _used_bytes(self, exclude_key: str) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT COALESCE(SUM(size_bytes), 0) FROM corpus_cache WHERE cache_key != ?",
                (exclude_key,),
            )
            (used,) = await cursor.fetchone()
        return used

    async def delete(self, key: CacheKey) -> bool:
        return await self._discard(str(key)) > 0

    async def delete_type(self, corpus_type: CorpusType) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM corpus_cache WHERE corpus_type = ?", (corpus_type.value,)
            )
            await db.commit()
            removed = cursor.rowcount
        logger.info("durable_cache_type_invalidated", corpus_type=corpus_type.value, removed=removed)
        return removed

    async def clear(self) -> int:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute("DELETE FROM corpus_cache")
            await db.commit()
            removed = cursor.rowcount
        logger.info("durable_cache_cleared", removed=removed)
        return removed

    def get_provider_name(self) -> str:
        return "sqlite_cache"

    async def describe(self) -> dict[str, Any]:
        stats = await self.stats()
        return {
            "provider": self.get_provider_name(),
            "path": str(self._db_path),
            "max_total_bytes": self._max_total_bytes,
            **stats.model_dump(mode="json"),
        }

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def cleanup_expired(self) -> int:
        """Delete every row whose expiry has passed.  Returns the count removed."""
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "DELETE FROM corpus_cache WHERE expires_at <= ? OR schema_version != ?",
                (self._clock(), _SCHEMA_VERSION),
            )
            await db.commit()
            removed = cursor.rowcount
        if removed:
            logger.info("durable_cache_cleanup", removed=removed)
        return removed

    async def stats(self) -> DurableCacheStats:
        async with aiosqlite.connect(str(self._db_path)) as db:
            cursor = await db.execute(
                "SELECT COUNT(*), COALESCE(SUM(size_bytes), 0), "
                "COALESCE(SUM(original_size_bytes), 0), MIN(cached_at), MAX(cached_at) "
                "FROM corpus_cache"
            )
            row = await cursor.fetchone()

        entries, total_size, original_size, oldest, newest = row
        ratio = round(1 - total_size / original_size, 4) if original_size else 0.0
        return DurableCacheStats(
            entries=entries,
            total_size_bytes=total_size,
            original_size_bytes=original_size,
            compression_ratio=ratio,
            oldest_entry=_to_datetime(oldest),
            newest_entry=_to_datetime(newest),
        )

    async def _discard(self, key_str: str) -> int:
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute("DELETE FROM corpus_cache WHERE cache_key = ?", (key_str,))
                await db.commit()
                return cursor.rowcount
        except (aiosqlite.Error, OSError) as exc:
            logger.warning("durable_delete_failed", key=key_str, error=str(exc))
            return 0
