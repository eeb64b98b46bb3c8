"""Unit tests for the SQLite durable cache tier."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

from src.models.cache import CacheSource
from src.models.corpus import Corpus, CorpusType
from src.providers.cache.sqlite_durable_cache import SQLiteDurableCache
from src.services.cache_key import encode_cache_key
from src.utils.errors import DurableWriteError
from tests.conftest import FakeClock, SleepRecorder

_MINUTE = 60.0


@pytest_asyncio.fixture
async def durable(db_path: Path, clock: FakeClock) -> SQLiteDurableCache:
    cache = SQLiteDurableCache(db_path=db_path, ttl_seconds=30 * _MINUTE, clock=clock)
    await cache.initialize()
    return cache


async def _row_count(db_path: Path) -> int:
    async with aiosqlite.connect(str(db_path)) as db:
        cursor = await db.execute("SELECT COUNT(*) FROM corpus_cache")
        row = await cursor.fetchone()
    return row[0]


class TestSQLiteDurableCache:
    @pytest.mark.asyncio
    async def test_initialize_creates_parent_directory(self, durable: SQLiteDurableCache) -> None:
        assert durable.db_path.exists()

    @pytest.mark.asyncio
    async def test_round_trip_preserves_corpus(
        self, durable: SQLiteDurableCache, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await durable.set(key, gaucho_corpus)
        entry = await durable.get(key)
        assert entry is not None
        assert entry.tier is CacheSource.DURABLE
        assert entry.payload == gaucho_corpus
        assert entry.payload.total_words == 24

    @pytest.mark.asyncio
    async def test_compressed_round_trip(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        cache = SQLiteDurableCache(db_path=db_path, clock=clock, compression_threshold_bytes=10)
        await cache.initialize()
        key = encode_cache_key("gaucho")
        await cache.set(key, gaucho_corpus)

        entry = await cache.get(key)
        assert entry is not None
        assert entry.payload == gaucho_corpus
        stats = await cache.stats()
        assert stats.total_size_bytes < stats.original_size_bytes
        assert stats.compression_ratio > 0

    @pytest.mark.asyncio
    async def test_loaded_at_is_write_time(
        self, durable: SQLiteDurableCache, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        written_at = clock()
        await durable.set(key, gaucho_corpus)
        clock.advance(5 * _MINUTE)
        entry = await durable.get(key)
        assert entry is not None
        assert entry.loaded_at == written_at

    @pytest.mark.asyncio
    async def test_expired_row_is_miss_and_deleted(
        self, durable: SQLiteDurableCache, clock: FakeClock, db_path: Path, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await durable.set(key, gaucho_corpus)
        clock.advance(29 * _MINUTE)
        assert await durable.get(key) is not None
        clock.advance(2 * _MINUTE)
        assert await durable.get(key) is None
        assert await _row_count(db_path) == 0

    @pytest.mark.asyncio
    async def test_filtered_entries_use_their_own_ttl(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        cache = SQLiteDurableCache(
            db_path=db_path,
            ttl_seconds=30 * _MINUTE,
            filtered_ttl_seconds=5 * _MINUTE,
            clock=clock,
        )
        await cache.initialize()
        full = encode_cache_key("gaucho")
        filtered = encode_cache_key("gaucho", {"artists": ["Teixeirinha"]})
        await cache.set(full, gaucho_corpus)
        await cache.set(filtered, gaucho_corpus)

        clock.advance(10 * _MINUTE)
        assert await cache.get(full) is not None
        assert await cache.get(filtered) is None

    @pytest.mark.asyncio
    async def test_stale_schema_row_is_discarded(
        self, durable: SQLiteDurableCache, db_path: Path, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await durable.set(key, gaucho_corpus)
        async with aiosqlite.connect(str(db_path)) as db:
            await db.execute("UPDATE corpus_cache SET schema_version = 1")
            await db.commit()

        assert await durable.get(key) is None
        assert await _row_count(db_path) == 0

    @pytest.mark.asyncio
    async def test_corrupt_payload_is_miss(
        self, durable: SQLiteDurableCache, db_path: Path, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await durable.set(key, gaucho_corpus)
        async with aiosqlite.connect(str(db_path)) as db:
            await db.execute("UPDATE corpus_cache SET payload = ?", (b'{"corpus_type": "gau',))
            await db.commit()

        assert await durable.get(key) is None
        assert await _row_count(db_path) == 0

    @pytest.mark.asyncio
    async def test_tampered_totals_fail_validation(
        self, durable: SQLiteDurableCache, db_path: Path, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await durable.set(key, gaucho_corpus)
        tampered = gaucho_corpus.model_dump_json().replace('"total_words":24', '"total_words":99')
        async with aiosqlite.connect(str(db_path)) as db:
            await db.execute("UPDATE corpus_cache SET payload = ?", (tampered.encode(),))
            await db.commit()

        assert await durable.get(key) is None

    @pytest.mark.asyncio
    async def test_oversize_entry_raises(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        cache = SQLiteDurableCache(db_path=db_path, clock=clock, max_entry_bytes=100)
        await cache.initialize()
        with pytest.raises(DurableWriteError, match="limit"):
            await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        assert await _row_count(db_path) == 0

    @pytest.mark.asyncio
    async def test_write_to_missing_table_raises(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        cache = SQLiteDurableCache(db_path=db_path, clock=clock)
        with pytest.raises(DurableWriteError) as exc_info:
            await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        assert exc_info.value.provider_name == "sqlite_cache"

    @pytest.mark.asyncio
    async def test_read_from_missing_table_is_miss(self, db_path: Path, clock: FakeClock) -> None:
        db_path.parent.mkdir(parents=True, exist_ok=True)
        cache = SQLiteDurableCache(db_path=db_path, clock=clock)
        assert await cache.get(encode_cache_key("gaucho")) is None

    @pytest.mark.asyncio
    async def test_delete_type_and_clear(
        self, durable: SQLiteDurableCache, gaucho_corpus: Corpus
    ) -> None:
        await durable.set(encode_cache_key("gaucho"), gaucho_corpus)
        await durable.set(encode_cache_key("gaucho", {"year_start": 1960}), gaucho_corpus)
        await durable.set(encode_cache_key("nordestino"), gaucho_corpus)

        assert await durable.delete_type(CorpusType.GAUCHO) == 2
        assert await durable.get(encode_cache_key("nordestino")) is not None
        assert await durable.clear() == 1
        assert (await durable.stats()).entries == 0

    @pytest.mark.asyncio
    async def test_cleanup_expired(
        self, durable: SQLiteDurableCache, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        await durable.set(encode_cache_key("gaucho"), gaucho_corpus)
        clock.advance(20 * _MINUTE)
        await durable.set(encode_cache_key("sertanejo"), gaucho_corpus)
        clock.advance(15 * _MINUTE)

        assert await durable.cleanup_expired() == 1
        assert (await durable.stats()).entries == 1

    @pytest.mark.asyncio
    async def test_survives_new_instance(
        self, durable: SQLiteDurableCache, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await durable.set(key, gaucho_corpus)

        reopened = SQLiteDurableCache(db_path=db_path, ttl_seconds=30 * _MINUTE, clock=clock)
        await reopened.initialize()
        entry = await reopened.get(key)
        assert entry is not None
        assert entry.payload == gaucho_corpus

    @pytest.mark.asyncio
    async def test_describe(self, durable: SQLiteDurableCache, gaucho_corpus: Corpus) -> None:
        await durable.set(encode_cache_key("gaucho"), gaucho_corpus)
        info = await durable.describe()
        assert info["provider"] == "sqlite_cache"
        assert info["entries"] == 1
        assert info["path"].endswith("corpus_cache.db")

    @pytest.mark.asyncio
    async def test_set_keeps_origin_loaded_at(
        self, durable: SQLiteDurableCache, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        origin = clock()
        clock.advance(20 * _MINUTE)
        stored = await durable.set(key, gaucho_corpus, loaded_at=origin)
        assert stored.loaded_at == origin

        clock.advance(11 * _MINUTE)
        assert await durable.get(key) is None


class _FlakyDurable(SQLiteDurableCache):
    """Durable tier whose first row writes fail with scripted errors."""

    def __init__(self, *args, failures: list[Exception], **kwargs) -> None:  # noqa: ANN002, ANN003
        super().__init__(*args, **kwargs)
        self.failures = list(failures)
        self.writes = 0

    async def _write_row(self, row):  # noqa: ANN001, ANN202
        self.writes += 1
        if self.failures:
            raise self.failures.pop(0)
        await super()._write_row(row)


class TestWriteRetry:
    @pytest.mark.asyncio
    async def test_locked_database_is_retried_with_backoff(
        self,
        db_path: Path,
        clock: FakeClock,
        sleep_recorder: SleepRecorder,
        gaucho_corpus: Corpus,
    ) -> None:
        locked = aiosqlite.OperationalError("database is locked")
        cache = _FlakyDurable(
            db_path=db_path, clock=clock, sleep=sleep_recorder, failures=[locked, locked]
        )
        await cache.initialize()

        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)

        assert cache.writes == 3
        assert sleep_recorder.delays == [0.1, 0.2]
        assert await cache.get(encode_cache_key("gaucho")) is not None

    @pytest.mark.asyncio
    async def test_gives_up_after_last_attempt(
        self,
        db_path: Path,
        clock: FakeClock,
        sleep_recorder: SleepRecorder,
        gaucho_corpus: Corpus,
    ) -> None:
        busy = aiosqlite.OperationalError("database is busy")
        cache = _FlakyDurable(
            db_path=db_path, clock=clock, sleep=sleep_recorder, failures=[busy] * 3
        )
        await cache.initialize()

        with pytest.raises(DurableWriteError, match="3 attempt"):
            await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        assert cache.writes == 3
        assert sleep_recorder.delays == [0.1, 0.2]
        assert await _row_count(db_path) == 0

    @pytest.mark.asyncio
    async def test_other_storage_errors_are_not_retried(
        self,
        db_path: Path,
        clock: FakeClock,
        sleep_recorder: SleepRecorder,
        gaucho_corpus: Corpus,
    ) -> None:
        full = aiosqlite.OperationalError("database or disk is full")
        cache = _FlakyDurable(db_path=db_path, clock=clock, sleep=sleep_recorder, failures=[full])
        await cache.initialize()

        with pytest.raises(DurableWriteError):
            await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        assert cache.writes == 1
        assert sleep_recorder.delays == []


class TestSizeBudget:
    @staticmethod
    async def _entry_size(db_path: Path, clock: FakeClock, corpus: Corpus) -> int:
        sizing_path = db_path.with_name("sizing.db")
        sizing = SQLiteDurableCache(db_path=sizing_path, clock=clock)
        await sizing.initialize()
        await sizing.set(encode_cache_key("gaucho"), corpus)
        return (await sizing.stats()).total_size_bytes

    @pytest.mark.asyncio
    async def test_oldest_entry_is_evicted_to_make_room(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        size = await self._entry_size(db_path, clock, gaucho_corpus)
        cache = SQLiteDurableCache(db_path=db_path, clock=clock, max_total_bytes=size * 2 + size // 2)
        await cache.initialize()

        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        clock.advance(_MINUTE)
        await cache.set(encode_cache_key("nordestino"), gaucho_corpus)
        clock.advance(_MINUTE)
        await cache.set(encode_cache_key("sertanejo"), gaucho_corpus)

        assert await cache.get(encode_cache_key("gaucho")) is None
        assert await cache.get(encode_cache_key("nordestino")) is not None
        assert await cache.get(encode_cache_key("sertanejo")) is not None
        assert (await cache.stats()).total_size_bytes <= size * 2 + size // 2

    @pytest.mark.asyncio
    async def test_expired_rows_are_purged_before_live_ones(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        size = await self._entry_size(db_path, clock, gaucho_corpus)
        cache = SQLiteDurableCache(
            db_path=db_path,
            ttl_seconds=30 * _MINUTE,
            clock=clock,
            max_total_bytes=size * 2 + size // 2,
        )
        await cache.initialize()

        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        clock.advance(20 * _MINUTE)
        await cache.set(encode_cache_key("nordestino"), gaucho_corpus)
        clock.advance(15 * _MINUTE)
        await cache.set(encode_cache_key("sertanejo"), gaucho_corpus)

        assert await _row_count(db_path) == 2
        assert await cache.get(encode_cache_key("nordestino")) is not None
        assert await cache.get(encode_cache_key("sertanejo")) is not None

    @pytest.mark.asyncio
    async def test_replacing_a_key_does_not_count_its_old_row(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        size = await self._entry_size(db_path, clock, gaucho_corpus)
        cache = SQLiteDurableCache(db_path=db_path, clock=clock, max_total_bytes=size * 2 + size // 2)
        await cache.initialize()

        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        await cache.set(encode_cache_key("nordestino"), gaucho_corpus)
        clock.advance(_MINUTE)
        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)

        assert await _row_count(db_path) == 2

    @pytest.mark.asyncio
    async def test_entry_larger_than_budget_is_refused(
        self, db_path: Path, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        cache = SQLiteDurableCache(db_path=db_path, clock=clock, max_total_bytes=64)
        await cache.initialize()
        with pytest.raises(DurableWriteError, match="budget"):
            await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        assert await _row_count(db_path) == 0
