"""Unit tests for the in-memory TTL cache tier."""

from __future__ import annotations

import pytest

from src.models.cache import CacheSource
from src.models.corpus import Corpus, CorpusType
from src.providers.cache.memory_cache import MemoryCacheProvider
from src.services.cache_key import encode_cache_key
from tests.conftest import FakeClock

_MINUTE = 60.0


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCacheProvider:
    return MemoryCacheProvider(max_size=4, ttl=30 * _MINUTE, clock=clock)


class TestMemoryCacheProvider:
    @pytest.mark.asyncio
    async def test_set_then_get_returns_same_object(
        self, cache: MemoryCacheProvider, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await cache.set(key, gaucho_corpus)
        entry = await cache.get(key)
        assert entry is not None
        assert entry.payload is gaucho_corpus
        assert entry.tier is CacheSource.MEMORY

    @pytest.mark.asyncio
    async def test_miss_returns_none(self, cache: MemoryCacheProvider) -> None:
        assert await cache.get(encode_cache_key("sertanejo")) is None

    @pytest.mark.asyncio
    async def test_entry_live_before_ttl(
        self, cache: MemoryCacheProvider, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await cache.set(key, gaucho_corpus)
        clock.advance(29 * _MINUTE)
        assert await cache.get(key) is not None

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(
        self, cache: MemoryCacheProvider, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        await cache.set(key, gaucho_corpus)
        clock.advance(31 * _MINUTE)
        assert await cache.get(key) is None

    @pytest.mark.asyncio
    async def test_copied_entry_expires_from_its_origin_time(
        self, cache: MemoryCacheProvider, clock: FakeClock, gaucho_corpus: Corpus
    ) -> None:
        key = encode_cache_key("gaucho")
        origin = clock()
        clock.advance(20 * _MINUTE)
        stored = await cache.set(key, gaucho_corpus, loaded_at=origin)
        assert stored.loaded_at == origin

        clock.advance(9 * _MINUTE)
        assert await cache.get(key) is not None
        clock.advance(2 * _MINUTE)
        assert await cache.get(key) is None

    @pytest.mark.asyncio
    async def test_delete(self, cache: MemoryCacheProvider, gaucho_corpus: Corpus) -> None:
        key = encode_cache_key("gaucho")
        await cache.set(key, gaucho_corpus)
        assert await cache.delete(key) is True
        assert await cache.delete(key) is False
        assert await cache.get(key) is None

    @pytest.mark.asyncio
    async def test_delete_type_only_touches_that_type(
        self, cache: MemoryCacheProvider, gaucho_corpus: Corpus
    ) -> None:
        full = encode_cache_key("gaucho")
        filtered = encode_cache_key("gaucho", {"artists": ["Teixeirinha"]})
        other = encode_cache_key("nordestino")
        for key in (full, filtered, other):
            await cache.set(key, gaucho_corpus)

        assert await cache.delete_type(CorpusType.GAUCHO) == 2
        assert await cache.get(full) is None
        assert await cache.get(filtered) is None
        assert await cache.get(other) is not None

    @pytest.mark.asyncio
    async def test_clear_counts_live_entries(
        self, cache: MemoryCacheProvider, gaucho_corpus: Corpus
    ) -> None:
        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        await cache.set(encode_cache_key("sertanejo"), gaucho_corpus)
        assert await cache.clear() == 2
        assert await cache.clear() == 0

    @pytest.mark.asyncio
    async def test_describe(self, cache: MemoryCacheProvider, gaucho_corpus: Corpus) -> None:
        await cache.set(encode_cache_key("gaucho"), gaucho_corpus)
        info = await cache.describe()
        assert info["provider"] == "memory"
        assert info["entries"] == 1
        assert info["max_entries"] == 4
        assert info["keys"] == ["gaucho:full:{}"]

    def test_provider_name(self, cache: MemoryCacheProvider) -> None:
        assert cache.get_provider_name() == "memory"
