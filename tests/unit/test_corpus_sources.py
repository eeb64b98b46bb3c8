"""Unit tests for raw corpus sources and the network loader."""

from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from src.models.corpus import CorpusType
from src.providers.corpus.file_corpus_source import FileCorpusSource
from src.providers.corpus.http_corpus_source import HttpCorpusSource
from src.services.corpus_loader import CorpusLoader
from src.utils.errors import CorpusLoadError, RateLimitError, TransportError
from tests.conftest import GAUCHO_DUMP, CountingSource

_BASE_URL = "https://corpora.example.org/raw/"


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestHttpCorpusSource:
    @pytest.mark.asyncio
    async def test_fetches_type_file(self) -> None:
        requested: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requested.append(str(request.url))
            return httpx.Response(200, text=GAUCHO_DUMP)

        async with _client(handler) as client:
            source = HttpCorpusSource(client, _BASE_URL)
            text = await source.fetch_raw(CorpusType.GAUCHO)

        assert text == GAUCHO_DUMP
        assert requested == ["https://corpora.example.org/raw/gaucho.txt"]

    @pytest.mark.asyncio
    async def test_http_error_status_raises_transport_error(self) -> None:
        async with _client(lambda request: httpx.Response(503)) as client:
            source = HttpCorpusSource(client, _BASE_URL)
            with pytest.raises(TransportError, match="503") as exc_info:
                await source.fetch_raw(CorpusType.SERTANEJO)
        assert exc_info.value.provider_name == "corpus_http"

    @pytest.mark.asyncio
    async def test_429_raises_rate_limit_error(self) -> None:
        async with _client(lambda request: httpx.Response(429)) as client:
            source = HttpCorpusSource(client, _BASE_URL)
            with pytest.raises(RateLimitError):
                await source.fetch_raw(CorpusType.GAUCHO)

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            source = HttpCorpusSource(client, _BASE_URL)
            with pytest.raises(TransportError, match="refused"):
                await source.fetch_raw(CorpusType.NORDESTINO)

    def test_provider_name(self) -> None:
        source = HttpCorpusSource(httpx.AsyncClient(), _BASE_URL)
        assert source.get_provider_name() == "corpus_http"
        assert source.url_for(CorpusType.NORDESTINO).endswith("/raw/nordestino.txt")


class TestFileCorpusSource:
    @pytest.mark.asyncio
    async def test_reads_type_file(self, tmp_path: Path) -> None:
        (tmp_path / "gaucho.txt").write_text(GAUCHO_DUMP, encoding="utf-8")
        source = FileCorpusSource(tmp_path)
        assert await source.fetch_raw(CorpusType.GAUCHO) == GAUCHO_DUMP

    @pytest.mark.asyncio
    async def test_missing_file_raises(self, tmp_path: Path) -> None:
        source = FileCorpusSource(tmp_path)
        with pytest.raises(CorpusLoadError, match="sertanejo.txt"):
            await source.fetch_raw(CorpusType.SERTANEJO)

    @pytest.mark.asyncio
    async def test_bundled_corpora_parse(self, project_root: Path) -> None:
        loader = CorpusLoader(FileCorpusSource(project_root / "data" / "corpora"))
        for corpus_type in CorpusType:
            corpus = await loader.load(corpus_type)
            assert corpus.total_documents > 0
            assert corpus.total_words > 0


class TestCorpusLoader:
    @pytest.mark.asyncio
    async def test_load_parses_fetched_dump(self, source: CountingSource) -> None:
        loader = CorpusLoader(source)
        corpus = await loader.load(CorpusType.GAUCHO)
        assert corpus.total_words == 24
        assert source.calls == [CorpusType.GAUCHO]
        assert loader.source_name == "counting"

    @pytest.mark.asyncio
    async def test_source_errors_propagate(self, source: CountingSource) -> None:
        source.error = TransportError("offline", provider_name="counting")
        with pytest.raises(TransportError, match="offline"):
            await CorpusLoader(source).load(CorpusType.GAUCHO)
