"""HTTP corpus source.

Fetches ``{base_url}/{corpus_type}.txt`` with an injected
``httpx.AsyncClient``.  No retry here: a failed corpus load surfaces to the
cache service, which reports it to every caller joined on that key, and the
next request simply tries again.
"""

from __future__ import annotations

import httpx

from src.interfaces.corpus_source import ICorpusSource
from src.models.corpus import CorpusType
from src.utils.errors import RateLimitError, TransportError
from src.utils.logging import get_logger


class HttpCorpusSource(ICorpusSource):
    """Downloads raw lyric dumps from a static file server.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient`` for testability and connection pooling.
    base_url:
        Directory URL holding one ``<corpus_type>.txt`` file per corpus.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str,
        timeout: float = 30.0,
    ) -> None:
        self._http = http_client
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._logger = get_logger(__name__)

    def url_for(self, corpus_type: CorpusType) -> str:
        return f"{self._base_url}/{corpus_type.value}.txt"

    async def fetch_raw(self, corpus_type: CorpusType) -> str:
        url = self.url_for(corpus_type)
        try:
            response = await self._http.get(url, timeout=self._timeout)
        except httpx.HTTPError as exc:
            self._logger.warning("corpus_fetch_failed", url=url, error=str(exc))
            raise TransportError(
                f"Could not fetch {corpus_type.value} corpus: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 429:
            raise RateLimitError(
                f"Rate limited while fetching {corpus_type.value} corpus",
                provider_name=self.get_provider_name(),
            )
        if response.status_code >= 400:
            self._logger.warning("corpus_fetch_bad_status", url=url, status=response.status_code)
            raise TransportError(
                f"Corpus server answered HTTP {response.status_code} for {corpus_type.value}",
                provider_name=self.get_provider_name(),
            )

        self._logger.info(
            "corpus_fetched",
            corpus_type=corpus_type.value,
            bytes=len(response.content),
        )
        return response.text

    def get_provider_name(self) -> str:
        return "corpus_http"
