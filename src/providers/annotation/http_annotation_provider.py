"""HTTP adapter for the semantic-domain classification service.

One POST per chunk::

    POST {service_url}
    Authorization: Bearer <api_key>
    {"words": [...], "context": "..."}

Expected answer::

    {"success": true, "annotations": [{"word": ..., "domainCode": ..., ...}]}

Transport problems raise :class:`TransportError` (``RateLimitError`` for
HTTP 429).  A body that is not JSON, is empty, says ``success: false`` or
lacks an ``annotations`` list raises :class:`ValidationError`.  Individual
malformed entries are *dropped*, counted, and reported with a warning when
they exceed the configured ratio; the chunk itself still succeeds.
"""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from src.interfaces.annotation_provider import IAnnotationProvider
from src.models.annotation import AnnotationResult, AnnotationServiceResponse, RemoteAnnotation
from src.utils.errors import RateLimitError, TransportError, ValidationError
from src.utils.logging import get_logger


class HttpAnnotationProvider(IAnnotationProvider):
    """Classifies word chunks through the remote annotation endpoint.

    Parameters
    ----------
    http_client:
        Injected ``httpx.AsyncClient``.
    service_url:
        Full endpoint URL.
    api_key:
        Sent as a bearer token when non-empty.
    timeout:
        Per-call timeout in seconds.  Large chunks take a while server-side.
    malformed_warn_ratio:
        Warn when more than this share of a response's entries is dropped.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        service_url: str,
        api_key: str = "",
        timeout: float = 60.0,
        malformed_warn_ratio: float = 0.1,
    ) -> None:
        self._http = http_client
        self._service_url = service_url
        self._api_key = api_key
        self._timeout = timeout
        self._malformed_warn_ratio = malformed_warn_ratio
        self._logger = get_logger(__name__)

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def annotate(self, words: list[str], context: str | None = None) -> list[AnnotationResult]:
        body: dict[str, Any] = {"words": words}
        if context:
            body["context"] = context

        try:
            response = await self._http.post(
                self._service_url,
                json=body,
                headers=self._headers(),
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise TransportError(
                f"Annotation request failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        if response.status_code == 429:
            raise RateLimitError(
                "Annotation service rate limit reached",
                provider_name=self.get_provider_name(),
            )
        if response.status_code >= 400:
            raise TransportError(
                f"Annotation service answered HTTP {response.status_code}",
                provider_name=self.get_provider_name(),
            )

        payload = self._decode_body(response)
        return self._accept_entries(payload.annotations, requested=len(words))

    def get_provider_name(self) -> str:
        return "annotation_service"

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _decode_body(self, response: httpx.Response) -> AnnotationServiceResponse:
        if not response.content.strip():
            raise ValidationError("Empty response body", provider_name=self.get_provider_name())
        try:
            data = response.json()
        except ValueError as exc:
            raise ValidationError(
                "Response body is not JSON", provider_name=self.get_provider_name()
            ) from exc

        if not isinstance(data, dict) or not data:
            raise ValidationError(
                "Response body is not a JSON object", provider_name=self.get_provider_name()
            )
        if data.get("success") is False:
            reason = data.get("error") or "service reported failure"
            raise ValidationError(str(reason), provider_name=self.get_provider_name())

        try:
            return AnnotationServiceResponse.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"Response lacks an annotations list: {exc.error_count()} error(s)",
                provider_name=self.get_provider_name(),
            ) from exc

    def _accept_entries(self, entries: list[Any], requested: int) -> list[AnnotationResult]:
        accepted: list[AnnotationResult] = []
        malformed = 0
        for entry in entries:
            try:
                accepted.append(RemoteAnnotation.model_validate(entry).to_result())
            except PydanticValidationError:
                malformed += 1

        if malformed:
            ratio = malformed / len(entries)
            log = (
                self._logger.warning
                if ratio > self._malformed_warn_ratio
                else self._logger.debug
            )
            log(
                "annotation_entries_dropped",
                malformed=malformed,
                received=len(entries),
                requested=requested,
                ratio=round(ratio, 3),
            )
        return accepted
