"""Unit tests for the HTTP annotation provider."""

from __future__ import annotations

import json

import httpx
import pytest

from src.providers.annotation.http_annotation_provider import HttpAnnotationProvider
from src.utils.errors import RateLimitError, TransportError, ValidationError

_URL = "https://annotate.example.org/functions/v1/annotate-semantic-domain"


def _provider(handler, **kwargs) -> HttpAnnotationProvider:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return HttpAnnotationProvider(client, _URL, **kwargs)


def _json(status: int, body: object) -> httpx.Response:
    return httpx.Response(status, json=body)


class TestRequestShape:
    @pytest.mark.asyncio
    async def test_posts_words_context_and_bearer(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return _json(200, {"success": True, "annotations": []})

        provider = _provider(handler, api_key="sekret")
        await provider.annotate(["pampa", "coxilha"], context="gaucho")

        request = captured[0]
        assert request.method == "POST"
        assert str(request.url) == _URL
        assert request.headers["Authorization"] == "Bearer sekret"
        assert json.loads(request.content) == {"words": ["pampa", "coxilha"], "context": "gaucho"}

    @pytest.mark.asyncio
    async def test_no_context_and_no_key(self) -> None:
        captured: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            captured.append(request)
            return _json(200, {"annotations": []})

        await _provider(handler).annotate(["pampa"])
        assert "Authorization" not in captured[0].headers
        assert json.loads(captured[0].content) == {"words": ["pampa"]}


class TestResponseDecoding:
    @pytest.mark.asyncio
    async def test_english_field_names(self) -> None:
        body = {
            "success": True,
            "annotations": [
                {
                    "word": "chimarrão",
                    "domainCode": "AB",
                    "domainLabel": "Alimentação e bebida",
                    "confidence": 0.82,
                    "colorHint": "#aa3300",
                }
            ],
        }
        results = await _provider(lambda r: _json(200, body)).annotate(["chimarrão"])
        assert len(results) == 1
        result = results[0]
        assert result.word == "chimarrão"
        assert result.domain_code == "AB"
        assert result.label == "Alimentação e bebida"
        assert result.confidence == pytest.approx(0.82)
        assert result.color_hint == "#aa3300"

    @pytest.mark.asyncio
    async def test_portuguese_field_names_and_percent_confidence(self) -> None:
        body = {
            "annotations": [
                {"palavra": "xodó", "tagset_codigo": "SE", "dominio_nome": "Sentimentos",
                 "confianca": 90, "cor": "red"}
            ]
        }
        results = await _provider(lambda r: _json(200, body)).annotate(["xodó"])
        assert results[0].domain_code == "SE"
        assert results[0].label == "Sentimentos"
        assert results[0].confidence == pytest.approx(0.9)
        assert results[0].color_hint == "red"

    @pytest.mark.asyncio
    async def test_malformed_entries_are_dropped(self) -> None:
        body = {
            "annotations": [
                {"word": "pampa", "domainCode": "NA"},
                {"word": "", "domainCode": "NA"},
                {"domainCode": "NA"},
                "not-an-object",
            ]
        }
        results = await _provider(lambda r: _json(200, body)).annotate(
            ["pampa", "x", "y", "z"]
        )
        assert [r.word for r in results] == ["pampa"]

    @pytest.mark.asyncio
    async def test_success_false_raises_with_service_message(self) -> None:
        body = {"success": False, "error": "model overloaded"}
        with pytest.raises(ValidationError, match="model overloaded"):
            await _provider(lambda r: _json(200, body)).annotate(["pampa"])

    @pytest.mark.asyncio
    async def test_missing_annotations_list_raises(self) -> None:
        with pytest.raises(ValidationError, match="annotations"):
            await _provider(lambda r: _json(200, {"success": True})).annotate(["pampa"])

    @pytest.mark.asyncio
    async def test_empty_object_raises(self) -> None:
        with pytest.raises(ValidationError):
            await _provider(lambda r: _json(200, {})).annotate(["pampa"])

    @pytest.mark.asyncio
    async def test_empty_body_raises(self) -> None:
        with pytest.raises(ValidationError, match="Empty"):
            await _provider(lambda r: httpx.Response(200, content=b"")).annotate(["pampa"])

    @pytest.mark.asyncio
    async def test_non_json_raises(self) -> None:
        with pytest.raises(ValidationError, match="not JSON"):
            await _provider(lambda r: httpx.Response(200, text="<html>")).annotate(["pampa"])


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_429_is_rate_limit(self) -> None:
        with pytest.raises(RateLimitError) as exc_info:
            await _provider(lambda r: httpx.Response(429)).annotate(["pampa"])
        assert exc_info.value.provider_name == "annotation_service"

    @pytest.mark.asyncio
    async def test_5xx_is_transport_error(self) -> None:
        with pytest.raises(TransportError, match="502"):
            await _provider(lambda r: httpx.Response(502)).annotate(["pampa"])

    @pytest.mark.asyncio
    async def test_timeout_is_transport_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(TransportError, match="slow"):
            await _provider(handler).annotate(["pampa"])
