"""Deterministic cache keys for (corpus type, filter set) pairs.

The key string is ``{corpus_type}:{kind}:{digest}``:

- ``kind`` is ``full`` when the filter set restricts nothing and
  ``filtered`` otherwise;
- ``digest`` is ``{}`` for the full corpus, else the first 16 hex chars of
  the SHA-256 of the *canonical* filter JSON.

Canonicalisation makes logically identical queries collide:

- list values are stripped, case-folded, de-duplicated and sorted
  (``["B", "a", "a "]`` → ``["a", "b"]``);
- ``None``, a missing field and an empty list are all the same thing and
  are dropped from the canonical form;
- the remaining keys are serialised with ``sort_keys=True``, so field order
  never matters.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any

from src.models.cache import CacheKey, CorpusFilters
from src.models.corpus import CorpusType
from src.utils.errors import UnsupportedCorpusError

_EMPTY_DIGEST = "{}"
_DIGEST_LENGTH = 16


def resolve_corpus_type(value: CorpusType | str) -> CorpusType:
    """Coerce *value* into a :class:`CorpusType` or fail fast.

    Raises
    ------
    UnsupportedCorpusError
        When *value* names no known corpus.
    """
    if isinstance(value, CorpusType):
        return value
    normalised = str(value).strip().lower()
    try:
        return CorpusType(normalised)
    except ValueError:
        supported = ", ".join(t.value for t in CorpusType)
        raise UnsupportedCorpusError(
            f"Unsupported corpus type {value!r} (supported: {supported})"
        ) from None


def coerce_filters(filters: CorpusFilters | Mapping[str, Any] | None) -> CorpusFilters | None:
    """Accept filters as a model, a plain mapping, or ``None``."""
    if filters is None or isinstance(filters, CorpusFilters):
        return filters
    return CorpusFilters.model_validate(dict(filters))


def canonicalize_filters(filters: CorpusFilters | Mapping[str, Any] | None) -> dict[str, Any]:
    """Return the canonical dict form of *filters* (empty dict = no filter)."""
    model = coerce_filters(filters)
    if model is None:
        return {}

    canonical: dict[str, Any] = {}
    for name, value in model.model_dump().items():
        if value is None:
            continue
        if isinstance(value, list):
            cleaned = sorted({str(item).strip().casefold() for item in value if str(item).strip()})
            if cleaned:
                canonical[name] = cleaned
        else:
            canonical[name] = value
    return canonical


def filter_digest(filters: CorpusFilters | Mapping[str, Any] | None) -> str:
    """Stable digest of the canonical filter set."""
    canonical = canonicalize_filters(filters)
    if not canonical:
        return _EMPTY_DIGEST
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]


def encode_cache_key(
    corpus_type: CorpusType | str,
    filters: CorpusFilters | Mapping[str, Any] | None = None,
) -> CacheKey:
    """Build the :class:`CacheKey` for a corpus request."""
    resolved = resolve_corpus_type(corpus_type)
    digest = filter_digest(filters)
    kind = "full" if digest == _EMPTY_DIGEST else "filtered"
    return CacheKey(corpus_type=resolved, kind=kind, filter_digest=digest)


def decode_cache_key(value: str) -> CacheKey:
    """Parse a key string produced by ``str(CacheKey)``.

    Used by receivers of invalidation events, which only carry the string.
    """
    parts = value.split(":", 2)
    if len(parts) != 3 or parts[1] not in ("full", "filtered"):
        msg = f"Malformed cache key: {value!r}"
        raise ValueError(msg)
    return CacheKey(
        corpus_type=resolve_corpus_type(parts[0]),
        kind=parts[1],
        filter_digest=parts[2],
    )
