"""Unit tests for cache key canonicalisation and encoding."""

from __future__ import annotations

import pytest

from src.models.cache import CorpusFilters
from src.models.corpus import CorpusType
from src.services.cache_key import (
    canonicalize_filters,
    decode_cache_key,
    encode_cache_key,
    filter_digest,
    resolve_corpus_type,
)
from src.utils.errors import UnsupportedCorpusError


class TestResolveCorpusType:
    def test_accepts_enum(self) -> None:
        assert resolve_corpus_type(CorpusType.GAUCHO) is CorpusType.GAUCHO

    def test_accepts_mixed_case_string(self) -> None:
        assert resolve_corpus_type("  Nordestino ") is CorpusType.NORDESTINO

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(UnsupportedCorpusError, match="pagode"):
            resolve_corpus_type("pagode")


class TestEncodeCacheKey:
    def test_unfiltered_key_string(self) -> None:
        key = encode_cache_key("gaucho")
        assert str(key) == "gaucho:full:{}"
        assert key.kind == "full"

    def test_empty_filters_equal_no_filters(self) -> None:
        assert encode_cache_key("gaucho", CorpusFilters()) == encode_cache_key("gaucho")
        assert encode_cache_key("gaucho", {"artists": []}) == encode_cache_key("gaucho")
        assert encode_cache_key("gaucho", {"artists": None, "albums": [" "]}) == encode_cache_key(
            "gaucho"
        )

    def test_filtered_key_kind_and_digest(self) -> None:
        key = encode_cache_key("sertanejo", {"artists": ["Tonico e Tinoco"]})
        assert key.kind == "filtered"
        assert len(key.filter_digest) == 16
        assert str(key).startswith("sertanejo:filtered:")

    def test_list_order_case_and_duplicates_do_not_matter(self) -> None:
        a = encode_cache_key("gaucho", {"artists": ["Teixeirinha", "Renato Borghetti"]})
        b = encode_cache_key(
            "gaucho", {"artists": ["renato borghetti ", "TEIXEIRINHA", "Teixeirinha"]}
        )
        assert a == b
        assert hash(a) == hash(b)

    def test_field_order_does_not_matter(self) -> None:
        a = encode_cache_key("gaucho", {"year_start": 1960, "artists": ["Teixeirinha"]})
        b = encode_cache_key("gaucho", {"artists": ["Teixeirinha"], "year_start": 1960})
        assert a == b

    def test_different_filters_give_different_keys(self) -> None:
        a = encode_cache_key("gaucho", {"year_start": 1960})
        b = encode_cache_key("gaucho", {"year_start": 1961})
        assert a != b

    def test_same_filters_different_type_differ(self) -> None:
        filters = {"year_end": 1980}
        assert encode_cache_key("gaucho", filters) != encode_cache_key("nordestino", filters)

    def test_unsupported_type_fails_before_digest(self) -> None:
        with pytest.raises(UnsupportedCorpusError):
            encode_cache_key("forro", {"year_start": 1990})


class TestCanonicalForm:
    def test_drops_none_and_empty(self) -> None:
        assert canonicalize_filters({"artists": [], "year_start": None}) == {}

    def test_normalises_lists(self) -> None:
        canonical = canonicalize_filters({"albums": ["B", "a", "a "]})
        assert canonical == {"albums": ["a", "b"]}

    def test_digest_of_nothing_is_braces(self) -> None:
        assert filter_digest(None) == "{}"


class TestDecodeCacheKey:
    def test_decodes_what_encode_produces(self) -> None:
        key = encode_cache_key("nordestino", {"artists": ["Luiz Gonzaga"]})
        assert decode_cache_key(str(key)) == key

    def test_rejects_malformed(self) -> None:
        with pytest.raises(ValueError):
            decode_cache_key("gaucho-full")
        with pytest.raises(ValueError):
            decode_cache_key("gaucho:partial:{}")
