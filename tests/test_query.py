"""Tests for query normalization, validation and the content hash."""

from __future__ import annotations

import pytest

from finder.core.errors import ValidationError
from finder.core.query import NormalizedQuery, build_query, query_hash
from finder.providers.base import ProviderID
from finder.schemas.search import SearchRequest


# ── build_query ──────────────────────────────────────────────────


class TestBuildQuery:
    def test_defaults(self):
        q = build_query("coffee")
        assert q == NormalizedQuery(text="coffee")
        assert q.limit == 20
        assert q.sources == ()

    def test_trims_and_drops_blank_optionals(self):
        q = build_query("  coffee  ", location="  ", category=" cafe ")
        assert q.text == "coffee"
        assert q.location is None
        assert q.category == "cafe"

    def test_sources_become_provider_ids(self):
        q = build_query("coffee", sources=["yelp"])
        assert q.sources == (ProviderID.YELP,)

    @pytest.mark.parametrize("text", ["", "   ", "\t\n"])
    def test_rejects_empty_text(self, text):
        with pytest.raises(ValidationError):
            build_query(text)

    @pytest.mark.parametrize("text", ["!!!", "??? ...", " -- "])
    def test_rejects_text_without_letters_or_digits(self, text):
        with pytest.raises(ValidationError, match="letter or digit"):
            build_query(text)

    def test_accepts_non_ascii_words(self):
        assert build_query("café!").text == "café!"

    @pytest.mark.parametrize("radius", [0.0, 0.05, 50.1, -1])
    def test_rejects_radius_out_of_range(self, radius):
        with pytest.raises(ValidationError):
            build_query("coffee", radius_km=radius)

    @pytest.mark.parametrize("radius", [0.1, 5, 50])
    def test_accepts_radius_bounds(self, radius):
        assert build_query("coffee", radius_km=radius).radius_km == float(radius)

    @pytest.mark.parametrize("limit", [0, 101, -5])
    def test_rejects_limit_out_of_range(self, limit):
        with pytest.raises(ValidationError):
            build_query("coffee", limit=limit)

    def test_rejects_more_than_one_source(self):
        with pytest.raises(ValidationError, match="one source"):
            build_query("coffee", sources=["yelp", "google_places"])

    def test_rejects_unknown_source(self):
        with pytest.raises(ValidationError, match="Unknown source"):
            build_query("coffee", sources=["bing"])

    def test_validation_error_is_client_error(self):
        with pytest.raises(ValidationError) as exc_info:
            build_query("")
        assert exc_info.value.status_code == 400
        assert exc_info.value.is_client_error

    def test_search_request_to_query(self):
        req = SearchRequest(query="pizza", location="Naples", radius=2.5, sources=["openstreetmap"], limit=5)
        q = req.to_query()
        assert q.text == "pizza"
        assert q.radius_km == 2.5
        assert q.sources == (ProviderID.OPENSTREETMAP,)
        assert q.limit == 5


# ── query_hash ───────────────────────────────────────────────────


class TestQueryHash:
    def test_deterministic(self):
        q = build_query("coffee", location="Seattle")
        assert query_hash(q) == query_hash(q)

    def test_is_sha256_hex(self):
        h = query_hash(build_query("coffee"))
        assert len(h) == 64
        assert all(c in "0123456789abcdef" for c in h)

    def test_case_and_whitespace_insensitive(self):
        a = build_query("Coffee ", location=" SEATTLE", category="Cafe")
        b = build_query("coffee", location="seattle", category=" cafe ")
        assert query_hash(a) == query_hash(b)

    def test_limit_does_not_affect_hash(self):
        a = build_query("coffee", location="Seattle", limit=5)
        b = build_query("coffee", location="Seattle", limit=100)
        assert query_hash(a) == query_hash(b)

    def test_int_and_float_radius_hash_alike(self):
        assert query_hash(build_query("coffee", radius_km=5)) == query_hash(
            build_query("coffee", radius_km=5.0)
        )

    @pytest.mark.parametrize(
        "other",
        [
            {"location": "Portland"},
            {"radius_km": 10},
            {"category": "bakery"},
            {"sources": ["yelp"]},
        ],
    )
    def test_changing_a_hashed_field_changes_hash(self, other):
        base = build_query("coffee", location="Seattle", radius_km=5, category="cafe")
        kwargs = {"location": "Seattle", "radius_km": 5, "category": "cafe", **other}
        assert query_hash(build_query("coffee", **kwargs)) != query_hash(base)

    def test_missing_and_empty_location_hash_alike(self):
        assert query_hash(build_query("coffee")) == query_hash(build_query("coffee", location=""))
