"""HTTP surface tests: identity headers, error payloads and route wiring."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from finder.core.errors import NotFound, ProviderUnavailable, RateLimited
from finder.core.principal import Caller, CallerRole
from finder.database import get_db
from finder.deps import get_business_finder, get_credentials, get_rate_limiter
from finder.main import app
from finder.providers import SOURCE_CATALOG
from finder.schemas.api_key import ApiKeyRead
from finder.schemas.rate_limit import RateLimitStatus
from finder.schemas.search import SearchResponse

USER_HEADERS = {"X-User-Id": "7", "X-Tenant-Id": "3"}
ADMIN_HEADERS = {**USER_HEADERS, "X-User-Role": "admin"}
RESET = datetime(2026, 3, 11, tzinfo=UTC)

# ── Helpers ────────────────────────────────────────────────────────


def _status(**overrides) -> RateLimitStatus:
    fields = {"current_usage": 0, "daily_limit": 500, "remaining": 500, "reset_time": RESET, "is_blocked": False}
    fields.update(overrides)
    return RateLimitStatus(**fields)


def _search_response() -> SearchResponse:
    return SearchResponse(
        search_id=uuid4(),
        query="coffee",
        location="Seattle",
        total_results=1,
        results=[
            {
                "source_id": "google_places",
                "source_record_id": "p1",
                "name": "Joe's Cafe",
                "coordinates": {"lat": 47.6, "lng": -122.3},
            }
        ],
        sources=["google_places"],
        response_time_ms=42,
        cached=False,
        expires_at=datetime(2026, 3, 11, 15, 30, tzinfo=UTC),
    )


@pytest.fixture
def db():
    session = AsyncMock()
    session.add = MagicMock()
    return session


@pytest.fixture
def finder():
    service = MagicMock()
    service.search = AsyncMock(return_value=_search_response())
    service.get_result = AsyncMock()
    service.get_history = AsyncMock(return_value=[])
    service.get_usage_stats = AsyncMock()
    service.available_sources = MagicMock(return_value=list(SOURCE_CATALOG))
    return service


@pytest.fixture
def rate_limiter():
    service = MagicMock()
    service.get_status = AsyncMock(return_value=_status())
    service.reset = AsyncMock()
    return service


@pytest.fixture
def credentials():
    service = MagicMock()
    service.list_keys = AsyncMock(return_value=[])
    service.delete_key = AsyncMock()
    service.save_key = AsyncMock()
    return service


@pytest.fixture
def client(db, finder, rate_limiter, credentials):
    async def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_business_finder] = lambda: finder
    app.dependency_overrides[get_rate_limiter] = lambda: rate_limiter
    app.dependency_overrides[get_credentials] = lambda: credentials
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── Identity ───────────────────────────────────────────────────────


class TestIdentity:
    def test_missing_headers_is_401(self, client):
        resp = client.post("/api/v1/finder/search", json={"query": "coffee"})
        assert resp.status_code == 401

    def test_non_numeric_user_is_401(self, client):
        resp = client.get("/api/v1/finder/sources", headers={"X-User-Id": "abc", "X-Tenant-Id": "3"})
        assert resp.status_code == 401

    def test_reset_requires_admin(self, client, rate_limiter):
        resp = client.post("/api/v1/finder/rate-limit/reset", headers=USER_HEADERS)
        assert resp.status_code == 403
        rate_limiter.reset.assert_not_awaited()

    def test_health_needs_no_identity(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert resp.headers["x-request-id"]


# ── Search ─────────────────────────────────────────────────────────


class TestSearchEndpoint:
    def test_search_passes_normalized_query(self, client, finder):
        resp = client.post(
            "/api/v1/finder/search",
            json={"query": "  coffee ", "location": "Seattle", "radius": 2, "limit": 5},
            headers={**USER_HEADERS, "X-Forwarded-For": "203.0.113.7"},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["results"][0]["id"] == "google_places_p1"
        assert body["cached"] is False

        _, query, caller, ip = finder.search.await_args.args
        assert query.text == "coffee"
        assert query.radius_km == 2.0
        assert query.limit == 5
        assert caller == Caller(user_id=7, tenant_id=3, role=CallerRole.USER)
        assert ip == "203.0.113.7"

    @pytest.mark.parametrize(
        "payload",
        [
            {"query": "   "},
            {"query": "!!!"},
            {"query": "coffee", "radius": 80},
            {"query": "coffee", "limit": 0},
            {"query": "coffee", "sources": ["bing"]},
            {"query": "coffee", "sources": ["yelp", "google_places"]},
        ],
    )
    def test_invalid_query_is_400_before_search(self, client, finder, payload):
        resp = client.post("/api/v1/finder/search", json=payload, headers=USER_HEADERS)

        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"
        finder.search.assert_not_awaited()

    def test_rate_limited_payload(self, client, finder):
        finder.search.side_effect = RateLimited(remaining=0, reset_time=RESET)

        resp = client.post("/api/v1/finder/search", json={"query": "coffee"}, headers=USER_HEADERS)

        assert resp.status_code == 429
        body = resp.json()
        assert body["error"] == "rate_limited"
        assert body["remaining"] == 0
        assert body["reset_time"] == RESET.isoformat()

    def test_provider_unavailable_payload(self, client, finder):
        finder.search.side_effect = ProviderUnavailable("yelp", "request timed out")

        resp = client.post("/api/v1/finder/search", json={"query": "coffee"}, headers=USER_HEADERS)

        assert resp.status_code == 503
        body = resp.json()
        assert body["provider"] == "yelp"
        assert body["cause"] == "request timed out"

    def test_missing_result_is_404(self, client, finder):
        finder.get_result.side_effect = NotFound("Search results not found or expired")

        resp = client.get(f"/api/v1/finder/results/{uuid4()}", headers=USER_HEADERS)

        assert resp.status_code == 404
        assert resp.json()["error"] == "not_found"

    def test_history_limit_is_capped(self, client, finder):
        resp = client.get("/api/v1/finder/history?limit=1000", headers=USER_HEADERS)

        assert resp.status_code == 200
        assert finder.get_history.await_args.kwargs["limit"] == 100


# ── Keys, quota, catalogue ─────────────────────────────────────────


class TestManagementEndpoints:
    def test_sources(self, client):
        resp = client.get("/api/v1/finder/sources", headers=USER_HEADERS)

        assert resp.status_code == 200
        body = resp.json()
        assert [s["id"] for s in body] == ["google_places", "yelp", "openstreetmap"]
        assert body[2]["requires_api_key"] is False

    def test_rate_limit_status(self, client, rate_limiter):
        resp = client.get("/api/v1/finder/rate-limit/status", headers=USER_HEADERS)

        assert resp.status_code == 200
        assert resp.json()["remaining"] == 500
        _, principal_id, service = rate_limiter.get_status.await_args.args
        assert (principal_id, service) == (7, "business_finder")

    def test_admin_reset_targets_given_principal(self, client, db, rate_limiter):
        resp = client.post("/api/v1/finder/rate-limit/reset?principal_id=7", headers=ADMIN_HEADERS)

        assert resp.status_code == 200
        rate_limiter.reset.assert_awaited_once_with(db, 7, "business_finder")
        db.commit.assert_awaited()

    def test_list_keys_never_exposes_key_material(self, client, credentials):
        credentials.list_keys.return_value = [
            ApiKeyRead(service="yelp", key_name="default", is_active=True, usage_count=2)
        ]

        resp = client.get("/api/v1/finder/api-keys", headers=USER_HEADERS)

        assert resp.status_code == 200
        assert resp.json()[0]["key_name"] == "default"
        assert "key_value" not in resp.json()[0]

    def test_delete_key(self, client, db, credentials):
        resp = client.delete("/api/v1/finder/api-keys/yelp/default", headers=USER_HEADERS)

        assert resp.status_code == 204
        credentials.delete_key.assert_awaited_once_with(db, 7, "yelp", "default")
        db.commit.assert_awaited()

    def test_delete_missing_key_is_404(self, client, credentials):
        credentials.delete_key.side_effect = NotFound("No API key named 'x' for yelp")

        resp = client.delete("/api/v1/finder/api-keys/yelp/x", headers=USER_HEADERS)

        assert resp.status_code == 404
