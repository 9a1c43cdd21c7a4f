"""Tests for the search ledger (cache + history)."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from finder.core.query import build_query, query_hash
from finder.models.business_search import BusinessSearch, SearchStatus
from finder.providers.base import Coordinates, NormalizedResult, ProviderID
from finder.services.search_ledger import SearchLedger


def _sql(mock_db, index: int = 0) -> str:
    stmt = mock_db.execute.call_args_list[index].args[0]
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestSave:
    @pytest.mark.asyncio
    async def test_save_sets_ttl_and_flushes(self, mock_db, now):
        ledger = SearchLedger(clock=lambda: now)
        query = build_query("coffee", location="Seattle", limit=5)
        results = [
            NormalizedResult(
                source_id=ProviderID.GOOGLE_PLACES,
                source_record_id="p1",
                name="Joe's Cafe",
                coordinates=Coordinates(47.6, -122.3),
            )
        ]

        record = await ledger.save(
            mock_db,
            principal_id=7,
            tenant_id=3,
            query=query,
            query_hash=query_hash(query),
            sources=[ProviderID.GOOGLE_PLACES],
            results=results,
            response_time_ms=120,
        )

        mock_db.add.assert_called_once_with(record)
        mock_db.flush.assert_awaited_once()
        assert record.expires_at == now + timedelta(hours=24)
        assert record.status == SearchStatus.COMPLETED.value
        assert record.total_results == 1
        assert record.sources == ["google_places"]
        assert record.results[0]["name"] == "Joe's Cafe"
        assert record.result_limit == 5
        assert record.query_hash == query_hash(query)

    @pytest.mark.asyncio
    async def test_save_errors_propagate(self, mock_db, now):
        mock_db.flush.side_effect = RuntimeError("disk full")
        ledger = SearchLedger(clock=lambda: now)
        query = build_query("coffee")

        with pytest.raises(RuntimeError):
            await ledger.save(
                mock_db,
                principal_id=7,
                tenant_id=3,
                query=query,
                query_hash=query_hash(query),
                sources=[ProviderID.YELP],
                results=[],
                response_time_ms=5,
            )


class TestLookup:
    @pytest.mark.asyncio
    async def test_lookup_returns_newest_row(self, mock_db, now):
        row = BusinessSearch(id=uuid4(), query="coffee")
        result = MagicMock()
        result.scalars.return_value.first.return_value = row
        mock_db.execute.return_value = result

        found = await SearchLedger(clock=lambda: now).lookup(mock_db, "abc", 7)

        assert found is row
        sql = _sql(mock_db)
        assert "business_searches.query_hash" in sql
        assert "business_searches.expires_at >=" in sql
        assert "ORDER BY business_searches.created_at DESC" in sql

    @pytest.mark.asyncio
    async def test_lookup_miss(self, mock_db, now):
        result = MagicMock()
        result.scalars.return_value.first.return_value = None
        mock_db.execute.return_value = result

        assert await SearchLedger(clock=lambda: now).lookup(mock_db, "abc", 7) is None

    @pytest.mark.asyncio
    async def test_lookup_errors_propagate(self, mock_db, now):
        mock_db.execute.side_effect = RuntimeError("db down")

        with pytest.raises(RuntimeError):
            await SearchLedger(clock=lambda: now).lookup(mock_db, "abc", 7)


class TestHistoryAndSweep:
    @pytest.mark.asyncio
    async def test_history_caps_limit(self, mock_db, now):
        result = MagicMock()
        result.scalars.return_value.all.return_value = []
        mock_db.execute.return_value = result

        await SearchLedger(clock=lambda: now).history(mock_db, 7, limit=500)

        stmt = mock_db.execute.call_args_list[0].args[0]
        sql = str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))
        assert "LIMIT 100" in sql

    @pytest.mark.asyncio
    async def test_mark_expired_returns_rowcount(self, mock_db, now):
        result = MagicMock()
        result.rowcount = 4
        mock_db.execute.return_value = result

        count = await SearchLedger(clock=lambda: now).mark_expired(mock_db)

        assert count == 4
        sql = _sql(mock_db)
        assert sql.startswith("UPDATE business_searches SET status=")
