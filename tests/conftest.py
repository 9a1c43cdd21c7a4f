"""Shared fixtures: a mocked AsyncSession and a fixed clock."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

NOW = datetime(2026, 3, 10, 15, 30, tzinfo=UTC)


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def mock_db() -> AsyncMock:
    """AsyncSession stand-in. ``add`` is sync and ``begin_nested`` is an async context manager."""
    session = AsyncMock()
    session.add = MagicMock()
    session.begin_nested = MagicMock(return_value=AsyncMock())
    return session
