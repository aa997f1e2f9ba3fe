"""
Tests for the database module.
"""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from deployer.core import database
from deployer.core.database import SESSIONS_PER_PIPELINE, ping_database, pool_size_for


class TestPoolSize:
    """Tests for pool_size_for."""

    def test_two_sessions_per_pipeline_plus_api(self):
        assert pool_size_for(4, 5) == 4 * SESSIONS_PER_PIPELINE + 5

    def test_engine_pool_matches_settings(self):
        from deployer.core.config import settings

        expected = pool_size_for(settings.MAX_CONCURRENT_DEPLOYMENTS, settings.DB_API_CONNECTIONS)
        assert database.engine.sync_engine.pool.size() == expected


class TestPingDatabase:
    """Tests for ping_database."""

    @pytest.mark.asyncio
    async def test_returns_true_when_query_succeeds(self):
        conn = AsyncMock()
        engine = MagicMock()
        engine.connect.return_value.__aenter__ = AsyncMock(return_value=conn)
        engine.connect.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch.object(database, "engine", engine):
            assert await ping_database() is True

        conn.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_returns_false_when_unreachable(self):
        engine = MagicMock()
        engine.connect.return_value.__aenter__ = AsyncMock(side_effect=OSError("connection refused"))
        engine.connect.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch.object(database, "engine", engine):
            assert await ping_database() is False
