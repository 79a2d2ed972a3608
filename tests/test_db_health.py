"""
Tests for the database health report.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from jazzam_backend.config import Settings
from jazzam_backend.utils.db_health import check_database_health


@pytest.fixture
def db_manager():
    manager = MagicMock()
    manager.settings = Settings(MONGODB_URL="mongodb://admin:hunter2@db:27017", MONGODB_DATABASE="jazzam")
    manager.client = MagicMock()
    manager.health_check = AsyncMock(return_value=True)
    return manager


@pytest.mark.asyncio
async def test_healthy_report(db_manager, pool):
    await pool.acquire("t1")

    report = await check_database_health(db_manager, pool)

    assert report["system_database"] == {
        "name": "jazzam",
        "status": "healthy",
        "url": "mongodb://***:***@db:27017",
    }
    assert report["tenant_connections"]["active_connections"] == 1
    assert "timestamp" in report


@pytest.mark.asyncio
async def test_unhealthy_report(db_manager, pool):
    db_manager.health_check.return_value = False

    report = await check_database_health(db_manager, pool)

    assert report["system_database"]["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_not_connected_report(db_manager, pool):
    db_manager.client = None

    report = await check_database_health(db_manager, pool)

    assert report["system_database"]["status"] == "not_connected"
    db_manager.health_check.assert_not_awaited()
