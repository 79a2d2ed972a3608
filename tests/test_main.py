"""
Tests for the application lifespan and the health endpoints.
"""

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from jazzam_backend.config import Settings
from jazzam_backend.database.manager import DatabaseManager
from jazzam_backend.database.tenant_uri import validate_mongo_uri
from jazzam_backend.main import _periodic_warmup, create_app


@pytest.fixture
def db_manager():
    manager = MagicMock()
    manager.connect = AsyncMock()
    manager.disconnect = AsyncMock()
    return manager


@pytest.mark.asyncio
async def test_lifespan_starts_and_shuts_down_pool(pool, db_manager):
    app = create_app(
        settings=Settings(TENANT_WARMUP_ENABLED=False),
        db_manager=db_manager,
        tenant_pool=pool,
        company_directory=AsyncMock(),
    )

    async with app.router.lifespan_context(app):
        db_manager.connect.assert_awaited_once()
        assert pool.scheduler.running
        connection = await pool.acquire("t1")

    assert pool.closed
    assert not pool.scheduler.running
    assert not connection.is_connected
    db_manager.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_shutdown_cancels_pending_warmup(pool, db_manager):
    directory = AsyncMock()
    app = create_app(
        settings=Settings(TENANT_WARMUP_ENABLED=True),
        db_manager=db_manager,
        tenant_pool=pool,
        company_directory=directory,
    )

    async with app.router.lifespan_context(app):
        await asyncio.sleep(0)

    directory.list_active_companies.assert_not_awaited()
    assert pool.closed


@pytest.mark.asyncio
async def test_health_endpoints(pool):
    settings = Settings(MONGODB_URL="mongodb://u:p@db:27017", TENANT_WARMUP_ENABLED=False, METRICS_ENABLED=False)
    app = create_app(settings=settings, db_manager=DatabaseManager(settings), tenant_pool=pool)
    await pool.acquire("t1")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        stats = await client.get("/health/tenant-pool")
        database = await client.get("/health/database")

    assert stats.status_code == 200
    assert stats.json()["active_connections"] == 1
    assert stats.json()["connections"][0]["tenant_id"] == "t1"
    assert database.json()["system_database"]["status"] == "not_connected"
    assert database.json()["system_database"]["url"] == "mongodb://***:***@db:27017"


@pytest.mark.asyncio
async def test_periodic_warmup_repeats_until_cancelled(pool):
    directory = AsyncMock()
    directory.list_active_companies.return_value = []
    app = create_app(
        settings=Settings(TENANT_WARMUP_ENABLED=False, METRICS_ENABLED=False),
        db_manager=MagicMock(),
        tenant_pool=pool,
        company_directory=directory,
    )

    task = asyncio.create_task(_periodic_warmup(app, 0.01))
    await asyncio.sleep(0.05)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert directory.list_active_companies.await_count >= 2


@pytest.mark.asyncio
async def test_production_schedules_periodic_warmup(pool, db_manager):
    app = create_app(
        settings=Settings(DEBUG=False, TENANT_WARMUP_ENABLED=True, METRICS_ENABLED=False),
        db_manager=db_manager,
        tenant_pool=pool,
        company_directory=AsyncMock(),
    )

    async with app.router.lifespan_context(app):
        names = {task.get_name(): task for task in asyncio.all_tasks()}
        assert "tenant-warmup-periodic" in names
        periodic = names["tenant-warmup-periodic"]

    assert periodic.done()


@pytest.mark.asyncio
async def test_development_skips_periodic_warmup(pool, db_manager):
    app = create_app(
        settings=Settings(DEBUG=True, TENANT_WARMUP_ENABLED=True, METRICS_ENABLED=False),
        db_manager=db_manager,
        tenant_pool=pool,
        company_directory=AsyncMock(),
    )

    async with app.router.lifespan_context(app):
        names = {task.get_name() for task in asyncio.all_tasks()}

    assert "tenant-warmup" in names
    assert "tenant-warmup-periodic" not in names


@pytest.mark.asyncio
async def test_startup_reports_mongo_uri_problems(pool, db_manager, caplog):
    settings = Settings(MONGODB_URL="mongodb://u:s3cret@db:27017/jazzam", TENANT_WARMUP_ENABLED=False, METRICS_ENABLED=False)
    app = create_app(settings=settings, db_manager=db_manager, tenant_pool=pool, company_directory=AsyncMock())

    with patch("jazzam_backend.main.validate_mongo_uri", wraps=validate_mongo_uri) as validate:
        with caplog.at_level(logging.WARNING):
            async with app.router.lifespan_context(app):
                pass

    validate.assert_called_once_with("mongodb://u:s3cret@db:27017/jazzam")
    assert any("authSource" in record.getMessage() for record in caplog.records)
    assert all("s3cret" not in record.getMessage() for record in caplog.records)


@pytest.mark.asyncio
async def test_metrics_endpoint_exposes_pool_metrics(pool):
    settings = Settings(TENANT_WARMUP_ENABLED=False, METRICS_ENABLED=True)
    app = create_app(settings=settings, db_manager=DatabaseManager(settings), tenant_pool=pool)
    await pool.acquire("t1")

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        await client.get("/health/tenant-pool")
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert "tenant_pool_active_connections 1.0" in response.text
    assert "tenant_pool_evictions_total" in response.text
    assert "http_requests_total" in response.text


def test_metrics_disabled_has_no_endpoint(pool):
    app = create_app(settings=Settings(METRICS_ENABLED=False), tenant_pool=pool)

    assert "/metrics" not in {route.path for route in app.routes}
