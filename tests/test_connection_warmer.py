"""
Tests for startup connection warmup.
"""

from unittest.mock import AsyncMock

import pytest

from jazzam_backend.database.errors import TenantConnectionError
from jazzam_backend.database.tenant_pool import TenantConnectionPool
from jazzam_backend.models.company_models import CompanyRecord
from jazzam_backend.utils.connection_warmer import warm_up_connections


def companies(*ids):
    return [CompanyRecord(id=company_id, user_type="company") for company_id in ids]


@pytest.mark.asyncio
async def test_warmup_counts_success_and_failure(pool, factory):
    directory = AsyncMock()
    directory.list_active_companies.return_value = companies("c1", "c2", "c3")
    factory.fail_for["c2"] = TenantConnectionError("connection refused", tenant_id="c2")

    results = await warm_up_connections(pool, directory, limit=20, concurrency=5)

    assert results["success"] == 2
    assert results["failed"] == 1
    assert results["errors"] == [{"company_id": "c2", "error": "connection refused"}]
    assert "c1" in pool and "c3" in pool
    directory.list_active_companies.assert_awaited_once_with(limit=20)


@pytest.mark.asyncio
async def test_warmup_respects_concurrency(factory, clock):
    pool = TenantConnectionPool(factory, max_pool_size=10, clock=clock)
    factory.delay = 0.01
    directory = AsyncMock()
    directory.list_active_companies.return_value = companies(*(f"c{i}" for i in range(6)))

    results = await warm_up_connections(pool, directory, concurrency=2)

    assert results["success"] == 6
    assert factory.max_in_flight == 2


@pytest.mark.asyncio
async def test_warmup_with_no_companies(pool, factory):
    directory = AsyncMock()
    directory.list_active_companies.return_value = []

    results = await warm_up_connections(pool, directory)

    assert results == {"success": 0, "failed": 0, "errors": []}
    assert factory.calls == {}
