"""
Shared fixtures for tenant connection tests.

Connections are real `TenantConnection` objects wrapping mocked Motor clients, so the pool's
state machine runs unmodified while no MongoDB server is needed.
"""

import asyncio
from typing import Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from jazzam_backend.database.model_registry import ModelRegistry
from jazzam_backend.database.tenant_connection import HealthChecker, TenantConnection
from jazzam_backend.database.tenant_pool import TenantConnectionPool
from jazzam_backend.database.tenant_uri import tenant_database_name


def build_connection(tenant_id: str) -> TenantConnection:
    client = MagicMock()
    database = MagicMock()
    database.command = AsyncMock(return_value={"ok": 1})
    return TenantConnection(tenant_id, tenant_database_name(tenant_id), client, database)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeFactory:
    """Connection factory that records calls and can be told to fail."""

    def __init__(self):
        self.created: List[TenantConnection] = []
        self.calls: Dict[str, int] = {}
        self.delay = 0.0
        self.fail_with: Optional[Exception] = None
        self.fail_for: Dict[str, Exception] = {}
        self.ping_error: Optional[Exception] = None
        self.in_flight = 0
        self.max_in_flight = 0

    async def create(self, tenant_id: str) -> TenantConnection:
        self.calls[tenant_id] = self.calls.get(tenant_id, 0) + 1
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            error = self.fail_for.get(tenant_id) or self.fail_with
            if error is not None:
                raise error
            connection = build_connection(tenant_id)
            if self.ping_error is not None:
                connection.database.command.side_effect = self.ping_error
            self.created.append(connection)
            return connection
        finally:
            self.in_flight -= 1


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def model_registry():
    return ModelRegistry()


@pytest.fixture
def pool(factory, clock, model_registry):
    return TenantConnectionPool(
        factory,
        health_checker=HealthChecker(ping_timeout_ms=200),
        max_pool_size=3,
        max_idle_seconds=600,
        sweep_interval_seconds=300,
        close_timeout_ms=200,
        model_registry=model_registry,
        clock=clock,
    )


@pytest.fixture
def make_connection():
    return build_connection
