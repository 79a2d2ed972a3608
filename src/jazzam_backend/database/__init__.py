"""
# Database Package

Persistence layer of the Jazzam backend, built on **Motor**.

## Core Components

- **`manager`**: `DatabaseManager` for the shared system database (companies, billing, audit logs).
- **`tenant_pool`**: `TenantConnectionPool`, the per-company connection cache with health checks,
  LRU capacity eviction and an idle sweep.
- **`tenant_connection`**: connection handle, factory and liveness probe used by the pool.
- **`model_registry`**: `ModelRegistry` / `TenantModel` typed handles bound to a tenant connection.
- **`tenant_uri`**: tenant database naming and URI helpers.
- **`errors`**: tenant error taxonomy.

Neither the system database manager nor the tenant pool is a module-level singleton: the
application factory builds both and stores them on `app.state`, so tests can run several isolated
apps side by side.
"""

from jazzam_backend.database.manager import DatabaseManager
from jazzam_backend.database.model_registry import ModelRegistry, TenantModel
from jazzam_backend.database.tenant_connection import (
    ConnectionEntry,
    HealthChecker,
    MotorConnectionFactory,
    ReadyState,
    TenantConnection,
)
from jazzam_backend.database.tenant_pool import EvictionScheduler, TenantConnectionPool

__all__ = [
    "ConnectionEntry",
    "DatabaseManager",
    "EvictionScheduler",
    "HealthChecker",
    "ModelRegistry",
    "MotorConnectionFactory",
    "ReadyState",
    "TenantConnection",
    "TenantConnectionPool",
    "TenantModel",
]
