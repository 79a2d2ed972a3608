"""
# Tenant Connections

Building blocks of the tenant connection pool:

- **`ReadyState`**: lifecycle of one tenant connection.
- **`TenantConnection`**: the handle handed to request handlers. Wraps one Motor client bound to
  the tenant's isolated database (`jazzam_company_<tenant_id>`).
- **`ConnectionEntry`**: the pool's bookkeeping record (timestamps) around a handle.
- **`MotorConnectionFactory`**: opens a new tenant connection and waits for connect-or-error
  under a bounded timeout.
- **`HealthChecker`**: bounded-time `ping` probe against an existing connection.

## State Machine

```
            connect + probe ok
  CREATING ───────────────────▶ CONNECTED ──probe failure──▶ STALE
     │                              │                          │
     │ connect failure/timeout      │ close / evict / shutdown │ evicted
     ▼                              ▼                          ▼
   CLOSED ◀──────────────────── CLOSING ◀──────────────────────┘
```
"""

import asyncio
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import (
    ConnectionFailure,
    NetworkTimeout,
    PyMongoError,
    ServerSelectionTimeoutError,
)

from jazzam_backend.database.errors import StaleConnectionDetected, TenantConnectionError, TenantConnectionTimeout
from jazzam_backend.database.tenant_uri import (
    DEFAULT_TENANT_DB_PREFIX,
    build_tenant_uri,
    mask_uri,
    tenant_database_name,
)
from jazzam_backend.managers.logging_manager import get_logger

logger = get_logger(prefix="[TENANT_CONNECTION]")
health_logger = get_logger(prefix="[TENANT_HEALTH]")


class ReadyState(str, Enum):
    CREATING = "creating"
    CONNECTED = "connected"
    STALE = "stale"
    CLOSING = "closing"
    CLOSED = "closed"


class TenantConnection:
    """
    A live link to one tenant's isolated database.

    Attributes:
        tenant_id (`str`): The tenant this connection belongs to.
        name (`str`): The tenant database name.
        client: The Motor client owning the socket pool.
        database: The Motor database handle for `name`.
        connection_id (`str`): Unique identity of this connection instance. A recreated
            connection for the same tenant gets a new id.
        ready_state (`ReadyState`): Current lifecycle state.
        models (`Dict[str, Any]`): Model handles already registered on this connection.
    """

    def __init__(self, tenant_id: str, name: str, client: Any, database: Any = None):
        self.tenant_id = tenant_id
        self.name = name
        self.client = client
        self.database = database if database is not None else client[name]
        self.connection_id = uuid.uuid4().hex
        self.ready_state = ReadyState.CREATING
        self.models: Dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"TenantConnection(tenant_id={self.tenant_id!r}, name={self.name!r}, state={self.ready_state.value})"

    @property
    def is_connected(self) -> bool:
        return self.ready_state == ReadyState.CONNECTED

    async def ping(self) -> None:
        await self.database.command("ping")

    def mark_connected(self) -> None:
        self.ready_state = ReadyState.CONNECTED

    def mark_stale(self) -> None:
        if self.ready_state not in (ReadyState.CLOSING, ReadyState.CLOSED):
            self.ready_state = ReadyState.STALE

    async def close(self) -> None:
        """Close the underlying client. Safe to call more than once."""
        if self.ready_state == ReadyState.CLOSED:
            return
        self.ready_state = ReadyState.CLOSING
        try:
            result = self.client.close()
            if asyncio.iscoroutine(result):
                await result
        finally:
            self.ready_state = ReadyState.CLOSED
            self.models.clear()


@dataclass
class ConnectionEntry:
    """Pool record for one tenant. Timestamps come from the pool's clock, in seconds."""

    tenant_id: str
    connection: TenantConnection
    created_at: float
    last_used_at: float

    @property
    def ready_state(self) -> ReadyState:
        return self.connection.ready_state

    def touch(self, now: float) -> None:
        self.last_used_at = now

    def idle_time(self, now: float) -> float:
        return max(0.0, now - self.last_used_at)

    def age(self, now: float) -> float:
        return max(0.0, now - self.created_at)


class MotorConnectionFactory:
    """
    Opens tenant connections with Motor.

    The tenant database URI is derived from `base_uri` by `build_tenant_uri`; nothing else in the
    code base computes tenant database names.

    Example:
        ```python
        factory = MotorConnectionFactory("mongodb://db:27017/jazzam", connect_timeout_ms=5000)
        connection = await factory.create("64ab12")
        connection.name  # "jazzam_company_64ab12"
        ```
    """

    def __init__(
        self,
        base_uri: str,
        db_prefix: str = DEFAULT_TENANT_DB_PREFIX,
        connect_timeout_ms: int = 5000,
        max_pool_size: int = 10,
        min_pool_size: int = 2,
        socket_timeout_ms: int = 45000,
        client_class: Callable[..., Any] = AsyncIOMotorClient,
    ):
        self.base_uri = base_uri
        self.db_prefix = db_prefix
        self.connect_timeout_ms = connect_timeout_ms
        self.max_pool_size = max_pool_size
        self.min_pool_size = min_pool_size
        self.socket_timeout_ms = socket_timeout_ms
        self._client_class = client_class

    async def create(self, tenant_id: str) -> TenantConnection:
        """
        Open a connection for `tenant_id` and wait until it answers a ping.

        Raises:
            TenantConnectionTimeout: If the server does not answer within `connect_timeout_ms`.
            TenantConnectionError: On network or authentication failure.
        """
        name = tenant_database_name(tenant_id, self.db_prefix)
        uri = build_tenant_uri(self.base_uri, tenant_id, self.db_prefix)
        logger.info(f"Creating new connection for tenant {tenant_id} ({mask_uri(uri)})")

        connection: Optional[TenantConnection] = None
        try:
            # SRV lookups and URI option parsing happen in the client constructor
            client = self._client_class(
                uri,
                maxPoolSize=self.max_pool_size,
                minPoolSize=self.min_pool_size,
                socketTimeoutMS=self.socket_timeout_ms,
                serverSelectionTimeoutMS=self.connect_timeout_ms,
                connectTimeoutMS=self.connect_timeout_ms,
            )
            connection = TenantConnection(tenant_id, name, client)
            await asyncio.wait_for(connection.ping(), timeout=self.connect_timeout_ms / 1000)
        except (asyncio.TimeoutError, ServerSelectionTimeoutError, NetworkTimeout) as e:
            if connection is not None:
                await connection.close()
            logger.warning(f"Connect timeout for tenant {tenant_id} after {self.connect_timeout_ms}ms")
            raise TenantConnectionTimeout(
                f"Timed out connecting to tenant database {name} after {self.connect_timeout_ms}ms"
                + (f": {mask_uri(str(e))}" if str(e) else ""),
                tenant_id=tenant_id,
            ) from e
        except (PyMongoError, OSError) as e:
            if connection is not None:
                await connection.close()
            logger.error(f"Failed to connect to tenant database {name}: {mask_uri(str(e))}")
            raise TenantConnectionError(
                f"Failed to connect to tenant database {name}: {mask_uri(str(e))}", tenant_id=tenant_id
            ) from e

        logger.debug(f"Tenant {tenant_id} answered connect ping")
        return connection


class HealthChecker:
    """
    Bounded-time liveness probe.

    The probe timeout is independent of the connect timeout: a ping on a warm connection should
    be far cheaper than establishing one.
    """

    def __init__(self, ping_timeout_ms: int = 2000):
        self.ping_timeout_ms = ping_timeout_ms

    async def verify(self, connection: TenantConnection) -> None:
        """
        Ping `connection` once.

        Raises:
            TenantConnectionTimeout: If the ping exceeds `ping_timeout_ms`.
            StaleConnectionDetected: If the ping fails for any other reason.
        """
        if connection.ready_state in (ReadyState.CLOSING, ReadyState.CLOSED):
            raise StaleConnectionDetected(f"Connection {connection.name} is {connection.ready_state.value}")
        try:
            await asyncio.wait_for(connection.ping(), timeout=self.ping_timeout_ms / 1000)
        except (asyncio.TimeoutError, NetworkTimeout) as e:
            health_logger.warning(f"Ping timed out for {connection.name} after {self.ping_timeout_ms}ms")
            raise TenantConnectionTimeout(
                f"Liveness probe for {connection.name} exceeded {self.ping_timeout_ms}ms",
                tenant_id=connection.tenant_id,
            ) from e
        except (ConnectionFailure, PyMongoError, OSError) as e:
            health_logger.warning(f"Ping failed for {connection.name}: {mask_uri(str(e))}")
            raise StaleConnectionDetected(
                f"Liveness probe for {connection.name} failed: {mask_uri(str(e))}", tenant_id=connection.tenant_id
            ) from e

    async def is_alive(self, connection: TenantConnection) -> bool:
        """Return `True` when `verify()` passes; never raises connection errors."""
        try:
            await self.verify(connection)
        except TenantConnectionError:
            return False
        health_logger.debug(f"Ping passed for {connection.name}")
        return True
