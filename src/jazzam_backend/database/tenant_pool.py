"""
# Tenant Connection Pool

The `TenantConnectionPool` maps each tenant id to one live connection to that tenant's isolated
database. It is a **cache**, not a checkout/check-in pool: there is no `release()`, connections
stay open between requests and are shared by every request of the same tenant.

## Acquire Flow

```
acquire(tenant_id)
   │
   ├── validate id ──────────────────────────────▶ TenantValidationError (pool untouched)
   │
   ├── cached entry? ── yes ──▶ CONNECTED and ping ok? ── yes ──▶ touch + return
   │         │                        │
   │         │                        no ──▶ mark STALE, evict (transparent miss)
   │         no                       │
   │         ▼                        ▼
   ├── creation in flight for tenant? ── yes ──▶ await the shared creation task
   │         │
   │         no
   │         ▼
   └── factory.create ─▶ health_checker.verify ─▶ evict LRU (never this tenant) ─▶ register
```

## Capacity

Before a new entry is registered, least-recently-used entries of *other* tenants are removed
until there is room, so `len(pool) <= max_pool_size` holds at every await point. Their clients are
closed after the new entry is in place.

## Idle Eviction

`EvictionScheduler` owns a background task, started by `TenantConnectionPool.start()` and
cancelled by `stop()`/`shutdown()`. Every `sweep_interval_seconds` it closes entries idle longer
than `max_idle_seconds`, plus entries already known to be stale.

## Concurrency

All state lives on the instance and is mutated only between awaits of a single event loop.
Concurrent first accesses to one tenant share one pool-owned creation task, so a tenant never
ends up with two connections. Cancelling the request that started the creation does not cancel
the task; the other waiters still receive its result.

## Usage

```python
pool = TenantConnectionPool.from_settings(settings, model_registry=model_registry)
pool.start()

connection = await pool.acquire("64ab12")
leads = model_registry.get_model(connection, "Lead", LeadSchema)

await pool.shutdown()
```
"""

import asyncio
import functools
import time
from typing import Any, Callable, Dict, List, Optional

from jazzam_backend.database.errors import (
    PoolClosedError,
    StaleConnectionDetected,
    TenantConnectionError,
    TenantConnectionTimeout,
)
from jazzam_backend.database.pool_metrics import tenant_pool_metrics
from jazzam_backend.database.tenant_connection import (
    ConnectionEntry,
    HealthChecker,
    MotorConnectionFactory,
    ReadyState,
    TenantConnection,
)
from jazzam_backend.database.tenant_uri import DEFAULT_TENANT_DB_PREFIX, validate_tenant_id
from jazzam_backend.managers.logging_manager import get_logger

logger = get_logger(prefix="[TENANT_POOL]")
perf_logger = get_logger(prefix="[TENANT_POOL_PERFORMANCE]")


class EvictionScheduler:
    """
    Periodic idle sweep bound to one pool.

    The scheduler does nothing until `start()` is called from inside a running event loop.
    Tests drive sweeps directly through `run_once()` instead of waiting on the timer.
    """

    def __init__(self, pool: "TenantConnectionPool", interval_seconds: float):
        self.pool = pool
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="tenant-pool-idle-sweep")
        logger.info(f"Idle sweep scheduled every {self.interval_seconds}s")

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Idle sweep stopped")

    async def run_once(self) -> List[str]:
        return await self.pool.sweep_idle()

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Idle sweep failed: {e}", exc_info=True)


class TenantConnectionPool:
    """
    Registry of live tenant connections with lazy creation, health checks and bounded capacity.

    Args:
        factory: Object with `async create(tenant_id) -> TenantConnection`.
        health_checker: Liveness probe; defaults to a `HealthChecker` with a 2s ping timeout.
        max_pool_size: Maximum number of cached tenants.
        max_idle_seconds: Idle time after which the sweep removes an entry.
        sweep_interval_seconds: Cadence of the idle sweep.
        close_timeout_ms: Bound on closing one connection.
        db_prefix: Database name prefix, used to validate tenant ids.
        model_registry: Optional `ModelRegistry` whose handles are discarded when a connection
            leaves the pool.
        clock: Monotonic clock in seconds; injectable for tests.
    """

    def __init__(
        self,
        factory: Any,
        health_checker: Optional[HealthChecker] = None,
        max_pool_size: int = 50,
        max_idle_seconds: float = 600,
        sweep_interval_seconds: float = 300,
        close_timeout_ms: int = 5000,
        db_prefix: str = DEFAULT_TENANT_DB_PREFIX,
        model_registry: Any = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_pool_size < 1:
            raise ValueError("max_pool_size must be at least 1")
        self.factory = factory
        self.health_checker = health_checker or HealthChecker()
        self.max_pool_size = max_pool_size
        self.max_idle_seconds = max_idle_seconds
        self.close_timeout_ms = close_timeout_ms
        self.db_prefix = db_prefix
        self.model_registry = model_registry
        self._clock = clock
        self._entries: Dict[str, ConnectionEntry] = {}
        self._pending: Dict[str, asyncio.Task] = {}
        self._closed = False
        self.scheduler = EvictionScheduler(self, sweep_interval_seconds)
        tenant_pool_metrics.set_max_pool_size(max_pool_size)
        tenant_pool_metrics.set_active_connections(0)

    @classmethod
    def from_settings(cls, settings: Any, model_registry: Any = None, **overrides: Any) -> "TenantConnectionPool":
        """Build a pool and its Motor factory from a `Settings` instance."""
        factory = overrides.pop("factory", None) or MotorConnectionFactory(
            base_uri=settings.MONGODB_URL,
            db_prefix=settings.TENANT_DB_PREFIX,
            connect_timeout_ms=settings.TENANT_CONNECT_TIMEOUT_MS,
            max_pool_size=settings.TENANT_CLIENT_MAX_POOL_SIZE,
            min_pool_size=settings.TENANT_CLIENT_MIN_POOL_SIZE,
            socket_timeout_ms=settings.TENANT_SOCKET_TIMEOUT_MS,
        )
        kwargs: Dict[str, Any] = {
            "health_checker": HealthChecker(settings.TENANT_PING_TIMEOUT_MS),
            "max_pool_size": settings.TENANT_POOL_MAX_SIZE,
            "max_idle_seconds": settings.TENANT_MAX_IDLE_SECONDS,
            "sweep_interval_seconds": settings.TENANT_SWEEP_INTERVAL_SECONDS,
            "close_timeout_ms": settings.TENANT_CLOSE_TIMEOUT_MS,
            "db_prefix": settings.TENANT_DB_PREFIX,
            "model_registry": model_registry,
        }
        kwargs.update(overrides)
        return cls(factory, **kwargs)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, tenant_id: object) -> bool:
        return tenant_id in self._entries

    @property
    def closed(self) -> bool:
        return self._closed

    # --- lifecycle -------------------------------------------------------

    def start(self) -> None:
        """Start the idle sweep. Must be called from a running event loop."""
        if self._closed:
            raise PoolClosedError("Cannot start a pool that has been shut down")
        self.scheduler.start()

    async def stop(self) -> None:
        """Stop the idle sweep without closing connections."""
        await self.scheduler.stop()

    async def shutdown(self) -> None:
        """Stop the sweep, refuse new acquisitions and close every connection."""
        self._closed = True
        await self.stop()
        pending = list(self._pending.values())
        if pending:
            # In-flight creations see the closed flag and close their own connection.
            await asyncio.gather(*pending, return_exceptions=True)
        await self.close_all()

    async def __aenter__(self) -> "TenantConnectionPool":
        self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.shutdown()

    # --- acquire ---------------------------------------------------------

    async def acquire(self, tenant_id: Any) -> TenantConnection:
        """
        Return a live connection for `tenant_id`, creating it if needed.

        A cached connection that fails its probe is replaced transparently; the caller only
        sees an error if the replacement cannot be created.

        Raises:
            TenantValidationError: If `tenant_id` is missing or malformed.
            TenantConnectionTimeout: If connecting or the initial probe times out.
            TenantConnectionError: On network or authentication failure.
            PoolClosedError: After `shutdown()`.
        """
        if self._closed:
            raise PoolClosedError("Tenant connection pool is shut down")
        tenant_id = validate_tenant_id(tenant_id, self.db_prefix)

        entry = self._entries.get(tenant_id)
        if entry is not None:
            # Touch first: an entry being pinged is in use and must not be the LRU victim.
            entry.touch(self._clock())
            if entry.connection.is_connected and await self.health_checker.is_alive(entry.connection):
                # The entry may have been evicted while the probe was in flight.
                if self._entries.get(tenant_id) is entry and entry.connection.is_connected:
                    logger.debug(f"Reusing connection for tenant: {tenant_id}")
                    return entry.connection
            else:
                entry.connection.mark_stale()
                logger.warning(f"Connection for tenant {tenant_id} is stale, recreating")
                await self._evict(tenant_id, entry, reason="stale")

        return await self._get_or_create(tenant_id)

    async def _get_or_create(self, tenant_id: str) -> TenantConnection:
        task = self._pending.get(tenant_id)
        if task is None or task.done():
            entry = self._entries.get(tenant_id)
            if entry is not None and entry.connection.is_connected:
                entry.touch(self._clock())
                return entry.connection

            task = asyncio.create_task(self._create(tenant_id), name=f"tenant-connect-{tenant_id}")
            task.add_done_callback(functools.partial(self._creation_done, tenant_id))
            self._pending[tenant_id] = task
        else:
            logger.debug(f"Joining in-flight connection creation for tenant: {tenant_id}")

        # The task belongs to the pool; a cancelled caller stops waiting without cancelling it.
        return await asyncio.shield(task)

    def _creation_done(self, tenant_id: str, task: asyncio.Task) -> None:
        if self._pending.get(tenant_id) is task:
            del self._pending[tenant_id]
        if task.cancelled():
            return
        # Retrieving the exception also keeps an unawaited failure from being reported as lost.
        error = task.exception()
        if error is not None:
            tenant_pool_metrics.record_creation_failure(_failure_reason(error))

    async def _create(self, tenant_id: str) -> TenantConnection:
        start_time = time.time()
        connection = await self.factory.create(tenant_id)

        try:
            await self.health_checker.verify(connection)
        except StaleConnectionDetected as e:
            await self._close_connection(connection, "failed initial probe")
            raise TenantConnectionError(
                f"New connection for tenant {tenant_id} failed its liveness probe", tenant_id=tenant_id
            ) from e
        except TenantConnectionTimeout:
            await self._close_connection(connection, "initial probe timeout")
            raise

        if self._closed:
            await self._close_connection(connection, "pool shut down during creation")
            raise PoolClosedError("Tenant connection pool is shut down")

        connection.mark_connected()
        victims = self._take_capacity_victims(exclude=tenant_id)
        replaced = self._entries.pop(tenant_id, None)
        if replaced is not None and replaced.connection is not connection:
            victims.append(replaced)

        now = self._clock()
        self._entries[tenant_id] = ConnectionEntry(
            tenant_id=tenant_id, connection=connection, created_at=now, last_used_at=now
        )
        self._publish_size()
        if victims:
            await self._close_entries(victims, reason="capacity")

        duration = time.time() - start_time
        tenant_pool_metrics.record_creation_duration(duration)
        perf_logger.info(f"Connection created for tenant {tenant_id} in {duration:.3f}s")
        return connection

    # --- eviction --------------------------------------------------------

    def _take_capacity_victims(self, exclude: str) -> List[ConnectionEntry]:
        """Remove LRU entries of other tenants until one more entry fits."""
        victims: List[ConnectionEntry] = []
        while len(self._entries) >= self.max_pool_size:
            candidates = [entry for key, entry in self._entries.items() if key != exclude]
            if not candidates:
                break
            oldest = min(candidates, key=lambda entry: entry.last_used_at)
            del self._entries[oldest.tenant_id]
            victims.append(oldest)
            logger.info(
                f"Pool at capacity ({self.max_pool_size}), evicting least recently used tenant {oldest.tenant_id}"
            )
        return victims

    async def sweep_idle(self) -> List[str]:
        """Close entries idle past `max_idle_seconds`, and stale ones. Returns evicted tenant ids."""
        now = self._clock()
        victims = [
            entry
            for entry in self._entries.values()
            if entry.idle_time(now) > self.max_idle_seconds
            or entry.ready_state in (ReadyState.STALE, ReadyState.CLOSED)
        ]
        for entry in victims:
            del self._entries[entry.tenant_id]

        if victims:
            self._publish_size()
            await self._close_entries(victims, reason="idle")
            logger.info(f"Cleaned up {len(victims)} idle connections")
        return [entry.tenant_id for entry in victims]

    async def _evict(self, tenant_id: str, entry: ConnectionEntry, reason: str) -> None:
        if self._entries.get(tenant_id) is entry:
            del self._entries[tenant_id]
            self._publish_size()
        await self._close_entry(entry, reason)

    async def _close_entries(self, entries: List[ConnectionEntry], reason: str) -> None:
        await asyncio.gather(*(self._close_entry(entry, reason) for entry in entries))

    async def _close_entry(self, entry: ConnectionEntry, reason: str) -> None:
        tenant_pool_metrics.record_eviction(reason)
        await self._close_connection(entry.connection, reason)

    async def _close_connection(self, connection: TenantConnection, reason: str) -> None:
        try:
            await asyncio.wait_for(connection.close(), timeout=self.close_timeout_ms / 1000)
            logger.info(f"Closed connection for tenant {connection.tenant_id} ({reason})")
        except asyncio.TimeoutError:
            connection.ready_state = ReadyState.CLOSED
            logger.warning(
                f"Closing connection for tenant {connection.tenant_id} timed out after {self.close_timeout_ms}ms"
            )
        except Exception as e:
            connection.ready_state = ReadyState.CLOSED
            logger.error(f"Error closing connection for tenant {connection.tenant_id}: {e}")
        finally:
            if self.model_registry is not None:
                self.model_registry.discard_connection(connection)

    def _publish_size(self) -> None:
        tenant_pool_metrics.set_active_connections(len(self._entries))

    # --- explicit close / stats -----------------------------------------

    async def close(self, tenant_id: Any) -> bool:
        """Force-close one tenant's connection. Returns `False` if it was not cached."""
        tenant_id = validate_tenant_id(tenant_id, self.db_prefix)
        entry = self._entries.pop(tenant_id, None)
        if entry is None:
            return False
        self._publish_size()
        await self._close_entry(entry, reason="explicit")
        return True

    async def close_all(self) -> None:
        """Close every cached connection concurrently and wait for all of them."""
        entries = list(self._entries.values())
        self._entries.clear()
        self._publish_size()
        logger.info(f"Closing all {len(entries)} tenant connections...")
        await self._close_entries(entries, reason="shutdown")
        logger.info("All tenant connections closed")

    def stats(self) -> Dict[str, Any]:
        """Pool size, capacity, and per-entry ready state, idle time and age."""
        now = self._clock()
        return {
            "active_connections": len(self._entries),
            "max_pool_size": self.max_pool_size,
            "connections": [
                {
                    "tenant_id": entry.tenant_id,
                    "ready_state": entry.ready_state.value,
                    "idle_time_ms": int(entry.idle_time(now) * 1000),
                    "age_ms": int(entry.age(now) * 1000),
                }
                for entry in self._entries.values()
            ],
        }


def _failure_reason(error: BaseException) -> str:
    if isinstance(error, PoolClosedError):
        return "pool_closed"
    if isinstance(error, TenantConnectionTimeout):
        return "timeout"
    return "connection_error"
