"""
# Tenant Pool Metrics

**Prometheus Metrics** for the tenant connection pool, exposed at `/metrics` together with the
HTTP metrics of the instrumented app.

## Metrics

- **Gauges**: `tenant_pool_active_connections`, `tenant_pool_max_size`.
- **Counters**: `tenant_pool_evictions_total{reason}` with reasons `capacity`, `idle`, `stale`,
  `explicit` and `shutdown`; `tenant_pool_creation_failures_total{reason}` with reasons
  `timeout`, `connection_error` and `pool_closed`.
- **Histograms**: `tenant_connection_create_duration_seconds`.

## Usage Example

```python
tenant_pool_metrics.record_eviction("capacity")
tenant_pool_metrics.set_active_connections(len(pool))
```
"""

from prometheus_client import Counter, Gauge, Histogram

from jazzam_backend.managers.logging_manager import get_logger

logger = get_logger(prefix="[TenantPoolMetrics]")


class TenantPoolMetrics:
    """
    Prometheus metrics for the tenant connection pool.

    Metrics are registered on the default `prometheus_client` registry, so they can only be
    constructed once per process; use the module-level `tenant_pool_metrics` instance.
    """

    def __init__(self):
        """Initialize metrics."""
        # Gauges
        self.active_connections = Gauge(
            "tenant_pool_active_connections",
            "Number of tenant connections currently cached",
        )

        self.max_pool_size = Gauge(
            "tenant_pool_max_size",
            "Configured capacity of the tenant connection pool",
        )

        # Counters
        self.evictions_total = Counter(
            "tenant_pool_evictions_total",
            "Total number of tenant connections removed from the pool",
            ["reason"],
        )

        self.creation_failures_total = Counter(
            "tenant_pool_creation_failures_total",
            "Total number of failed tenant connection creations",
            ["reason"],
        )

        # Histograms
        self.create_duration = Histogram(
            "tenant_connection_create_duration_seconds",
            "Time to open and verify a tenant connection",
            buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
        )

        logger.info("Tenant pool metrics initialized")

    def set_active_connections(self, count: int) -> None:
        self.active_connections.set(count)

    def set_max_pool_size(self, size: int) -> None:
        self.max_pool_size.set(size)

    def record_eviction(self, reason: str, count: int = 1) -> None:
        """Count `count` connections removed from the pool for `reason`."""
        if count:
            self.evictions_total.labels(reason=reason).inc(count)

    def record_creation_failure(self, reason: str) -> None:
        self.creation_failures_total.labels(reason=reason).inc()

    def record_creation_duration(self, seconds: float) -> None:
        self.create_duration.observe(seconds)


# Global instance
tenant_pool_metrics = TenantPoolMetrics()
