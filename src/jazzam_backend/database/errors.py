"""
Error taxonomy for tenant resolution and tenant database connections.

| Exception | Raised when | Surfaced as |
|-----------|-------------|-------------|
| `TenantValidationError` | Tenant id missing or not a valid database suffix | 400 |
| `TenantAuthorizationError` | Tenant record role or team membership mismatch | 403 |
| `TenantConnectionTimeout` | Connect or probe exceeded its bound | retried, then 503 |
| `TenantConnectionError` | Network/auth failure reaching the tenant database | retried, then 503 |
| `StaleConnectionDetected` | A cached connection failed its probe | never (internal) |
| `TenantUnavailableError` | Retry budget exhausted | 503 |
| `PoolClosedError` | `acquire` after the pool was shut down | 503 |

Messages never carry raw connection strings; callers mask URIs with
`jazzam_backend.database.tenant_uri.mask_uri` before formatting.
"""

from typing import Optional


class TenantError(Exception):
    """Base class for all tenant resolution and connection errors."""


class TenantValidationError(TenantError, ValueError):
    """The tenant identifier is missing or malformed."""


class TenantAuthorizationError(TenantError):
    """The principal may not access the requested tenant."""


class TenantConnectionError(TenantError):
    """The tenant database could not be reached."""

    def __init__(self, message: str, tenant_id: Optional[str] = None):
        super().__init__(message)
        self.tenant_id = tenant_id


class TenantConnectionTimeout(TenantConnectionError):
    """Connecting to, or probing, the tenant database exceeded its timeout."""


class StaleConnectionDetected(TenantConnectionError):
    """A cached connection failed its liveness probe and must be recreated."""


class PoolClosedError(TenantConnectionError):
    """The pool has been shut down and no longer hands out connections."""


class TenantUnavailableError(TenantError):
    """All connection attempts for a tenant failed."""

    def __init__(self, tenant_id: str, attempts: int, last_error: Optional[BaseException] = None):
        self.tenant_id = tenant_id
        self.attempts = attempts
        self.last_error = last_error
        detail = str(last_error) if last_error else "unknown error"
        super().__init__(f"Tenant connection failed for {tenant_id} after {attempts} attempts: {detail}")
