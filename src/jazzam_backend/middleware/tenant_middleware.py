"""
# Tenant Resolution

FastAPI dependencies that turn an authenticated principal into a live tenant database
connection for the current request.

## Resolution Order

1. **Principal**: supplied by the authentication layer on `request.state.principal`.
   Missing principal → **401**.
2. **Tenant id**: the `companyId` query parameter when present, otherwise the principal's own id
   (only company accounts own a tenant; a plain user without override → **403**).
3. **Validation**: malformed tenant id → **400**.
4. **Authorization**: the id must name a company record whose `user_type` is allowed
   (→ **403** otherwise). A principal that is not the tenant owner must be listed in the
   company's `team_members`, unless it is a platform administrator.
5. **Connection**: `pool.acquire()` under a bounded retry policy (3 attempts, 500ms × attempt
   between attempts). Exhausted retries → **503** with a generic message.

## Usage

```python
from jazzam_backend.middleware.tenant_middleware import TenantContext, get_tenant_context

@router.get("/leads")
async def list_leads(tenant: TenantContext = Depends(get_tenant_context)):
    Lead = model_registry.get_model(tenant.connection, "Lead", LeadSchema)
    return await Lead.find_many()
```
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional, Tuple

from fastapi import Depends, HTTPException, Request, status

from jazzam_backend.config import settings as default_settings
from jazzam_backend.database.errors import (
    PoolClosedError,
    TenantAuthorizationError,
    TenantConnectionError,
    TenantUnavailableError,
    TenantValidationError,
)
from jazzam_backend.database.tenant_connection import TenantConnection
from jazzam_backend.database.tenant_uri import DEFAULT_TENANT_DB_PREFIX, validate_tenant_id
from jazzam_backend.managers.logging_manager import get_logger
from jazzam_backend.middleware.tenant_context import set_tenant_context
from jazzam_backend.models.company_models import CompanyRecord, Principal

logger = get_logger(prefix="[Tenant Middleware]")

UNAVAILABLE_DETAIL = "Tenant database is temporarily unavailable"


@dataclass
class TenantContext:
    """What a handler receives once tenant resolution succeeds."""

    tenant_id: str
    connection: TenantConnection
    company: CompanyRecord


class TenantResolver:
    """
    Resolves and authorizes the tenant a principal is asking for.

    Args:
        directory: Object with `async get_company(company_id) -> Optional[CompanyRecord]`.
        allowed_roles: Company `user_type` values that own a tenant database.
        admin_principal_types: Principal types allowed into any permitted tenant without
            team membership.
        db_prefix: Tenant database prefix, used for id validation.
    """

    def __init__(
        self,
        directory: Any,
        allowed_roles: Iterable[str] = ("company",),
        admin_principal_types: Iterable[str] = ("admin",),
        db_prefix: str = DEFAULT_TENANT_DB_PREFIX,
    ):
        self.directory = directory
        self.allowed_roles = frozenset(allowed_roles)
        self.admin_principal_types = frozenset(admin_principal_types)
        self.db_prefix = db_prefix

    async def resolve(self, principal: Principal, override: Optional[str] = None) -> Tuple[str, CompanyRecord]:
        """
        Return `(tenant_id, company)` for `principal`.

        Raises:
            TenantValidationError: If the resolved id is malformed.
            TenantAuthorizationError: If the principal may not access the tenant.
        """
        if override is not None:
            tenant_id = override
        elif principal.user_type in self.allowed_roles:
            tenant_id = principal.id
        else:
            raise TenantAuthorizationError("Users cannot access company-specific resources directly")

        tenant_id = validate_tenant_id(tenant_id, self.db_prefix)

        company = await self.directory.get_company(tenant_id)
        if company is None or company.user_type not in self.allowed_roles:
            raise TenantAuthorizationError("Invalid tenant access - only companies can have tenant databases")

        is_owner = principal.id == tenant_id
        if not is_owner and principal.user_type not in self.admin_principal_types:
            if not company.has_team_member(principal.id):
                raise TenantAuthorizationError("User is not a team member of this company")

        return tenant_id, company


async def acquire_with_retry(
    pool: Any,
    tenant_id: str,
    attempts: int = 3,
    base_delay_ms: int = 500,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> TenantConnection:
    """
    Acquire a tenant connection, retrying connection failures.

    Attempt N+1 starts only after attempt N failed and `base_delay_ms × N` elapsed.
    Validation errors and a shut-down pool are raised immediately.

    Raises:
        TenantValidationError: If `tenant_id` is malformed.
        PoolClosedError: If the pool has been shut down.
        TenantUnavailableError: When every attempt failed; carries the last failure.
    """
    last_error: Optional[TenantConnectionError] = None
    for attempt in range(1, attempts + 1):
        try:
            return await pool.acquire(tenant_id)
        except PoolClosedError:
            raise
        except TenantConnectionError as e:
            last_error = e
            logger.warning(
                "Failed to get tenant connection for %s (attempt %d/%d): %s", tenant_id, attempt, attempts, e
            )
            if attempt < attempts:
                delay = base_delay_ms * attempt / 1000
                logger.info(f"Waiting {delay:.1f}s before retry")
                await sleep(delay)

    logger.error(f"Giving up on tenant connection for {tenant_id} after {attempts} attempts")
    raise TenantUnavailableError(tenant_id, attempts, last_error)


async def get_current_principal(request: Request) -> Principal:
    """Read the principal placed on the request by the authentication layer."""
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    if isinstance(principal, dict):
        principal = Principal.model_validate(principal)
    return principal


async def get_tenant_context(
    request: Request, principal: Principal = Depends(get_current_principal)
) -> TenantContext:
    """
    Resolve the tenant for this request and attach its connection.

    On success `request.state.tenant_id`, `request.state.tenant_connection` and
    `request.state.company` are set, and the tenant context variables are populated.
    """
    app_state = request.app.state
    settings = getattr(app_state, "settings", default_settings)
    resolver: TenantResolver = app_state.tenant_resolver
    pool = app_state.tenant_pool

    override = request.query_params.get(settings.TENANT_OVERRIDE_PARAM)

    try:
        tenant_id, company = await resolver.resolve(principal, override)
        connection = await acquire_with_retry(
            pool,
            tenant_id,
            attempts=settings.TENANT_CONNECTION_RETRIES,
            base_delay_ms=settings.TENANT_RETRY_BASE_DELAY_MS,
        )
    except TenantValidationError as e:
        logger.info(f"Rejected tenant request from {principal.id}: {e}")
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except TenantAuthorizationError as e:
        logger.warning(f"Denied tenant access for principal {principal.id}: {e}")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))
    except (TenantUnavailableError, PoolClosedError) as e:
        logger.error(f"Failed to inject tenant connection: {e}")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=UNAVAILABLE_DETAIL)

    request.state.tenant_id = tenant_id
    request.state.tenant_connection = connection
    request.state.company = company
    set_tenant_context(tenant_id, connection)
    logger.debug(f"Tenant connection injected: {tenant_id}")

    return TenantContext(tenant_id=tenant_id, connection=connection, company=company)
