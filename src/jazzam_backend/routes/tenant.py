"""
Tenant endpoints.
"""

from fastapi import APIRouter, Depends

from jazzam_backend.middleware.tenant_middleware import TenantContext, get_tenant_context
from jazzam_backend.models.company_models import TenantConnectionInfo

router = APIRouter(prefix="/tenant", tags=["Tenant"])


@router.get("/connection", response_model=TenantConnectionInfo)
async def tenant_connection(tenant: TenantContext = Depends(get_tenant_context)) -> TenantConnectionInfo:
    """Describe the tenant database the current request resolved to."""
    return TenantConnectionInfo(
        tenant_id=tenant.tenant_id,
        database=tenant.connection.name,
        ready_state=tenant.connection.ready_state.value,
    )
