"""
Health endpoints for the system database and the tenant connection pool.
"""

from fastapi import APIRouter, Request

from jazzam_backend.utils.db_health import check_database_health

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("/database")
async def database_health(request: Request):
    """System database status plus tenant pool statistics."""
    return await check_database_health(request.app.state.db_manager, request.app.state.tenant_pool)


@router.get("/tenant-pool")
async def tenant_pool_stats(request: Request):
    """Tenant pool size, capacity and per-tenant idle time and age."""
    return request.app.state.tenant_pool.stats()
