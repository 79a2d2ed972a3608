"""API routers."""

from jazzam_backend.routes.health import router as health_router
from jazzam_backend.routes.tenant import router as tenant_router

__all__ = ["health_router", "tenant_router"]
