"""
# Jazzam Backend Application

FastAPI application factory and lifespan.

## Lifespan

**Startup:**
1. Validate the MongoDB base URI and log its warnings and errors.
2. Connect to the shared system database.
3. Start the tenant pool's idle sweep.
4. Schedule connection warmup for active companies (non-blocking, failures ignored). In
   production the warmup repeats every `TENANT_WARMUP_INTERVAL_MINUTES`.

**Shutdown:**
1. Cancel the warmup tasks if they are still running.
2. Shut the tenant pool down: stop the sweep, then close every tenant connection concurrently.
3. Disconnect from the system database.

## Wiring

The system database manager, tenant pool, model registry, company directory and resolver are
built per application and stored on `app.state`; none of them is a module-level singleton.
Authentication is an external layer that must place a `Principal` on `request.state.principal`
before tenant routes run.

When `METRICS_ENABLED` is set, the app is instrumented with `prometheus-fastapi-instrumentator`
and `/metrics` serves the HTTP metrics together with the tenant pool metrics.
"""

import asyncio
from contextlib import asynccontextmanager
import time
from typing import Any, List, Optional

from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator
import uvicorn

from jazzam_backend.config import Settings, settings as default_settings
from jazzam_backend.database import DatabaseManager, ModelRegistry, TenantConnectionPool
from jazzam_backend.database.tenant_uri import mask_uri, validate_mongo_uri
from jazzam_backend.managers.logging_manager import get_logger
from jazzam_backend.middleware.tenant_middleware import TenantResolver
from jazzam_backend.routes.health import router as health_router
from jazzam_backend.routes.tenant import router as tenant_router
from jazzam_backend.services.company_directory import CompanyDirectory
from jazzam_backend.utils.connection_warmer import warm_up_connections
from jazzam_backend.utils.logging_utils import log_application_lifecycle, log_error_with_context

logger = get_logger()

WARMUP_DELAY_SECONDS = 5.0


async def _run_warmup(app: FastAPI) -> None:
    settings = app.state.settings
    try:
        await warm_up_connections(
            app.state.tenant_pool,
            app.state.company_directory,
            limit=settings.TENANT_WARMUP_LIMIT,
            concurrency=settings.TENANT_WARMUP_CONCURRENCY,
        )
    except Exception as e:
        logger.error(f"Connection warmup error (non-critical): {e}")


async def _delayed_warmup(app: FastAPI, delay: float) -> None:
    await asyncio.sleep(delay)
    await _run_warmup(app)


async def _periodic_warmup(app: FastAPI, interval_seconds: float) -> None:
    """Re-warm active companies forever; cancelled at shutdown."""
    logger.info(f"Connection warmup scheduled every {interval_seconds:.0f}s")
    while True:
        await asyncio.sleep(interval_seconds)
        await _run_warmup(app)


def _check_mongo_uri(url: str) -> None:
    result = validate_mongo_uri(url)
    for warning in result["warnings"]:
        logger.warning(f"MongoDB URI warning: {warning}")
    for error in result["errors"]:
        logger.error(f"MongoDB URI error: {error}")
    if result["valid"]:
        logger.info(f"MongoDB URI validated: {mask_uri(url)} (database: {result['database_name'] or 'default'})")


async def _cancel_tasks(tasks: List[asyncio.Task]) -> None:
    for task in tasks:
        if task.done():
            continue
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info(f"{task.get_name()} cancelled")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Connect the system database and start the tenant pool; tear both down on shutdown.
    """
    startup_start_time = time.time()
    settings = app.state.settings
    log_application_lifecycle(
        "startup_initiated",
        {"environment": "production" if settings.is_production else "development"},
    )

    _check_mongo_uri(settings.MONGODB_URL)
    await app.state.db_manager.connect()
    app.state.tenant_pool.start()

    warmup_tasks: List[asyncio.Task] = []
    if settings.TENANT_WARMUP_ENABLED:
        warmup_tasks.append(
            asyncio.create_task(_delayed_warmup(app, WARMUP_DELAY_SECONDS), name="tenant-warmup")
        )
        if settings.is_production:
            warmup_tasks.append(
                asyncio.create_task(
                    _periodic_warmup(app, settings.TENANT_WARMUP_INTERVAL_MINUTES * 60),
                    name="tenant-warmup-periodic",
                )
            )

    log_application_lifecycle(
        "startup_completed",
        {
            "total_startup_duration": f"{time.time() - startup_start_time:.3f}s",
            "tenant_pool_max_size": settings.TENANT_POOL_MAX_SIZE,
        },
    )

    yield

    shutdown_start_time = time.time()
    log_application_lifecycle("shutdown_initiated", {"tenant_connections": len(app.state.tenant_pool)})

    await _cancel_tasks(warmup_tasks)

    try:
        await app.state.tenant_pool.shutdown()
    except Exception as e:
        log_error_with_context(e, {"operation": "tenant_pool_shutdown"})

    try:
        await app.state.db_manager.disconnect()
    except Exception as e:
        log_error_with_context(e, {"operation": "database_disconnection"})

    log_application_lifecycle(
        "shutdown_completed", {"total_shutdown_duration": f"{time.time() - shutdown_start_time:.3f}s"}
    )


def _instrument(app: FastAPI) -> None:
    logger.info("Setting up Prometheus metrics instrumentation...")
    try:
        # The in-progress gauge is registered per middleware instance and would clash across apps.
        instrumentator = Instrumentator(
            should_group_status_codes=True,
            should_ignore_untemplated=True,
            should_respect_env_var=False,
            should_instrument_requests_inprogress=False,
        )
        instrumentator.add().instrument(app).expose(app, include_in_schema=False, endpoint="/metrics")

        log_application_lifecycle(
            "prometheus_configured",
            {
                "metrics_endpoint": "/metrics",
                "group_status_codes": True,
                "ignore_untemplated": True,
                "track_requests_in_progress": False,
            },
        )
    except Exception as e:
        log_error_with_context(e, {"operation": "prometheus_setup"})
        logger.error(f"Failed to configure Prometheus metrics: {e}")


def create_app(
    settings: Optional[Settings] = None,
    db_manager: Optional[DatabaseManager] = None,
    tenant_pool: Optional[TenantConnectionPool] = None,
    company_directory: Any = None,
) -> FastAPI:
    """
    Build the application and its tenant infrastructure.

    Every collaborator can be injected, which is how tests run the routes against fakes.
    """
    settings = settings or default_settings
    db_manager = db_manager or DatabaseManager(settings)
    model_registry = ModelRegistry(settings.TENANT_DB_PREFIX)
    tenant_pool = tenant_pool or TenantConnectionPool.from_settings(settings, model_registry=model_registry)
    company_directory = company_directory or CompanyDirectory(db_manager, settings.COMPANIES_COLLECTION)

    app = FastAPI(title="Jazzam API", version="1.0.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.db_manager = db_manager
    app.state.model_registry = tenant_pool.model_registry or model_registry
    app.state.tenant_pool = tenant_pool
    app.state.company_directory = company_directory
    app.state.tenant_resolver = TenantResolver(
        company_directory,
        allowed_roles=settings.TENANT_ALLOWED_ROLES,
        admin_principal_types=settings.TENANT_ADMIN_PRINCIPAL_TYPES,
        db_prefix=settings.TENANT_DB_PREFIX,
    )

    app.include_router(health_router)
    app.include_router(tenant_router)
    if settings.METRICS_ENABLED:
        _instrument(app)
    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host=default_settings.HOST, port=default_settings.PORT)
