"""
Database health report combining the system database and the tenant connection pool.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from jazzam_backend.database.tenant_uri import mask_uri


async def check_database_health(db_manager: Any, pool: Any) -> Dict[str, Any]:
    """
    Returns:
        Dict[str, Any]: `system_database` status (`healthy`, `unhealthy` or `not_connected`),
        `tenant_connections` pool stats, and an ISO `timestamp`.
    """
    system: Dict[str, Any] = {"name": db_manager.settings.MONGODB_DATABASE}
    if db_manager.client is None:
        system["status"] = "not_connected"
    elif await db_manager.health_check():
        system["status"] = "healthy"
    else:
        system["status"] = "unhealthy"
    system["url"] = mask_uri(db_manager.settings.MONGODB_URL)

    return {
        "system_database": system,
        "tenant_connections": pool.stats(),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
