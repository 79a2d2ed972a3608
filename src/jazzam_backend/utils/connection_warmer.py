"""
Connection warmup: pre-establish tenant connections for active companies after startup, so the
first request of a busy tenant does not pay the connect cost.

Failures are counted and logged, never raised: warmup is an optimisation only.
"""

import asyncio
from typing import Any, Dict, List

from jazzam_backend.database.errors import TenantError
from jazzam_backend.managers.logging_manager import get_logger

logger = get_logger(prefix="[ConnectionWarmer]")


async def warm_up_connections(pool: Any, directory: Any, limit: int = 20, concurrency: int = 5) -> Dict[str, Any]:
    """
    Acquire connections for up to `limit` active companies, `concurrency` at a time.

    Returns:
        Dict[str, Any]: `success` and `failed` counts plus per-company `errors`.
    """
    results: Dict[str, Any] = {"success": 0, "failed": 0, "errors": []}

    companies = await directory.list_active_companies(limit=limit)
    if not companies:
        logger.info("No active companies found for connection warmup")
        return results

    logger.info(f"Warming up connections for {len(companies)} active companies...")
    semaphore = asyncio.Semaphore(concurrency)

    async def warm(company_id: str) -> None:
        async with semaphore:
            try:
                connection = await pool.acquire(company_id)
            except TenantError as e:
                results["failed"] += 1
                results["errors"].append({"company_id": company_id, "error": str(e)})
                logger.warning(f"Failed to warm up connection for company {company_id}: {e}")
                return
            if connection.is_connected:
                results["success"] += 1
            else:
                results["failed"] += 1
                logger.warning(f"Connection not ready for company: {company_id}")

    ids: List[str] = [company.id for company in companies]
    await asyncio.gather(*(warm(company_id) for company_id in ids))

    logger.info(f"Connection warmup completed: {results['success']} succeeded, {results['failed']} failed")
    return results
