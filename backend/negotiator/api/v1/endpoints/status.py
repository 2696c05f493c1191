"""
Status and health check endpoints.

WHAT: Health monitoring for the database and reply provider
WHY: Quick diagnostics for ops and load balancers
HOW: FastAPI endpoint calling Database.ping and provider.ping
"""

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool

from ....core.config import Settings
from ....core.database import Database
from ....utils.logger import get_logger
from ..dependencies import get_database, get_provider, get_settings

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(
    config: Settings = Depends(get_settings),
    database: Database = Depends(get_database),
    provider=Depends(get_provider),
):
    """
    Overall application health check.

    WHAT: Database and provider status with app metadata
    WHY: The service is healthy without a provider (template replies), so
         only the database decides overall health
    HOW: Ping both, aggregate

    Returns:
        JSON with overall health status
    """
    db_status = await run_in_threadpool(database.ping)

    if provider is None:
        llm = {"enabled": False, "available": False, "error": None}
    else:
        try:
            llm_status = await provider.ping()
            llm = {"enabled": True, "available": llm_status.available, "error": llm_status.error}
        except Exception as e:
            logger.error(f"Health check provider ping failed: {e}")
            llm = {"enabled": True, "available": False, "error": str(e)}

    return {
        "status": "healthy" if db_status["available"] else "degraded",
        "version": config.APP_VERSION,
        "app_name": config.APP_NAME,
        "components": {
            "database": db_status,
            "llm": llm,
        }
    }
