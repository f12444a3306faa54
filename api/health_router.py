"""
Health and Monitoring Router.

Public, unauthenticated endpoints for uptime checks:
- `/healthcheck`: confirms the service is running.
- `/monitoring/detailed`: database connectivity and table initialization
  state; reports "degraded" instead of failing when the database is down.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends

from core.database import TableInitializer, get_database_info
from core.logging_config import get_logger
from .dependencies import get_table_initializer

logger = get_logger(__name__)

SERVICE_NAME = "Hypeakz Data API"
VERSION = "1.0.0"

health_router = APIRouter(tags=["Health & Monitoring"])

monitoring_router = APIRouter(prefix="/monitoring", tags=["Health & Monitoring"])


@health_router.get("/healthcheck")
async def health_check() -> Dict[str, Any]:
    """Basic health check endpoint (no authentication required)"""
    logger.debug("Health check requested")

    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "service": SERVICE_NAME,
    }


@monitoring_router.get("/detailed")
async def detailed_health_check(
    tables: TableInitializer = Depends(get_table_initializer),
) -> Dict[str, Any]:
    """Detailed health check with database status"""
    logger.info("Detailed health check requested")

    health_status = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": VERSION,
        "service": SERVICE_NAME,
        "components": {},
    }

    db_info = await get_database_info(tables.engine)
    health_status["components"]["database"] = {
        "status": "healthy" if db_info["connection_healthy"] else "unhealthy",
        "tables_initialized": tables.initialized,
        "info": db_info,
    }
    if not db_info["connection_healthy"]:
        health_status["status"] = "degraded"

    return health_status
