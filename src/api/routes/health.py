"""Health check endpoint"""

from typing import Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
import structlog

from src.api.auth import get_db_manager
from src.database.manager import DatabaseManager

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1", tags=["health"])


class HealthResponse(BaseModel):
    """Health check response model"""

    status: str = Field(description="Overall health status (healthy or unhealthy)")
    database: str = Field(description="Database connection status")
    database_pool_size: int = Field(description="Current database connection pool size")
    database_pool_free: int = Field(description="Number of free connections in pool")
    execution_locked: Optional[bool] = Field(None, description="Global execution lock state")


@router.get("/health", response_model=HealthResponse)
async def health_check(
    response: Response,
    db_manager: DatabaseManager = Depends(get_db_manager),
) -> HealthResponse:
    """
    Database pool health and the execution lock flag.

    Returns 200 when the database answers, 503 otherwise. Public endpoint.
    """
    if not db_manager.pool:
        logger.error("health_check_failed", reason="database_pool_not_initialized")
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="unhealthy",
            database="disconnected",
            database_pool_size=0,
            database_pool_free=0,
        )

    try:
        pool_size = await db_manager.get_pool_size()
        pool_free = await db_manager.get_pool_free_size()
        system_settings = await db_manager.get_system_settings()
    except Exception as e:
        logger.error("health_check_failed", error=str(e))
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return HealthResponse(
            status="unhealthy",
            database="error",
            database_pool_size=0,
            database_pool_free=0,
        )

    return HealthResponse(
        status="healthy",
        database="connected",
        database_pool_size=pool_size,
        database_pool_free=pool_free,
        execution_locked=system_settings.arb_execution_locked,
    )
