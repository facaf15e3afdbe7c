"""Health check route handlers."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from badminton.database.db import get_db_session
from badminton.models.schemas import HealthResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/api/health", response_model=HealthResponse)
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Service status
    """
    return {"status": "healthy", "message": "API is running"}


@router.get("/api/health/db", response_model=HealthResponse)
async def database_health_check(session: AsyncSession = Depends(get_db_session)):
    """
    Database connectivity check.

    Returns:
        dict: Database status
    """
    try:
        await session.execute(text("SELECT 1"))
        return {"status": "healthy", "message": "Database is reachable"}
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {"status": "unhealthy", "message": f"Error: {str(e)}"}
