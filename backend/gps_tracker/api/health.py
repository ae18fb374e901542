import logging
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession
from gps_tracker.core.clock import utcnow
from gps_tracker.core.config import settings
from gps_tracker.dependencies import get_db

logger = logging.getLogger(__name__)
router = APIRouter()

@router.get("/ping")
async def ping():
    return {
        "status": "ok",
        "timestamp": utcnow().isoformat(),
        "message": "GPS Tracker Server is running",
    }

@router.get("/health")
async def health(db: AsyncSession = Depends(get_db)):
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"❌ Health check fallido: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "timestamp": utcnow().isoformat(),
                "error": "Database connection failed",
            },
        )
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "database": "connected",
        "version": settings.APP_VERSION,
    }
