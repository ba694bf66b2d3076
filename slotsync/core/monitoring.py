"""Health checks and monitoring endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.orm import Session

from slotsync.config.database import get_db
from slotsync.config.redis import get_redis
from slotsync.models import SyncState
from slotsync.utils.datetime_utils import utc_now

health_router = APIRouter()


@health_router.get("")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "slotsync-api"}


@health_router.get("/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    """Detailed health check with dependencies"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }
    channels = {}

    # Check database
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
        channels = {
            "active": db.query(SyncState).count(),
            "expired": db.query(SyncState).filter(SyncState.expiration <= utc_now()).count(),
        }
    except Exception as e:
        checks["database"] = f"unhealthy: {str(e)}"

    # Check Redis
    try:
        redis_client = await get_redis()
        await redis_client.ping()
        checks["redis"] = "healthy"
        await redis_client.aclose()
    except Exception as e:
        checks["redis"] = f"unhealthy: {str(e)}"

    # Overall status
    if all(status == "healthy" for status in checks.values() if status != "unknown"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return {**checks, "calendar_channels": channels}
