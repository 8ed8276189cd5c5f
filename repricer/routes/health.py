from fastapi import APIRouter
from sqlalchemy import text

from repricer.database import async_session
from repricer.scheduler import get_scheduler_status

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Metal Repricer"}


@router.get("/health/db")
async def database_health():
    """Check database connectivity"""
    try:
        async with async_session() as session:
            await session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "error", "error": str(e)}


@router.get("/health/scheduler")
async def scheduler_health():
    """Scheduler state and next run times"""
    return await get_scheduler_status()
