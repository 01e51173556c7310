from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from stocklink import __version__
from stocklink.database import get_session

router = APIRouter(tags=["health"])

@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "stocklink", "version": __version__}

@router.get("/health/db")
async def database_health(session: AsyncSession = Depends(get_session)):
    """Check database connectivity"""
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        return {"status": "unhealthy", "database": "error", "error": str(e)}
    return {"status": "healthy", "database": "connected"}
