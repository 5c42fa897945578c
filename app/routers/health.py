"""
Health check endpoints
"""

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_store
from app.store import IncentiveStore

router = APIRouter()

@router.get("/")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "incentive-engine"}

@router.get("/database")
async def database_health(store: IncentiveStore = Depends(get_store)):
    """Database health check"""
    try:
        is_healthy = await store.health_check()
    except Exception as e:
        raise HTTPException(status_code=503, detail=f"Database health check failed: {str(e)}")

    if not is_healthy:
        raise HTTPException(status_code=503, detail="Database connection failed")
    return {"status": "healthy", "database": "connected"}
