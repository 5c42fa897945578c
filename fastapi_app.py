"""
FastAPI application for the Incentive & Credit-Point Engine
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import database_manager
from app.routers import health, incentives, services

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Connect the database pool on startup and close it on shutdown"""
    logger.info("Starting Incentive Engine API...")
    try:
        await database_manager.connect()
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        logger.warning("API starting without database connection")

    yield

    logger.info("Shutting down Incentive Engine API...")
    await database_manager.disconnect()


app = FastAPI(
    title="Incentive Engine API",
    description="Staff incentive and technician credit-point calculations",
    version="1.0.0",
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/health", tags=["health"])
app.include_router(incentives.router, prefix="/incentives", tags=["incentives"])
app.include_router(services.router, prefix="/services", tags=["services"])


@app.get("/")
async def root():
    return {
        "message": "Incentive Engine API is running",
        "version": "1.0.0",
        "endpoints": {
            "health": "/health",
            "incentives": "/incentives",
            "services": "/services",
            "docs": "/docs",
        },
    }


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": f"Internal server error: {str(exc)}"},
    )
