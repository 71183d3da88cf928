"""
Scholarship Aid API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- Background job scheduler
- CORS middleware
- API routing
- Health check endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from scholarship_aid.api import api_router
from scholarship_aid.core.config import settings
from scholarship_aid.core.database import async_session_maker, close_db, init_db
from scholarship_aid.core.redis import close_redis, get_redis, init_redis
from scholarship_aid.core.scheduler import (
    list_registered_jobs,
    start_scheduler,
    stop_scheduler,
    trigger_job_manually,
)
from scholarship_aid.modules.payments.jobs import register_payment_jobs

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events including:
    - Redis connection
    - Database connection
    - Background job scheduler
    """
    logger.info(f"Starting Scholarship Aid API in {settings.python_env} mode...")

    # Redis only backs rate limiting
    try:
        await init_redis()
    except Exception as e:
        logger.error(f"Redis connection failed: {e}")
        if settings.is_production:
            raise

    try:
        await init_db()
        logger.info("Database connected")
    except Exception as e:
        logger.error(f"Database connection failed: {e}")
        if settings.is_production:
            raise

    try:
        # Register jobs before starting the scheduler
        register_payment_jobs()
        await start_scheduler()
        logger.info("Background scheduler started")
    except Exception as e:
        logger.error(f"Background scheduler failed to start: {e}")
        if settings.is_production:
            raise

    yield

    logger.info("Shutting down Scholarship Aid API...")

    # Stop the scheduler first (wait for running jobs)
    await stop_scheduler()
    await close_redis()
    await close_db()
    logger.info("Cleanup complete")


app = FastAPI(
    title="Scholarship Aid API",
    description="Aid application lifecycle, interviews, enrollment verification and disbursement",
    version="0.1.0",
    docs_url="/docs" if settings.is_development else None,
    redoc_url="/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

app.include_router(api_router, prefix="/api/v1")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint - API welcome message."""
    return {
        "message": "Welcome to the Scholarship Aid API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for container orchestration."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness check: the database must answer."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise HTTPException(status_code=503, detail="Database unavailable") from e
    return {"status": "ready"}


@app.get("/debug/redis", tags=["Debug"])
async def debug_redis():
    """Test Redis connection."""
    redis = await get_redis()
    if redis is None:
        return {"redis": "not initialized"}
    try:
        await redis.ping()
        return {"redis": "connected"}
    except Exception as e:
        return {"redis": "error", "message": str(e)}


# ============================================
# Background Job Debug Endpoints
# ============================================
# Manual triggering for development. In production jobs run on schedule only.


@app.get("/debug/jobs", tags=["Debug"])
async def list_jobs():
    """List all registered background jobs and their next run time."""
    return {"jobs": list_registered_jobs()}


@app.post("/debug/jobs/{job_id}/trigger", tags=["Debug"])
async def trigger_job(job_id: str):
    """
    Manually trigger a background job.

    Args:
        job_id: The ID of the job to trigger. Available jobs:
            - payments_purge_stale_processing_claims

    Raises:
        HTTPException 403: Outside development
        HTTPException 400: If job_id is not found
    """
    if not settings.is_development:
        raise HTTPException(status_code=403, detail="Manual job triggers are disabled")

    try:
        return await trigger_job_manually(job_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
