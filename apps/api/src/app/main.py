"""
CareerGuide API - Main Application Entry Point

This module initializes and configures the FastAPI application including:
- Database and Redis connections
- CORS middleware
- API routing under /api/v1
- Liveness and readiness probes
"""

import logging
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.api import api_router
from app.core.config import settings
from app.core.database import async_session_maker, close_db, init_db
from app.core.redis import close_redis, init_redis, redis_status

logging.basicConfig(
    level=logging.DEBUG if settings.is_development else logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)

logger = logging.getLogger(__name__)


async def _connect(name: str, init: Callable[[], Awaitable[Any]]) -> None:
    """Run a startup connection; only fatal in production."""
    try:
        await init()
        logger.info(f"[OK] {name} connected")
    except Exception as e:
        logger.error(f"[FAIL] {name} connection failed: {e}")
        if settings.is_production:
            raise


@asynccontextmanager
async def lifespan(_app: FastAPI):
    logger.info(f"Starting CareerGuide API in {settings.python_env} mode...")

    # Rate limiting falls back to process memory without Redis
    await _connect("Redis", init_redis)
    await _connect("Database", init_db)

    yield

    logger.info("Shutting down CareerGuide API...")
    await close_redis()
    await close_db()
    logger.info("[OK] Cleanup complete")


app = FastAPI(
    title="CareerGuide API",
    description="Course and job application lifecycle API",
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
    return {
        "message": "Welcome to CareerGuide API",
        "status": "running",
        "environment": settings.python_env,
    }


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Liveness probe. Does not touch the store."""
    return {"status": "healthy"}


@app.get("/ready", tags=["Health"])
async def readiness_check() -> dict[str, str]:
    """Readiness probe: the database must answer; Redis is reported but optional."""
    try:
        async with async_session_maker() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: database unavailable: {e}")
        return {"status": "not_ready", "database": "unavailable"}

    return {
        "status": "ready",
        "database": "connected",
        "redis": await redis_status(),
    }
