"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from shiftwatch.bookings.router import router as bookings_router
from shiftwatch.config import get_settings
from shiftwatch.database import close_db, get_session_factory, init_db
from shiftwatch.gamification.seed import seed_achievements
from shiftwatch.health.router import router as health_router
from shiftwatch.leaderboard.router import router as leaderboard_router
from shiftwatch.middleware import setup_middleware
from shiftwatch.recurring.router import router as recurring_router
from shiftwatch.redis_client import close_redis, init_redis
from shiftwatch.reports.router import router as reports_router
from shiftwatch.scheduling.router import router as scheduling_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    # Achievement catalogue is idempotent; tables may be missing before the first migration
    try:
        async with get_session_factory()() as db:
            await seed_achievements(db)
    except Exception:
        logger.warning("Achievement seeding failed (tables may not exist yet)", exc_info=True)

    yield

    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Shiftwatch API",
        description="Shift scheduling and gamified booking for community watch volunteers",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(scheduling_router)
    app.include_router(bookings_router)
    app.include_router(recurring_router)
    app.include_router(reports_router)
    app.include_router(leaderboard_router)

    return app


app = create_app()
