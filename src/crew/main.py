"""FastAPI application factory."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from crew.config import get_settings
from crew.crew_score.promotion_notifier import drain_promotion_notifications
from crew.crew_score.router import router as crew_score_router
from crew.database import close_db, init_db
from crew.health.router import router as health_router
from crew.middleware import setup_middleware
from crew.redis_client import close_redis, init_redis


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    await init_redis(settings.redis_url)

    yield

    await drain_promotion_notifications()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Crew Score API",
        description="Member engagement scoring: crew scores, tiers and promotions",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(crew_score_router)

    return app


app = create_app()
