"""FastAPI application exposing limiter administration."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

# Load environment variables from .env file
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, Request

from quotaguard import __version__
from quotaguard.api.routes import router as api_router
from quotaguard.config import Settings, get_settings
from quotaguard.quota import RateLimiter, create_rate_limiter
from quotaguard.store import initialize_store, shutdown_store

logger = logging.getLogger(__name__)


def create_app(
    settings: Settings | None = None,
    limiter: RateLimiter | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Settings to build from, defaults to the process settings
        limiter: Prebuilt limiter (tests inject one over an in-memory store)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan events."""
        logger.info("Starting quotaguard admin API...")
        app.state.limiter = limiter or create_rate_limiter(settings)
        await initialize_store(app.state.limiter.store)
        yield
        logger.info("Shutting down quotaguard admin API...")
        await shutdown_store(app.state.limiter.store)

    app = FastAPI(
        title="quotaguard",
        description="Admission control for outbound third-party API calls",
        version=__version__,
        lifespan=lifespan,
    )

    if settings.api_key:
        from quotaguard.api.security import ApiKeyMiddleware
        app.add_middleware(ApiKeyMiddleware, api_key=settings.api_key)
        logger.info("API key authentication enabled")

    app.include_router(api_router, prefix="/v1")

    @app.get("/health")
    async def health_check(request: Request):
        status = await request.app.state.limiter.health_check()
        return status.to_dict()

    @app.get("/")
    async def root():
        return {
            "name": "quotaguard",
            "version": __version__,
            "docs": "/docs",
        }

    return app
