"""
FastAPI application entrypoint for the session gateway.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from session_gateway.api.routes import router
from session_gateway.core.config import get_settings
from session_gateway.core.logging import configure_logging
from session_gateway.dependencies import get_http_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    yield
    if get_http_client.cache_info().currsize:
        await get_http_client().aclose()
        get_http_client.cache_clear()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)
    logger.info("Starting session gateway (%s)", settings.environment)

    app = FastAPI(
        title="Session Gateway",
        version="0.1.0",
        description="Google OAuth2 login with transparently refreshed sessions.",
        lifespan=lifespan,
    )
    app.include_router(router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
