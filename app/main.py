"""
FastAPI application entrypoint for the credit report analysis agent.
"""

from __future__ import annotations

import logging
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.routes import router as api_router
from app.core.config import get_settings
from app.core.errors import ConfigurationError
from app.core.logging import configure_logging

logger = logging.getLogger(__name__)


async def _configuration_error_handler(
    request: Request, exc: ConfigurationError
) -> JSONResponse:
    # Raised while building dependencies, before any route body runs.
    logger.error("Service misconfigured: %s", exc.message)
    return JSONResponse(
        status_code=HTTPStatus.SERVICE_UNAVAILABLE,
        content={"detail": exc.message},
    )


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="Credit Report Analysis Agent",
        version="0.1.0",
        description="REST API for credit report analysis and follow-up chat.",
    )
    app.add_exception_handler(ConfigurationError, _configuration_error_handler)
    app.include_router(api_router, prefix="/api")
    return app


app = create_app()

__all__ = ["app", "create_app"]
