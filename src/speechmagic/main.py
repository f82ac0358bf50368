"""
FastAPI Application Entry Point.

This module creates and configures the FastAPI application instance for the
speechmagic service. It sets up logging, routing and error handlers.

The application exposes two routers:
    - Generation API under api.prefix (default /api/tts)
    - Operations: /health, /metrics

Usage:
    # Run with uvicorn
    uvicorn speechmagic.main:app --host 0.0.0.0 --port 8000

    # Or use the module directly
    python -m uvicorn speechmagic.main:app --reload
"""

from __future__ import annotations

from fastapi import FastAPI

from speechmagic import __version__
from speechmagic.api.dependencies import get_settings
from speechmagic.api.routes import health_router, register_error_handlers, router
from speechmagic.core.logging import configure_logging


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory function:
        1. Configures structured logging (SPEECHMAGIC_LOG_LEVEL etc.)
        2. Creates a FastAPI instance with the service title
        3. Mounts the generation API under the configured prefix
        4. Installs the standardized error handlers

    The GenerationService itself is created lazily on the first request.

    Returns:
        FastAPI: Configured application instance ready to serve requests.
    """
    configure_logging()

    app = FastAPI(title="speechmagic", version=__version__)

    app.include_router(router, prefix=get_settings().api_prefix)
    app.include_router(health_router)
    register_error_handlers(app)

    return app


# Global application instance for ASGI servers (uvicorn, gunicorn, etc.)
app = create_app()
