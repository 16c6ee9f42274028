"""
FastAPI application entry point for the tutor portal.
"""

from __future__ import annotations

from fastapi import FastAPI

from tutor_portal.config import get_settings
from tutor_portal.logging_utils import configure_logging
from tutor_portal.routes import router


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)
    app = FastAPI(title="Tutor Portal API", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
