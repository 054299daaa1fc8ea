"""
FastAPI application entry point for the HabitForge backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from habitforge.config import get_settings
from habitforge.errors import HabitForgeError, StoreUnavailable
from habitforge.routes import meta_router, router

logger = logging.getLogger(__name__)


async def handle_habitforge_error(request: Request, exc: HabitForgeError):
    headers = {}
    if isinstance(exc, StoreUnavailable):
        logger.warning("%s %s: %s", request.method, request.url.path, exc)
        headers["Retry-After"] = str(exc.retry_after_seconds)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
        headers=headers,
    )


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="HabitForge Backend (FastAPI)", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(HabitForgeError, handle_habitforge_error)
    app.include_router(meta_router)
    app.include_router(router, prefix=settings.api_prefix)
    return app


app = create_app()
