"""
FastAPI application entry point for the SnapBox backend.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from snapbox import __version__
from snapbox.cleanup import build_scheduler, run_cleanup
from snapbox.config import Settings, get_settings
from snapbox.dependencies import get_code_store, get_db_client, get_storage_client
from snapbox.routes import VERIFICATION_ENDPOINTS, router

logger = logging.getLogger(__name__)


class SpaStaticFiles(StaticFiles):
    """Static files with ``index.html`` served for unknown paths (client-side routing)."""

    async def get_response(self, path: str, scope):
        try:
            return await super().get_response(path, scope)
        except StarletteHTTPException as exc:
            if exc.status_code != 404:
                raise
            return await super().get_response("index.html", scope)


async def http_error_handler(request: Request, exc: StarletteHTTPException):
    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(
        status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None)
    )


async def validation_error_handler(request: Request, exc: RequestValidationError):
    content = {"error": "Invalid request", "details": jsonable_encoder(exc.errors())}
    if request.scope.get("endpoint") in VERIFICATION_ENDPOINTS:
        content = {"success": False, **content}
    return JSONResponse(status_code=400, content=content)


async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def _resolve(app: FastAPI, dependency, settings: Settings):
    override = app.dependency_overrides.get(dependency)
    return override() if override else dependency(settings)


def _make_lifespan(settings: Settings):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        scheduler = None
        if settings.cleanup_enabled:
            scheduler = build_scheduler(
                settings,
                lambda: run_cleanup(
                    _resolve(app, get_db_client, settings),
                    _resolve(app, get_storage_client, settings),
                    _resolve(app, get_code_store, settings),
                    settings,
                ),
            )
            scheduler.start()
            logger.info(
                "Cleanup scheduled daily at %02d:%02d %s",
                settings.cleanup_hour,
                settings.cleanup_minute,
                settings.cleanup_timezone,
            )
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)

    return lifespan


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="SnapBox Backend", version=__version__, lifespan=_make_lifespan(settings))
    app.dependency_overrides[get_settings] = lambda: settings

    origins = settings.cors_origins()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router, prefix=settings.api_prefix)

    build_dir = settings.frontend_build_dir
    if build_dir:
        if os.path.isfile(os.path.join(build_dir, "index.html")):
            app.mount("/", SpaStaticFiles(directory=build_dir, html=True), name="frontend")
        else:
            logger.warning("FRONTEND_BUILD_DIR %s has no index.html; not serving it", build_dir)
    return app
