"""
Middleware configuration for the DAMP API.

Centralizes CORS configuration, request logging and global exception handlers.
"""

import time

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from damp.config.settings import Settings
from damp.errors import DampError, NotInitializedError
from damp.models.result import OperationResult
from damp.utils.logging import get_logger

logger = get_logger(__name__, prefix="API")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status and duration of API requests."""

    # The event stream stays open for the lifetime of the client
    EXCLUDED_PATHS = {"/health", "/api/events", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if path in self.EXCLUDED_PATHS:
            return await call_next(request)

        start = time.time()
        response = await call_next(request)
        duration_ms = (time.time() - start) * 1000
        logger.info(f"{request.method} {path} -> {response.status_code} ({duration_ms:.1f}ms)")
        return response


def setup_cors_middleware(app: FastAPI, settings: Settings) -> None:
    origins = [o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()] or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Errors that escape a manager still reach the client as an OperationResult."""

    @app.exception_handler(NotInitializedError)
    async def not_initialized_handler(request: Request, exc: NotInitializedError):
        logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=503, content=OperationResult.fail(str(exc)).model_dump())

    @app.exception_handler(DampError)
    async def damp_error_handler(request: Request, exc: DampError):
        return JSONResponse(status_code=400, content=OperationResult.fail(str(exc)).model_dump())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(
            f"Unhandled exception in {request.method} {request.url.path}: "
            f"{type(exc).__name__}: {exc}"
        )
        return JSONResponse(status_code=500, content=OperationResult.fail(str(exc)).model_dump())


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Set up all middleware for the FastAPI application."""
    app.add_middleware(RequestLoggingMiddleware)
    setup_cors_middleware(app, settings)
    setup_exception_handlers(app)
