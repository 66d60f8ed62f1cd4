"""
Global middleware and exception handlers.

Every ``ApiError`` raised below a route becomes the uniform error
envelope ``{statusCode, message, success: false, errors}``.
"""

from __future__ import annotations

import logging
import time

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.errors import ApiError
from utils.schemas import ApiErrorResponse

logger = logging.getLogger(__name__)


def _error_response(status_code: int, message: str, errors: dict | None = None) -> JSONResponse:
    body = ApiErrorResponse(status_code=status_code, message=message, errors=errors or {})
    return JSONResponse(status_code=status_code, content=body.to_wire())


def register_middleware(app: FastAPI) -> None:
    """Attach any app-level middleware."""

    @app.middleware("http")
    async def request_timer(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - start
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.debug("%s %s — %.3fs", request.method, request.url.path, elapsed)
        return response


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto HTTP responses."""

    @app.exception_handler(ApiError)
    async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
        level = logging.ERROR if exc.status_code >= 500 else logging.INFO
        logger.log(
            level, "%s %s → %d %s: %s",
            request.method, request.url.path, exc.status_code, type(exc).__name__, exc.message,
        )
        return _error_response(exc.status_code, exc.message, jsonable_encoder(exc.details))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error_response(400, "Invalid request", {"fields": jsonable_encoder(exc.errors())})

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error_response(500, "Something went wrong")
