"""Translate core errors into JSON error responses with a stable kind."""

import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import AppError

logger = logging.getLogger(__name__)


def _error_response(
    status_code: int,
    kind: str,
    detail: str,
    errors: list | dict | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    content: dict = {"kind": kind, "detail": detail}
    if errors is not None:
        content["errors"] = jsonable_encoder(errors)
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """Install handlers for AppError, request validation and unexpected exceptions."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError) -> JSONResponse:
        log_fn = logger.error if exc.status_code >= 500 else logger.warning
        log_fn(
            "%s %s -> %s %s: %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.kind,
            exc.message,
        )
        headers = {"WWW-Authenticate": "Bearer"} if exc.status_code == 401 else None
        return _error_response(exc.status_code, exc.kind, exc.message, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.warning("%s %s -> 400 validation_error", request.method, request.url.path)
        return _error_response(400, "validation_error", "Invalid request", exc.errors())

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(
            "%s %s -> 500 internal_error (%s)",
            request.method,
            request.url.path,
            type(exc).__name__,
        )
        return _error_response(500, "internal_error", "Internal server error")
