"""Exception handlers mapping errors to the JSON error envelope."""

from typing import Any

import structlog
from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from appointment_service.core.exceptions import AppException

logger = structlog.get_logger(__name__)


def error_response(
    request: Request,
    status_code: int,
    error: str,
    message: Any,
    details: Any = None,
) -> JSONResponse:
    """Build the ``{error, message, path[, details]}`` body shared by all handlers."""
    content = {"error": error, "message": message, "path": str(request.url)}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """
    Handle domain exceptions.

    Not-found errors map to 404, validation errors to 400 and scheduling or
    state conflicts to 409. Structured details, such as the suggested slot of
    a scheduling conflict, are passed through.
    """
    error = type(exc).__name__
    logger.info(
        "request_rejected",
        error=error,
        status_code=exc.status_code,
        path=request.url.path,
    )
    return error_response(request, exc.status_code, error, exc.message, exc.details)


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    return error_response(request, exc.status_code, "HTTPException", exc.detail)


def jsonable_errors(exc: RequestValidationError) -> list[dict]:
    """Drop non-serializable ``ctx`` payloads from pydantic error entries."""
    errors = []
    for error in exc.errors():
        entry = {key: value for key, value in error.items() if key != "ctx"}
        if "ctx" in error:
            entry["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(entry)
    return errors


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies and query parameters, with pydantic's error list as details."""
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "Request validation failed",
        jsonable_errors(exc),
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "An unexpected error occurred",
    )
