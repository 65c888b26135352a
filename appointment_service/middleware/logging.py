"""Structured logging setup and per-request access logging."""

import logging
import sys
import time
import uuid
from collections.abc import Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from appointment_service.config import settings

REQUEST_ID_HEADER = "X-Request-ID"

# Polled by probes and scrapers; logged at debug only
QUIET_PATHS = frozenset({"/metrics", "/api/v1/health", "/api/v1/ping"})


def _add_service_context(
    logger: logging.Logger, method_name: str, event_dict: dict
) -> dict:
    event_dict.setdefault("service", settings.app_name)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def configure_logging() -> None:
    """Configure structlog on top of stdlib logging."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        _add_service_context,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )
    # LoggingMiddleware already logs every request
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Access log with a request id bound to every log line of the request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """
        Time the request and log its outcome.

        The request id comes from the ``X-Request-ID`` header when the caller
        sends one and is echoed back on the response.
        """
        logger = structlog.get_logger("appointment_service.access")

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        log = logger.debug if request.url.path in QUIET_PATHS else logger.info

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Process-Time"] = f"{duration_ms / 1000:.6f}"
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
