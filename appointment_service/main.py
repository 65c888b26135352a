"""FastAPI application entry point."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.exceptions import HTTPException as StarletteHTTPException

from appointment_service.api.v1.router import api_router
from appointment_service.config import settings
from appointment_service.core.exceptions import AppException
from appointment_service.core.redis_client import (
    check_redis_connection,
    close_redis_connection,
)
from appointment_service.database import check_database_connection, engine
from appointment_service.middleware.error_handler import (
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from appointment_service.middleware.logging import (
    REQUEST_ID_HEADER,
    LoggingMiddleware,
    configure_logging,
)

configure_logging()
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Probe backing services on startup and release them on shutdown.

    A failed probe does not stop startup; the detailed health check reports
    the outage instead.
    """
    logger.info(
        "application_startup",
        version=settings.app_version,
        patient_service_url=settings.patient_service_url,
        doctor_service_url=settings.doctor_service_url,
        clinic_timezone=settings.clinic_timezone,
        working_hours=f"{settings.working_hour_start:02d}:00-{settings.working_hour_end:02d}:00",
    )

    database_ok = await check_database_connection()
    (logger.info if database_ok else logger.error)("database_probe", ok=database_ok)

    redis_ok = await check_redis_connection()
    (logger.info if redis_ok else logger.warning)("redis_probe", ok=redis_ok)

    if not settings.smtp_configured:
        logger.warning("smtp_not_configured", note="Email notifications will be skipped")

    yield

    logger.info("application_shutdown")
    await engine.dispose()
    close_redis_connection()


def register_exception_handlers(app: FastAPI) -> None:
    handlers = (
        (AppException, app_exception_handler),
        (StarletteHTTPException, http_exception_handler),
        (RequestValidationError, validation_exception_handler),
        (Exception, general_exception_handler),
    )
    for exc_class, handler in handlers:
        app.add_exception_handler(exc_class, handler)  # type: ignore[arg-type]


def create_app() -> FastAPI:
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Books, reschedules and reports on clinic appointments",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER],
    )
    application.add_middleware(LoggingMiddleware)
    register_exception_handlers(application)

    application.include_router(api_router, prefix=settings.api_v1_prefix)

    # /metrics reports handlers by route template, e.g. /appointments/{appointment_id}
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        should_instrument_requests_inprogress=True,
        excluded_handlers=["/docs", "/redoc", "/openapi.json", "/metrics"],
        inprogress_labels=True,
    ).instrument(application).expose(application, endpoint="/metrics", include_in_schema=False)

    @application.get("/", tags=["Root"])
    async def root() -> dict[str, str]:
        return {
            "service": settings.app_name,
            "version": settings.app_version,
            "docs": "/docs",
        }

    return application


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "appointment_service.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
