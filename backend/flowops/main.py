"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from flowops.api import router as api_router
from flowops.api import ws_router
from flowops.api.v1 import health
from flowops.config import get_settings
from flowops.db.session import async_session_factory, close_db, init_db
from flowops.exceptions import FlowOpsError, RateLimited
from flowops.logging import configure_logging
from flowops.middleware.logging import LoggingMiddleware
from flowops.middleware.request_id import RequestIDMiddleware
from flowops.services.events import ConnectionManager

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown events."""
    logger.info("Starting FlowOps API", version=settings.app_version)
    await init_db()
    logger.info("Database connection initialized")

    yield

    logger.info("Shutting down FlowOps API")
    await close_db()
    logger.info("Database connection closed")


def _error_body(message: str, **extra) -> dict:
    return {"success": False, "message": message, **extra}


async def flowops_error_handler(request: Request, exc: FlowOpsError) -> ORJSONResponse:
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.message, code=exc.code),
        headers=headers,
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> ORJSONResponse:
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"] if part != "body"),
            "message": error["msg"].removeprefix("Value error, "),
        }
        for error in exc.errors()
    ]
    message = errors[0]["message"] if len(errors) == 1 else "Validation failed"
    return ORJSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_error_body(message, code="VALIDATION_ERROR", errors=errors),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> ORJSONResponse:
    return ORJSONResponse(
        status_code=exc.status_code,
        content=_error_body(str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> ORJSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return ORJSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("Internal server error", code="INTERNAL"),
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings)

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Project and task management API with sprints, teams and real-time updates",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        docs_url=f"{settings.api_prefix}/docs",
        redoc_url=f"{settings.api_prefix}/redoc",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    app.state.session_factory = async_session_factory
    app.state.event_publisher = ConnectionManager()

    app.add_exception_handler(FlowOpsError, flowops_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    # Add middleware (order matters - last added is first executed)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    # Trust proxy headers (X-Forwarded-Proto, X-Forwarded-For) from nginx
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=["*"])

    app.include_router(api_router, prefix=settings.api_prefix)
    app.include_router(ws_router, prefix=settings.api_prefix)
    app.include_router(health.router, tags=["Health"])

    return app


app = create_app()
