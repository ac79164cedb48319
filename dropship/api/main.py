"""
FastAPI Application Entry Point
===============================

Admin API for supplier imports and dropship fulfillment, with health
check, request logging and lifecycle management of the service container.

Run with: ``uvicorn dropship.api.main:create_app --factory``
"""
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional
from uuid import uuid4

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
import structlog

from dropship import __version__
from dropship.config import Settings, configure_logging, get_settings
from dropship.container import Container
from dropship.errors import (
    DropshipError,
    DuplicateImportError,
    InvalidTransitionError,
    InvalidUrlError,
    JobNotFoundError,
    JobStateError,
    OrderNotFoundError,
    UnauthorizedError,
)

logger = structlog.get_logger(__name__)

ERROR_STATUS = {
    UnauthorizedError: status.HTTP_403_FORBIDDEN,
    OrderNotFoundError: status.HTTP_404_NOT_FOUND,
    JobNotFoundError: status.HTTP_404_NOT_FOUND,
    JobStateError: status.HTTP_409_CONFLICT,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    DuplicateImportError: status.HTTP_409_CONFLICT,
    InvalidUrlError: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: DropshipError) -> int:
    for error_type, code in ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build the container on startup unless a test already installed one."""
    settings: Settings = app.state.settings
    logger.info("dropship_api_starting", version=__version__, environment=settings.environment)

    owned = getattr(app.state, "container", None) is None
    if owned:
        app.state.container = await Container.create(settings)

    yield

    logger.info("dropship_api_shutting_down")
    if owned:
        await app.state.container.close()


def create_app(settings: Optional[Settings] = None, container: Optional[Container] = None) -> FastAPI:
    """
    FastAPI application factory.

    Args:
        settings: Application settings (defaults to environment)
        container: Pre-built container, mainly for tests
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, json_logs=settings.is_production)

    app = FastAPI(
        title="Dropship API",
        description="Supplier product import and dropship order fulfillment.",
        version=__version__,
        docs_url=None if settings.is_production else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Any) -> Any:
        """Log each request with timing and a correlation id."""
        request_id = request.headers.get("x-request-id") or str(uuid4())
        start_time = time.perf_counter()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        process_time = time.perf_counter() - start_time
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(process_time * 1000, 2),
        )
        return response

    @app.exception_handler(DropshipError)
    async def dropship_error_handler(request: Request, exc: DropshipError) -> JSONResponse:
        """Handle application-specific errors."""
        code = status_for(exc)
        logger.warning(
            "request_failed",
            error_type=type(exc).__name__,
            message=exc.message,
            path=request.url.path,
            status_code=code,
        )
        return JSONResponse(status_code=code, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected errors."""
        logger.exception(
            "unexpected_error",
            error_type=type(exc).__name__,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "InternalServerError", "message": "An unexpected error occurred"},
        )

    @app.get("/health", tags=["Health"], summary="Health check endpoint")
    async def health_check(request: Request) -> Dict[str, Any]:
        """Report service health with database and Redis checks."""
        container: Container = request.app.state.container
        health: Dict[str, Any] = {
            "status": "healthy",
            "version": __version__,
            "service": "dropship",
            "checks": {},
        }

        try:
            start = time.perf_counter()
            await container.redis.ping()
            health["checks"]["redis"] = {
                "status": "healthy",
                "latency_ms": round((time.perf_counter() - start) * 1000, 2),
            }
        except Exception as e:
            health["checks"]["redis"] = {"status": "unhealthy", "error": str(e)}
            health["status"] = "degraded"

        try:
            async with container.session_maker() as session:
                await session.execute(text("SELECT 1"))
            health["checks"]["database"] = {"status": "healthy"}
        except Exception as e:
            health["checks"]["database"] = {"status": "unhealthy", "error": str(e)}
            health["status"] = "degraded"

        return health

    from dropship.api.routes import fulfillment_router, imports_router

    app.include_router(imports_router, prefix="/admin/import", tags=["Import"])
    app.include_router(fulfillment_router, prefix="/admin/fulfillment", tags=["Fulfillment"])

    return app
