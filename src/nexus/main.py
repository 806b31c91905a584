"""
Nexus - company registry synchronization and caching engine.

FastAPI application entry point.
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from starlette.middleware.base import BaseHTTPMiddleware

from nexus import __version__
from nexus.config import settings
from nexus.db.orm import Base
from nexus.errors import (
    FeatureNotAvailableError,
    NexusError,
    NotFoundError,
    QuotaExceededError,
    UpstreamError,
    ValidationError,
)
from nexus.ingestion.companies_house import CompaniesHouseAdapter
from nexus.service import RegistryService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


ERROR_STATUS = {
    NotFoundError: 404,
    UpstreamError: 502,
    QuotaExceededError: 429,
    FeatureNotAvailableError: 403,
    ValidationError: 400,
}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log requests with timing."""

    async def dispatch(self, request: Request, call_next) -> Response:
        start_time = time.time()

        request_id = request.headers.get("X-Request-ID", f"req_{int(time.time() * 1000)}")
        caller = request.headers.get("X-Caller-Id", "anonymous")

        logger.info(f"Request: {request.method} {request.url.path} [{request_id}] caller={caller}")

        response = await call_next(request)

        process_time = time.time() - start_time
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = str(process_time)

        logger.info(
            f"Response: {request.method} {request.url.path} "
            f"[{request_id}] status={response.status_code} time={process_time:.3f}s"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    logger.info("Starting Nexus...")

    engine = create_async_engine(
        settings.database_url,
        echo=settings.debug,
        pool_pre_ping=True,
    )
    if settings.create_schema_on_startup:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    app.state.service = RegistryService.build(session_factory, CompaniesHouseAdapter())

    logger.info("Nexus started successfully")

    yield

    logger.info("Shutting down Nexus...")
    await app.state.service.close()
    await engine.dispose()
    logger.info("Nexus shutdown complete")


app = FastAPI(
    title="Nexus",
    description="Company registry search and due-diligence API",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
)

# Request logging middleware
app.add_middleware(RequestLoggingMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "HEAD", "POST", "OPTIONS"],
    allow_headers=[
        "Content-Type",
        "X-Request-ID",
        "X-Caller-Id",
        "X-Subscription-Tier",
    ],
    expose_headers=[
        "X-Request-ID",
        "X-Process-Time",
        "X-Search-Limit",
        "X-Search-Remaining",
        "X-Subscription-Tier",
        "X-Results-Limit",
    ],
    max_age=600,
)


@app.exception_handler(NexusError)
async def nexus_error_handler(request: Request, exc: NexusError) -> JSONResponse:
    """
    Translate engine errors into HTTP responses.

    Quota and feature errors carry tier and ceiling so clients can show an
    upgrade prompt. Anything without a specific status is a generic failure.
    """
    status_code = next(
        (code for cls, code in ERROR_STATUS.items() if isinstance(exc, cls)), None
    )
    if status_code is None:
        logger.error(f"Unmapped engine error: {exc!r}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "Something went wrong. Please try again.",
                "retryable": True,
            },
        )

    if isinstance(exc, UpstreamError):
        logger.warning(f"Upstream failure on {request.url.path}: {exc}")

    content: dict[str, Any] = {"error": exc.message, **exc.to_dict(), "retryable": exc.retryable}
    headers = None
    if isinstance(exc, QuotaExceededError) and exc.scope == "daily":
        headers = {"X-Search-Limit": str(exc.ceiling), "X-Search-Remaining": "0"}
    return JSONResponse(status_code=status_code, content=content, headers=headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed query or body parameters are reported as 400."""
    return JSONResponse(
        status_code=400,
        content={
            "error": "Invalid request parameters",
            "kind": ValidationError.kind,
            "details": [
                {"loc": list(err.get("loc", [])), "message": err.get("msg", "")}
                for err in exc.errors()
            ],
            "retryable": False,
        },
    )


@app.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """
    Health check endpoint.

    Returns the status of the cache store and the registry client.
    """
    return await request.app.state.service.health()


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "name": "Nexus",
        "description": "Company registry search and due-diligence API",
        "version": __version__,
        "docs": "/docs",
        "health": "/health",
    }


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle uncaught exceptions securely."""
    logger.exception(f"Unhandled exception: {exc}")

    if settings.is_production:
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "message": "An unexpected error occurred. Please try again.",
                "retryable": True,
            },
        )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc),
            "type": type(exc).__name__,
            "retryable": True,
        },
    )


# Import and include routers
from nexus.api.routes import bulk_router, companies_router, status_router

# status and bulk first so /status is not captured by /{company_number}
app.include_router(status_router, prefix="/api/v1/companies", tags=["status"])
app.include_router(bulk_router, prefix="/api/v1/companies", tags=["bulk"])
app.include_router(companies_router, prefix="/api/v1/companies", tags=["companies"])
