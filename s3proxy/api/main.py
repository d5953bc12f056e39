"""FastAPI application factory and lifespan management."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from s3proxy.api.errors import error_response, s3_error_code
from s3proxy.api.middleware import RequestLoggingMiddleware
from s3proxy.api.routes import buckets, health, objects
from s3proxy.core.config import settings
from s3proxy.core.exceptions import S3ProxyError, StorageError
from s3proxy.core.logging import get_logger, setup_logging
from s3proxy.storage import StorageProvider, create_storage_provider

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup/shutdown."""
    # Startup
    setup_logging()
    logger.info(
        "Starting s3proxy",
        version=settings.app_version,
        environment=settings.environment.value,
    )

    # The backend is fixed for the process lifetime
    if getattr(app.state, "storage", None) is None:
        app.state.storage = create_storage_provider(settings)
    app.state.ready = True

    yield

    # Shutdown
    logger.info("Shutting down s3proxy")
    app.state.ready = False
    await app.state.storage.close()


def create_app(storage: StorageProvider | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        storage: Provider to serve; built from settings at startup when omitted
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="S3-compatible proxy over a remote object store or a local directory",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )
    app.state.storage = storage

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["ETag", "x-amz-request-id"],
    )

    # Request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Exception handlers
    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> Response:
        status_code, code = s3_error_code(exc)
        if status_code >= 500:
            logger.error("Storage error", code=code, error=exc.message, details=exc.details)
        else:
            logger.info("Request rejected", code=code, error=exc.message)
        return error_response(request, status_code, code, exc.message)

    @app.exception_handler(S3ProxyError)
    async def s3proxy_error_handler(request: Request, exc: S3ProxyError) -> Response:
        logger.error("Application error", error=exc.message, details=exc.details)
        return error_response(request, 500, "InternalError", exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> Response:
        return error_response(request, 400, "InvalidArgument", str(exc.errors()))

    # Include routers; admin routes first so bucket routes do not shadow them
    app.include_router(health.router, prefix=settings.admin_prefix, tags=["Health"])
    app.include_router(buckets.router, tags=["Buckets"])
    app.include_router(objects.router, tags=["Objects"])

    return app


# Application instance
app = create_app()


def run() -> None:
    """Run the application with uvicorn."""
    uvicorn.run(
        "s3proxy.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
