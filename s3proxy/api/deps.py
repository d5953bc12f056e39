"""Dependency injection for FastAPI routes."""
from typing import Annotated

from fastapi import Depends, Request

from s3proxy.core.config import Settings, get_settings
from s3proxy.core.logging import get_logger
from s3proxy.storage import StorageProvider

logger = get_logger(__name__)


# Settings dependency
def get_settings_dep() -> Settings:
    """Get application settings."""
    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_settings_dep)]


# Request ID extraction
def get_request_id(request: Request) -> str:
    """Request ID assigned by the logging middleware."""
    return getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", "unknown"
    )


RequestIdDep = Annotated[str, Depends(get_request_id)]


# Storage provider dependency
def get_storage(request: Request) -> StorageProvider:
    """Get the process-wide storage provider."""
    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise RuntimeError("Storage provider not initialized")
    return storage


StorageDep = Annotated[StorageProvider, Depends(get_storage)]
