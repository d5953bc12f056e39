"""Core module - shared kernel for s3proxy."""
from s3proxy.core.config import settings
from s3proxy.core.exceptions import S3ProxyError

__all__ = ["settings", "S3ProxyError"]
