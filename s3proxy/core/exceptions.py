"""Domain exceptions for s3proxy."""
from typing import Any


class S3ProxyError(Exception):
    """Base exception for all s3proxy errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class ConfigurationError(S3ProxyError):
    """Invalid or incomplete configuration."""

    pass


# Storage errors
class StorageError(S3ProxyError):
    """Error in storage operations.

    Carries the operation, bucket and key that failed so the HTTP layer
    can build a client-facing error document.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        bucket: str | None = None,
        key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        merged = dict(details or {})
        for name, value in (("operation", operation), ("bucket", bucket), ("key", key)):
            if value is not None:
                merged[name] = value
        super().__init__(message, merged)

    @property
    def operation(self) -> str | None:
        return self.details.get("operation")

    @property
    def bucket(self) -> str | None:
        return self.details.get("bucket")

    @property
    def key(self) -> str | None:
        return self.details.get("key")


class NotFoundError(StorageError):
    """Bucket or object absent."""

    pass


class BucketNotFoundError(NotFoundError):
    """Bucket does not exist."""

    pass


class ObjectNotFoundError(NotFoundError):
    """Object does not exist in an existing bucket."""

    pass


class AlreadyExistsError(StorageError):
    """Bucket create collided with an existing entry."""

    pass


class NotEmptyError(StorageError):
    """Bucket delete refused because the bucket holds objects."""

    pass


class InvalidArgumentError(StorageError):
    """Malformed name, key, copy source or base path."""

    pass


class BackendUnavailableError(StorageError):
    """Backend I/O, session or connectivity failure."""

    pass


class AuthError(BackendUnavailableError):
    """Backend rejected the configured credentials."""

    pass


class UnsupportedError(StorageError):
    """Operation not supported by the selected backend."""

    pass
