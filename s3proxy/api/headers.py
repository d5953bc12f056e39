"""S3 request/response header helpers."""
from collections.abc import Mapping
from datetime import datetime, timezone
from email.utils import format_datetime
from urllib.parse import unquote

from s3proxy.core.exceptions import InvalidArgumentError

COPY_SOURCE_HEADER = "x-amz-copy-source"
USER_METADATA_PREFIX = "x-amz-meta-"

# Keys of head_object's bag that are not user metadata
BUILTIN_ATTRIBUTES = ("Size", "LastModified", "ContentType", "ETag")


def parse_copy_source(value: str) -> tuple[str, str]:
    """Split an ``x-amz-copy-source`` value into (bucket, key).

    Accepts ``/bucket/key`` or ``bucket/key``, URL-encoded or not.

    Raises:
        InvalidArgumentError: If the value is not exactly two non-empty segments
    """
    source = unquote(value or "")
    if source.startswith("/"):
        source = source[1:]

    parts = source.split("/")
    if len(parts) != 2 or not all(parts):
        raise InvalidArgumentError(
            f"Malformed copy source: {value!r}",
            operation="copy_object",
            details={"copy_source": value},
        )
    return parts[0], parts[1]


def extract_user_metadata(headers: Mapping[str, str]) -> dict[str, str]:
    """Collect ``x-amz-meta-*`` request headers, prefix stripped."""
    metadata = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered.startswith(USER_METADATA_PREFIX) and len(lowered) > len(USER_METADATA_PREFIX):
            metadata[lowered[len(USER_METADATA_PREFIX):]] = value
    return metadata


def user_metadata_headers(metadata: Mapping[str, str]) -> dict[str, str]:
    return {
        f"{USER_METADATA_PREFIX}{name}": value
        for name, value in metadata.items()
        if name not in BUILTIN_ATTRIBUTES
    }


def http_date(value: datetime | str) -> str:
    """Format a timestamp for Last-Modified (RFC 7231)."""
    if isinstance(value, str):
        value = datetime.strptime(value, "%Y-%m-%dT%H:%M:%S.%fZ")
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return format_datetime(value.astimezone(timezone.utc), usegmt=True)
