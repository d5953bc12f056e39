"""Translation of domain errors into S3 XML error responses."""
from fastapi import Request, Response

from s3proxy.api.deps import get_request_id
from s3proxy.core.exceptions import (
    AlreadyExistsError,
    BackendUnavailableError,
    BucketNotFoundError,
    InvalidArgumentError,
    NotEmptyError,
    NotFoundError,
    ObjectNotFoundError,
    S3ProxyError,
    UnsupportedError,
)
from s3proxy.core.xml import render_error

XML_MEDIA_TYPE = "application/xml"

# Most specific classes first; the first isinstance match wins.
_ERROR_CODES: list[tuple[type[S3ProxyError], int, str]] = [
    (BucketNotFoundError, 404, "NoSuchBucket"),
    (ObjectNotFoundError, 404, "NoSuchKey"),
    (AlreadyExistsError, 409, "BucketAlreadyOwnedByYou"),
    (NotEmptyError, 409, "BucketNotEmpty"),
    (InvalidArgumentError, 400, "InvalidArgument"),
    (BackendUnavailableError, 503, "ServiceUnavailable"),
    (UnsupportedError, 501, "NotImplemented"),
]


def s3_error_code(exc: S3ProxyError) -> tuple[int, str]:
    """Return (HTTP status, S3 error code) for a domain error."""
    for error_type, status, code in _ERROR_CODES:
        if isinstance(exc, error_type):
            return status, code
    if isinstance(exc, NotFoundError):
        key = exc.details.get("key")
        return 404, "NoSuchKey" if key else "NoSuchBucket"
    return 500, "InternalError"


def error_response(
    request: Request, status_code: int, code: str, message: str
) -> Response:
    request_id = get_request_id(request)
    return Response(
        content=render_error(code, message, request.url.path, request_id),
        status_code=status_code,
        media_type=XML_MEDIA_TYPE,
        headers={"x-amz-request-id": request_id},
    )
