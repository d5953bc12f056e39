"""Domain models for s3proxy.

Wire documents (bucket list, object list, ACL) are Pydantic models rendered
to S3 XML by ``s3proxy.core.xml``. Object payload envelopes carry streams and
are plain classes.
"""
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import BinaryIO, Protocol

from pydantic import BaseModel, Field

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CHUNK_SIZE = 1024 * 1024


class StorageClass(str, Enum):
    """S3 storage class reported in listings."""

    STANDARD = "STANDARD"
    REDUCED_REDUNDANCY = "REDUCED_REDUNDANCY"
    STANDARD_IA = "STANDARD_IA"
    GLACIER = "GLACIER"


class Permission(str, Enum):
    """ACL grant permission."""

    FULL_CONTROL = "FULL_CONTROL"
    READ = "READ"
    WRITE = "WRITE"
    READ_ACP = "READ_ACP"
    WRITE_ACP = "WRITE_ACP"


# ============ Wire Documents ============


class Owner(BaseModel):
    """Owner identity; never empty in a response document."""

    id: str = Field(..., min_length=1)
    display_name: str = ""


class BucketSummary(BaseModel):
    """One entry of ListAllMyBucketsResult.Buckets."""

    name: str
    creation_date: datetime


class ListAllMyBucketsResult(BaseModel):
    """Response of GET /."""

    owner: Owner
    buckets: list[BucketSummary] = Field(default_factory=list)


class ObjectSummary(BaseModel):
    """One entry of ListBucketResult.Contents."""

    key: str
    last_modified: datetime
    etag: str
    size: int = Field(ge=0)
    storage_class: str = StorageClass.STANDARD.value
    owner: Owner | None = None


class ListBucketResult(BaseModel):
    """Response of GET /{bucket}."""

    name: str
    prefix: str = ""
    max_keys: int = 1000
    marker: str = ""
    is_truncated: bool = False
    contents: list[ObjectSummary] = Field(default_factory=list)


class Grantee(BaseModel):
    """Grantee of an ACL grant.

    Canonical users are named by ``id``; groups by ``uri``.
    """

    id: str = ""
    display_name: str = ""
    uri: str | None = None
    type: str = "CanonicalUser"


class Grant(BaseModel):
    """(grantee, permission) pair."""

    grantee: Grantee
    permission: str = Permission.FULL_CONTROL.value


class AccessControlPolicy(BaseModel):
    """Response of GET /{bucket}?acl."""

    owner: Owner
    grants: list[Grant] = Field(default_factory=list)


# ============ Object Payloads ============

Payload = bytes | BinaryIO | AsyncIterable[bytes]


class ObjectBody(Protocol):
    """Readable async byte stream backing an ObjectRead."""

    async def read(self, size: int = -1) -> bytes: ...

    async def close(self) -> None: ...


@dataclass
class ObjectWrite:
    """Payload and attributes handed to put_object.

    ``data`` is consumed exactly once by the backend; the caller keeps
    ownership of any file object it passes in.
    """

    data: Payload
    content_type: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)


class ObjectRead:
    """Object returned by get_object.

    The caller owns ``body`` and must close it, either explicitly with
    ``close()`` or by using the object as an async context manager. The
    stream is single-pass: once consumed or closed it cannot be reread.

    Example:
        async with await storage.get_object("photos", "a.jpg") as obj:
            async for chunk in obj.iter_chunks():
                ...
    """

    def __init__(
        self,
        *,
        key: str,
        body: ObjectBody,
        content_type: str = DEFAULT_CONTENT_TYPE,
        size: int | None = None,
        last_modified: datetime | None = None,
        etag: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> None:
        self.key = key
        self.content_type = content_type
        self.size = size
        self.last_modified = last_modified
        self.etag = etag
        self.metadata = metadata or {}
        self._body = body
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes (everything when negative)."""
        if self._closed:
            raise ValueError(f"Stream for object {self.key} is closed")
        return await self._body.read(size)

    async def iter_chunks(
        self, chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> AsyncIterator[bytes]:
        """Yield the payload in chunks until exhausted."""
        while chunk := await self.read(chunk_size):
            yield chunk

    async def close(self) -> None:
        """Release the underlying stream. Safe to call twice."""
        if self._closed:
            return
        self._closed = True
        await self._body.close()

    async def __aenter__(self) -> "ObjectRead":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


async def iter_payload(
    data: Payload, chunk_size: int = DEFAULT_CHUNK_SIZE
) -> AsyncIterator[bytes]:
    """Normalize any accepted payload into an async chunk iterator."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        view = memoryview(data)
        for offset in range(0, len(view), chunk_size):
            yield bytes(view[offset : offset + chunk_size])
    elif hasattr(data, "read"):
        while chunk := data.read(chunk_size):
            yield chunk
    else:
        async for chunk in data:
            if chunk:
                yield bytes(chunk)
