"""Local filesystem storage backend.

Buckets are direct child directories of a base directory and objects are
files inside them. Each object file has a JSON sidecar ``<name>.attrs``
holding its content type, MD5 and user metadata.

Layout:
    base/
        .staging/                 in-flight writes, renamed into place
        photos/
            a.jpg
            a.jpg.attrs
            2024/b.png
            2024/b.png.attrs

Bucket existence is a scan of the base directory, so every object call
costs O(number of buckets). Nothing guards against another process
creating or deleting the same bucket concurrently.
"""
import hashlib
import json
import os
import shutil
import stat as stat_module
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from s3proxy.core.config import settings
from s3proxy.core.exceptions import (
    AlreadyExistsError,
    BackendUnavailableError,
    BucketNotFoundError,
    InvalidArgumentError,
    NotEmptyError,
    ObjectNotFoundError,
)
from s3proxy.core.logging import get_logger
from s3proxy.core.models import (
    AccessControlPolicy,
    BucketSummary,
    Grant,
    Grantee,
    ListAllMyBucketsResult,
    ListBucketResult,
    ObjectRead,
    ObjectSummary,
    ObjectWrite,
    Owner,
    Permission,
    iter_payload,
)
from s3proxy.core.xml import format_timestamp
from s3proxy.storage.base import StorageProvider

logger = get_logger(__name__)

ATTRS_SUFFIX = ".attrs"
STAGING_DIR = ".staging"

# This backend has no ownership model; every document reports this owner.
LOCAL_OWNER = Owner(id="s3proxy-local", display_name="local")


def _mtime(stat: os.stat_result) -> datetime:
    return datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc)


def _is_regular_file(stat: os.stat_result) -> bool:
    return stat_module.S_ISREG(stat.st_mode)


def _quote_etag(digest: str) -> str:
    return f'"{digest}"'


@contextmanager
def _io_errors(operation: str, bucket: str | None = None, key: str | None = None) -> Iterator[None]:
    """Translate unexpected OS errors into BackendUnavailableError."""
    try:
        yield
    except (IsADirectoryError, NotADirectoryError, FileExistsError) as e:
        raise InvalidArgumentError(
            f"Key {key} conflicts with an existing object path",
            operation=operation,
            bucket=bucket,
            key=key,
        ) from e
    except OSError as e:
        logger.error(
            "Filesystem operation failed",
            operation=operation,
            bucket=bucket,
            key=key,
            error=str(e),
        )
        raise BackendUnavailableError(
            f"Filesystem error during {operation}: {e}",
            operation=operation,
            bucket=bucket,
            key=key,
        ) from e


class LocalStorage(StorageProvider):
    """Filesystem emulation of bucket/object semantics.

    Example:
        storage = LocalStorage(Path("/var/lib/s3proxy"))
        await storage.create_bucket("photos")
        await storage.put_object(
            "photos", "a.jpg", ObjectWrite(data=jpeg, content_type="image/jpeg")
        )

        async with await storage.get_object("photos", "a.jpg") as obj:
            data = await obj.read()
    """

    name = "local"

    def __init__(
        self,
        base_path: Path | str | None = None,
        *,
        default_content_type: str | None = None,
        chunk_size: int | None = None,
    ) -> None:
        raw = settings.cloud_filesystem_basedir if base_path is None else base_path
        if not str(raw).strip():
            raise InvalidArgumentError("Base path cannot be empty", operation="init")

        self.base_path = Path(raw)
        self.staging_path = self.base_path / STAGING_DIR
        self.default_content_type = default_content_type or settings.default_content_type
        self.chunk_size = chunk_size or settings.chunk_size

        with _io_errors("init"):
            self.staging_path.mkdir(parents=True, exist_ok=True)

        logger.info("Local storage ready", base_path=str(self.base_path))

    # ============ Name Resolution ============

    @staticmethod
    def _validate_bucket_name(bucket: str, operation: str) -> None:
        if (
            not bucket
            or bucket.startswith(".")
            or "/" in bucket
            or "\\" in bucket
            or "\x00" in bucket
        ):
            raise InvalidArgumentError(
                f"Invalid bucket name: {bucket!r}", operation=operation, bucket=bucket
            )

    def _bucket_exists(self, bucket: str) -> bool:
        """Scan the base directory for a child directory named ``bucket``."""
        with os.scandir(self.base_path) as entries:
            return any(
                entry.name == bucket and entry.is_dir(follow_symlinks=False)
                for entry in entries
            )

    def _checkout_bucket(self, bucket: str, operation: str) -> Path:
        """Resolve an existing bucket to its directory."""
        self._validate_bucket_name(bucket, operation)
        with _io_errors(operation, bucket):
            exists = self._bucket_exists(bucket)
        if not exists:
            raise BucketNotFoundError(
                f"Bucket {bucket} does not exist", operation=operation, bucket=bucket
            )
        return self.base_path / bucket

    @staticmethod
    def _object_path(bucket_dir: Path, bucket: str, key: str, operation: str) -> Path:
        """Map a key to its file, refusing anything that escapes the bucket."""
        parts = key.split("/") if key else []
        if (
            not parts
            or "\\" in key
            or "\x00" in key
            or any(part in ("", ".", "..") for part in parts)
            or any(part.endswith(ATTRS_SUFFIX) for part in parts)
        ):
            raise InvalidArgumentError(
                f"Invalid object key: {key!r}", operation=operation, bucket=bucket, key=key
            )
        return bucket_dir.joinpath(*parts)

    @staticmethod
    def _attrs_path(path: Path) -> Path:
        return path.with_name(path.name + ATTRS_SUFFIX)

    def _staging_file(self) -> Path:
        return self.staging_path / f"{uuid.uuid4().hex}.tmp"

    def _walk_objects(self, bucket_dir: Path) -> list[tuple[str, Path]]:
        """All (key, path) pairs of a bucket, sorted by key."""
        found = []
        for root, _dirs, files in os.walk(bucket_dir):
            for filename in files:
                if filename.endswith(ATTRS_SUFFIX):
                    continue
                path = Path(root) / filename
                found.append((path.relative_to(bucket_dir).as_posix(), path))
        found.sort(key=lambda item: item[0])
        return found

    # ============ Attribute Sidecars ============

    async def _read_attrs(self, path: Path) -> dict[str, Any]:
        attrs_path = self._attrs_path(path)
        try:
            async with aiofiles.open(attrs_path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.error("Corrupt attribute file", path=str(attrs_path))
            raise BackendUnavailableError(
                f"Corrupt attribute file for {path.name}",
                details={"path": str(attrs_path)},
            ) from e

    async def _write_attrs(self, path: Path, attrs: dict[str, Any]) -> None:
        staging = self._staging_file()
        try:
            async with aiofiles.open(staging, "w", encoding="utf-8") as f:
                await f.write(json.dumps(attrs))
            await aiofiles.os.replace(staging, self._attrs_path(path))
        finally:
            staging.unlink(missing_ok=True)

    async def _compute_md5(self, path: Path) -> str:
        digest = hashlib.md5(usedforsecurity=False)
        async with aiofiles.open(path, "rb") as f:
            while chunk := await f.read(self.chunk_size):
                digest.update(chunk)
        return digest.hexdigest()

    def _stat_object(
        self, bucket: str, key: str, operation: str
    ) -> tuple[Path, os.stat_result]:
        bucket_dir = self._checkout_bucket(bucket, operation)
        path = self._object_path(bucket_dir, bucket, key, operation)
        with _io_errors(operation, bucket, key):
            try:
                stat = path.stat()
            except (FileNotFoundError, NotADirectoryError):
                stat = None
        if stat is None or not _is_regular_file(stat):
            raise ObjectNotFoundError(
                f"Object {key} does not exist in bucket {bucket}",
                operation=operation,
                bucket=bucket,
                key=key,
            )
        return path, stat

    # ============ Buckets ============

    async def create_bucket(self, bucket: str) -> None:
        """Create a bucket directory; any same-named entry is a collision."""
        self._validate_bucket_name(bucket, "create_bucket")
        path = self.base_path / bucket

        if os.path.lexists(path):
            raise AlreadyExistsError(
                f"Bucket {bucket} already exists", operation="create_bucket", bucket=bucket
            )

        with _io_errors("create_bucket", bucket):
            try:
                path.mkdir()
            except FileExistsError as e:
                # Lost a race with a concurrent create
                raise AlreadyExistsError(
                    f"Bucket {bucket} already exists",
                    operation="create_bucket",
                    bucket=bucket,
                ) from e

        logger.info("Bucket created", bucket=bucket)

    async def delete_bucket(self, bucket: str) -> None:
        """Delete a bucket; refused while it holds any object."""
        bucket_dir = self._checkout_bucket(bucket, "delete_bucket")

        with _io_errors("delete_bucket", bucket):
            if self._walk_objects(bucket_dir):
                raise NotEmptyError(
                    f"Bucket {bucket} is not empty", operation="delete_bucket", bucket=bucket
                )
            shutil.rmtree(bucket_dir)

        logger.info("Bucket deleted", bucket=bucket)

    async def list_bucket(
        self, bucket: str, prefix: str = "", max_keys: int = 1000
    ) -> ListBucketResult:
        """List bucket objects in key order."""
        bucket_dir = self._checkout_bucket(bucket, "list_bucket")
        result = ListBucketResult(name=bucket, prefix=prefix, max_keys=max_keys)

        with _io_errors("list_bucket", bucket):
            for key, path in self._walk_objects(bucket_dir):
                if prefix and not key.startswith(prefix):
                    continue
                if len(result.contents) >= max_keys:
                    result.is_truncated = True
                    break
                try:
                    stat = path.stat()
                    attrs = await self._read_attrs(path)
                    digest = attrs.get("md5") or await self._compute_md5(path)
                except FileNotFoundError:
                    # Deleted between the walk and the stat
                    continue
                result.contents.append(
                    ObjectSummary(
                        key=key,
                        last_modified=_mtime(stat),
                        etag=_quote_etag(digest),
                        size=stat.st_size,
                        owner=LOCAL_OWNER,
                    )
                )

        logger.debug("Bucket listed", bucket=bucket, count=len(result.contents))
        return result

    async def list_all_buckets(self) -> ListAllMyBucketsResult:
        """List bucket directories; internal dot-directories are skipped."""
        buckets = []
        with _io_errors("list_all_buckets"):
            with os.scandir(self.base_path) as entries:
                for entry in entries:
                    if entry.name.startswith(".") or not entry.is_dir(follow_symlinks=False):
                        continue
                    buckets.append(
                        BucketSummary(name=entry.name, creation_date=_mtime(entry.stat()))
                    )

        buckets.sort(key=lambda b: b.name)
        return ListAllMyBucketsResult(owner=LOCAL_OWNER, buckets=buckets)

    async def get_bucket_acl(self, bucket: str) -> AccessControlPolicy:
        """Fixed stub: the synthetic owner holds FULL_CONTROL."""
        self._checkout_bucket(bucket, "get_bucket_acl")
        return AccessControlPolicy(
            owner=LOCAL_OWNER,
            grants=[
                Grant(
                    grantee=Grantee(
                        id=LOCAL_OWNER.id, display_name=LOCAL_OWNER.display_name
                    ),
                    permission=Permission.FULL_CONTROL.value,
                )
            ],
        )

    # ============ Objects ============

    async def put_object(self, bucket: str, key: str, obj: ObjectWrite) -> None:
        """Stream the payload into staging, then rename it into place."""
        bucket_dir = self._checkout_bucket(bucket, "put_object")
        path = self._object_path(bucket_dir, bucket, key, "put_object")
        content_type = obj.content_type or self.default_content_type

        staging = self._staging_file()
        digest = hashlib.md5(usedforsecurity=False)
        size = 0
        try:
            with _io_errors("put_object", bucket, key):
                async with aiofiles.open(staging, "wb") as f:
                    async for chunk in iter_payload(obj.data, self.chunk_size):
                        digest.update(chunk)
                        size += len(chunk)
                        await f.write(chunk)

                path.parent.mkdir(parents=True, exist_ok=True)
                await aiofiles.os.replace(staging, path)
                await self._write_attrs(
                    path,
                    {
                        "content_type": content_type,
                        "md5": digest.hexdigest(),
                        "metadata": dict(obj.metadata),
                    },
                )
        finally:
            staging.unlink(missing_ok=True)

        logger.info("Object stored", bucket=bucket, key=key, size=size)

    async def get_object(self, bucket: str, key: str) -> ObjectRead:
        """Open the object file; the caller closes the returned stream."""
        path, stat = self._stat_object(bucket, key, "get_object")

        with _io_errors("get_object", bucket, key):
            attrs = await self._read_attrs(path)
            try:
                handle = await aiofiles.open(path, "rb")
            except FileNotFoundError as e:
                raise ObjectNotFoundError(
                    f"Object {key} does not exist in bucket {bucket}",
                    operation="get_object",
                    bucket=bucket,
                    key=key,
                ) from e

        digest = attrs.get("md5")
        return ObjectRead(
            key=key,
            body=handle,
            content_type=attrs.get("content_type") or self.default_content_type,
            size=stat.st_size,
            last_modified=_mtime(stat),
            etag=_quote_etag(digest) if digest else None,
            metadata=attrs.get("metadata") or {},
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        """Remove the object and its sidecar; a missing key is NotFound."""
        path, _ = self._stat_object(bucket, key, "delete_object")
        bucket_dir = self.base_path / bucket

        with _io_errors("delete_object", bucket, key):
            try:
                await aiofiles.os.remove(path)
            except FileNotFoundError as e:
                raise ObjectNotFoundError(
                    f"Object {key} does not exist in bucket {bucket}",
                    operation="delete_object",
                    bucket=bucket,
                    key=key,
                ) from e
            self._attrs_path(path).unlink(missing_ok=True)
            self._prune_empty_dirs(path.parent, bucket_dir)

        logger.info("Object deleted", bucket=bucket, key=key)

    async def copy_object(
        self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str
    ) -> None:
        """Stream the source object into a new write at the destination."""
        self._checkout_bucket(dst_bucket, "copy_object")

        source = await self.get_object(src_bucket, src_key)
        async with source:
            await self.put_object(
                dst_bucket,
                dst_key,
                ObjectWrite(
                    data=source.iter_chunks(self.chunk_size),
                    content_type=source.content_type,
                    metadata=dict(source.metadata),
                ),
            )

        logger.info(
            "Object copied",
            src_bucket=src_bucket,
            src_key=src_key,
            dst_bucket=dst_bucket,
            dst_key=dst_key,
        )

    async def head_object(self, bucket: str, key: str) -> dict[str, str]:
        """Attributes from the file and its sidecar; built-ins win over user metadata."""
        path, stat = self._stat_object(bucket, key, "head_object")

        with _io_errors("head_object", bucket, key):
            attrs = await self._read_attrs(path)
            digest = attrs.get("md5") or await self._compute_md5(path)

        metadata = {str(k): str(v) for k, v in (attrs.get("metadata") or {}).items()}
        metadata.update(
            {
                "Size": str(stat.st_size),
                "LastModified": format_timestamp(_mtime(stat)),
                "ContentType": attrs.get("content_type") or self.default_content_type,
                "ETag": _quote_etag(digest),
            }
        )
        return metadata

    @staticmethod
    def _prune_empty_dirs(directory: Path, stop: Path) -> None:
        """Remove empty key directories up to (not including) the bucket."""
        while directory != stop and stop in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                # Not empty (or already gone)
                return
            directory = directory.parent
