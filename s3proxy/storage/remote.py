"""Remote S3-compatible storage backend.

Thin pass-through to AWS S3, MinIO or any other S3-compatible service.
Every façade call maps to one service call (two for delete, which checks
existence first). A HEAD or copy that fails with a bare not-found is
followed by a bucket check to tell a missing bucket from a missing key.
boto3 is synchronous, so calls run in the default executor to keep the
event loop free.

Dependencies:
    - boto3
    - botocore
"""
import asyncio
import functools
import tempfile
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import boto3
from botocore.config import Config
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    NoCredentialsError,
    PartialCredentialsError,
)

from s3proxy.core.config import settings
from s3proxy.core.exceptions import (
    AlreadyExistsError,
    AuthError,
    BackendUnavailableError,
    BucketNotFoundError,
    InvalidArgumentError,
    NotEmptyError,
    ObjectNotFoundError,
    StorageError,
    UnsupportedError,
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
    iter_payload,
)
from s3proxy.core.xml import format_timestamp
from s3proxy.storage.base import StorageProvider

logger = get_logger(__name__)

# Used when the service omits an owner from a response document
REMOTE_OWNER = Owner(id="s3proxy-remote", display_name="remote")

# Payloads up to this size stay in memory while spooling for upload
SPOOL_MAX_SIZE = 8 * 1024 * 1024

_NOT_FOUND_CODES = {"NoSuchKey", "NotFound", "404"}
_EXISTS_CODES = {"BucketAlreadyExists", "BucketAlreadyOwnedByYou"}
_INVALID_CODES = {
    "InvalidArgument",
    "InvalidBucketName",
    "InvalidObjectName",
    "KeyTooLongError",
    "InvalidRequest",
}
_AUTH_CODES = {
    "AccessDenied",
    "InvalidAccessKeyId",
    "SignatureDoesNotMatch",
    "ExpiredToken",
    "InvalidToken",
    "403",
}


def translate_error(
    exc: Exception,
    operation: str,
    bucket: str | None = None,
    key: str | None = None,
    details: dict[str, Any] | None = None,
) -> StorageError:
    """Map a boto3/botocore error onto the storage error taxonomy."""
    scope = {"operation": operation, "bucket": bucket, "key": key, "details": details}

    if isinstance(exc, (NoCredentialsError, PartialCredentialsError)):
        return AuthError(f"Remote credentials unavailable: {exc}", **scope)

    if isinstance(exc, ClientError):
        error = exc.response.get("Error", {})
        code = str(error.get("Code", ""))
        message = error.get("Message") or str(exc)

        if code == "NoSuchBucket":
            return BucketNotFoundError(f"Bucket {bucket} does not exist", **scope)
        if code in _NOT_FOUND_CODES:
            if key is None:
                return BucketNotFoundError(f"Bucket {bucket} does not exist", **scope)
            return ObjectNotFoundError(
                f"Object {key} does not exist in bucket {bucket}", **scope
            )
        if code in _EXISTS_CODES:
            return AlreadyExistsError(f"Bucket {bucket} already exists", **scope)
        if code == "BucketNotEmpty":
            return NotEmptyError(f"Bucket {bucket} is not empty", **scope)
        if code in _INVALID_CODES:
            return InvalidArgumentError(message, **scope)
        if code in _AUTH_CODES:
            return AuthError(f"Remote service rejected credentials: {message}", **scope)
        if code == "NotImplemented":
            return UnsupportedError(message, **scope)
        return BackendUnavailableError(f"Remote {operation} failed: {code} {message}", **scope)

    return BackendUnavailableError(f"Remote {operation} failed: {exc}", **scope)


def _owner_from(payload: dict[str, Any] | None) -> Owner | None:
    if not payload or not payload.get("ID"):
        return None
    return Owner(id=payload["ID"], display_name=payload.get("DisplayName", ""))


class _StreamingBodyReader:
    """Async view over a botocore StreamingBody."""

    def __init__(self, body: Any) -> None:
        self._body = body

    async def read(self, size: int = -1) -> bytes:
        loop = asyncio.get_running_loop()
        amount = None if size is None or size < 0 else size
        return await loop.run_in_executor(None, self._body.read, amount)

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._body.close)


class RemoteStorage(StorageProvider):
    """Pass-through provider for an S3-compatible service.

    Credentials are checked once at construction: a rejected identity raises
    AuthError immediately instead of on first use.

    Example:
        storage = RemoteStorage(identity="AKIA...", secret="...", region="eu-west-1")
        listing = await storage.list_bucket("photos")
    """

    name = "remote"

    def __init__(
        self,
        *,
        identity: str | None = None,
        secret: str | None = None,
        region: str | None = None,
        endpoint_url: str | None = None,
        addressing_style: str | None = None,
        default_content_type: str | None = None,
    ) -> None:
        self.identity = settings.cloud_identity if identity is None else identity
        self.secret = (
            settings.cloud_credential.get_secret_value() if secret is None else secret
        )
        self.region = region or settings.cloud_region
        self.endpoint_url = endpoint_url if endpoint_url is not None else settings.cloud_endpoint
        self.addressing_style = addressing_style or settings.cloud_addressing_style
        self.default_content_type = default_content_type or settings.default_content_type

        if not self.identity or not self.secret:
            raise AuthError(
                "Remote backend requires an access identity and secret", operation="init"
            )

        self._client = self._build_client()
        self._verify_credentials()

        logger.info(
            "Remote storage ready",
            region=self.region,
            endpoint=self.endpoint_url or "default",
        )

    def _build_client(self) -> Any:
        """Create a boto3 S3 client from the configured credentials."""
        config = Config(s3={"addressing_style": self.addressing_style})
        try:
            return boto3.client(
                "s3",
                endpoint_url=self.endpoint_url,
                region_name=self.region,
                aws_access_key_id=self.identity,
                aws_secret_access_key=self.secret,
                config=config,
            )
        except (BotoCoreError, ValueError) as e:
            raise BackendUnavailableError(
                f"Failed to create remote client: {e}", operation="init"
            ) from e

    def _verify_credentials(self) -> None:
        try:
            self._client.list_buckets()
        except (BotoCoreError, ClientError) as e:
            error = translate_error(e, "init")
            logger.error("Remote storage rejected startup credential check", error=error.message)
            raise error from e

    async def _invoke(
        self,
        operation: str,
        func: Callable[..., Any],
        *,
        bucket: str | None = None,
        key: str | None = None,
        details: dict[str, Any] | None = None,
        **params: Any,
    ) -> Any:
        """Run one blocking service call in the executor, translating errors."""
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, functools.partial(func, **params))
        except (BotoCoreError, ClientError) as e:
            error = translate_error(e, operation, bucket, key, details)
            logger.error(
                "Remote operation failed",
                operation=operation,
                bucket=bucket,
                key=key,
                error=error.message,
            )
            raise error from e

    # ============ Buckets ============

    async def create_bucket(self, bucket: str) -> None:
        params: dict[str, Any] = {"Bucket": bucket}
        # us-east-1 rejects an explicit location constraint
        if self.region and self.region != "us-east-1":
            params["CreateBucketConfiguration"] = {"LocationConstraint": self.region}

        await self._invoke(
            "create_bucket", self._client.create_bucket, bucket=bucket, **params
        )
        logger.info("Bucket created", bucket=bucket)

    async def delete_bucket(self, bucket: str) -> None:
        await self._invoke(
            "delete_bucket", self._client.delete_bucket, bucket=bucket, Bucket=bucket
        )
        logger.info("Bucket deleted", bucket=bucket)

    async def list_bucket(
        self, bucket: str, prefix: str = "", max_keys: int = 1000
    ) -> ListBucketResult:
        params: dict[str, Any] = {
            "Bucket": bucket,
            "MaxKeys": int(max_keys),
            "FetchOwner": True,
        }
        if prefix:
            params["Prefix"] = prefix

        response = await self._invoke(
            "list_bucket", self._client.list_objects_v2, bucket=bucket, **params
        )

        contents = [
            ObjectSummary(
                key=item["Key"],
                last_modified=item["LastModified"],
                etag=item.get("ETag", ""),
                size=int(item.get("Size", 0)),
                storage_class=item.get("StorageClass") or "STANDARD",
                owner=_owner_from(item.get("Owner")),
            )
            for item in response.get("Contents", [])
        ]
        return ListBucketResult(
            name=bucket,
            prefix=prefix,
            max_keys=max_keys,
            is_truncated=bool(response.get("IsTruncated", False)),
            contents=contents,
        )

    async def list_all_buckets(self) -> ListAllMyBucketsResult:
        response = await self._invoke("list_all_buckets", self._client.list_buckets)
        return ListAllMyBucketsResult(
            owner=_owner_from(response.get("Owner")) or REMOTE_OWNER,
            buckets=[
                BucketSummary(name=item["Name"], creation_date=item["CreationDate"])
                for item in response.get("Buckets", [])
            ],
        )

    async def get_bucket_acl(self, bucket: str) -> AccessControlPolicy:
        response = await self._invoke(
            "get_bucket_acl", self._client.get_bucket_acl, bucket=bucket, Bucket=bucket
        )

        grants = []
        for item in response.get("Grants", []):
            grantee = item.get("Grantee") or {}
            grants.append(
                Grant(
                    grantee=Grantee(
                        id=grantee.get("ID") or "",
                        display_name=grantee.get("DisplayName", ""),
                        uri=grantee.get("URI"),
                        type=grantee.get("Type") or "CanonicalUser",
                    ),
                    permission=item.get("Permission", ""),
                )
            )
        return AccessControlPolicy(
            owner=_owner_from(response.get("Owner")) or REMOTE_OWNER,
            grants=grants,
        )

    # ============ Objects ============

    async def put_object(self, bucket: str, key: str, obj: ObjectWrite) -> None:
        """Upload with a single PUT; streamed payloads are spooled first."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": key,
            "ContentType": obj.content_type or self.default_content_type,
        }
        if obj.metadata:
            params["Metadata"] = dict(obj.metadata)

        if isinstance(obj.data, (bytes, bytearray, memoryview)):
            await self._invoke(
                "put_object",
                self._client.put_object,
                bucket=bucket,
                key=key,
                Body=bytes(obj.data),
                **params,
            )
        else:
            with tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE) as spool:
                async for chunk in iter_payload(obj.data, settings.chunk_size):
                    spool.write(chunk)
                spool.seek(0)
                await self._invoke(
                    "put_object",
                    self._client.put_object,
                    bucket=bucket,
                    key=key,
                    Body=spool,
                    **params,
                )

        logger.info("Object stored", bucket=bucket, key=key)

    async def get_object(self, bucket: str, key: str) -> ObjectRead:
        response = await self._invoke(
            "get_object",
            self._client.get_object,
            bucket=bucket,
            key=key,
            Bucket=bucket,
            Key=key,
        )
        size = response.get("ContentLength")
        return ObjectRead(
            key=key,
            body=_StreamingBodyReader(response["Body"]),
            content_type=response.get("ContentType") or self.default_content_type,
            size=int(size) if size is not None else None,
            last_modified=response.get("LastModified"),
            etag=response.get("ETag"),
            metadata=dict(response.get("Metadata") or {}),
        )

    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete a key; S3 deletes are idempotent, so existence is checked first."""
        await self._head(bucket, key, "delete_object")
        await self._invoke(
            "delete_object",
            self._client.delete_object,
            bucket=bucket,
            key=key,
            Bucket=bucket,
            Key=key,
        )
        logger.info("Object deleted", bucket=bucket, key=key)

    async def copy_object(
        self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str
    ) -> None:
        """Server-side copy; payload, content type and user metadata carry over."""
        details = {
            "src_bucket": src_bucket,
            "src_key": src_key,
            "dst_bucket": dst_bucket,
            "dst_key": dst_key,
        }
        try:
            await self._invoke(
                "copy_object",
                self._client.copy_object,
                bucket=src_bucket,
                key=src_key,
                details=details,
                Bucket=dst_bucket,
                Key=dst_key,
                CopySource={"Bucket": src_bucket, "Key": src_key},
                MetadataDirective="COPY",
            )
        except BucketNotFoundError as e:
            # NoSuchBucket does not say which side is missing
            missing, missing_key = (src_bucket, src_key)
            if not await self._bucket_exists(dst_bucket):
                missing, missing_key = (dst_bucket, dst_key)
            raise BucketNotFoundError(
                f"Bucket {missing} does not exist",
                operation="copy_object",
                bucket=missing,
                key=missing_key,
                details=details,
            ) from e

        logger.info("Object copied", **details)

    async def head_object(self, bucket: str, key: str) -> dict[str, str]:
        response = await self._head(bucket, key, "head_object")

        metadata = {str(k): str(v) for k, v in (response.get("Metadata") or {}).items()}
        last_modified = response.get("LastModified") or datetime.now(timezone.utc)
        metadata.update(
            {
                "Size": str(response.get("ContentLength", 0)),
                "LastModified": format_timestamp(last_modified),
                "ContentType": response.get("ContentType") or self.default_content_type,
                "ETag": response.get("ETag", ""),
            }
        )
        return metadata

    async def _head(self, bucket: str, key: str, operation: str) -> dict[str, Any]:
        """HEAD a key; a bodiless 404 is resolved to a missing bucket or key."""
        try:
            return await self._invoke(
                operation,
                self._client.head_object,
                bucket=bucket,
                key=key,
                Bucket=bucket,
                Key=key,
            )
        except ObjectNotFoundError as e:
            if await self._bucket_exists(bucket):
                raise
            raise BucketNotFoundError(
                f"Bucket {bucket} does not exist",
                operation=operation,
                bucket=bucket,
                key=key,
            ) from e

    async def _bucket_exists(self, bucket: str) -> bool:
        try:
            await self._invoke(
                "head_bucket", self._client.head_bucket, bucket=bucket, Bucket=bucket
            )
        except BucketNotFoundError:
            return False
        return True

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._client.close)
