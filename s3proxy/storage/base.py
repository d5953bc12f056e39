"""Abstract storage provider interface."""
from abc import ABC, abstractmethod

from s3proxy.core.models import (
    AccessControlPolicy,
    ListAllMyBucketsResult,
    ListBucketResult,
    ObjectRead,
    ObjectWrite,
)


class StorageProvider(ABC):
    """Bucket/object contract shared by every backend.

    One instance is built per process and used concurrently by all request
    handlers. Operations never retry; failures surface as subclasses of
    ``s3proxy.core.exceptions.StorageError``.
    """

    name: str = "abstract"

    @abstractmethod
    async def create_bucket(self, bucket: str) -> None:
        """Create a bucket.

        Raises:
            AlreadyExistsError: If a bucket (or any entry) of that name exists
        """
        ...

    @abstractmethod
    async def delete_bucket(self, bucket: str) -> None:
        """Delete an empty bucket.

        Raises:
            NotFoundError: If the bucket does not exist
            NotEmptyError: If the bucket holds at least one object
        """
        ...

    @abstractmethod
    async def list_bucket(
        self, bucket: str, prefix: str = "", max_keys: int = 1000
    ) -> ListBucketResult:
        """List objects of a bucket.

        Args:
            bucket: Bucket name
            prefix: Only return keys starting with this prefix
            max_keys: Upper bound on returned entries

        Raises:
            NotFoundError: If the bucket does not exist
        """
        ...

    @abstractmethod
    async def list_all_buckets(self) -> ListAllMyBucketsResult:
        """List every bucket of this provider; empty store yields no buckets."""
        ...

    @abstractmethod
    async def get_bucket_acl(self, bucket: str) -> AccessControlPolicy:
        """Get the access control policy of a bucket."""
        ...

    @abstractmethod
    async def put_object(self, bucket: str, key: str, obj: ObjectWrite) -> None:
        """Store an object, replacing any previous version.

        Readers never observe a partially written object. If this raises,
        the object state is undefined.
        """
        ...

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> ObjectRead:
        """Open an object for reading.

        The returned ObjectRead owns an open stream; the caller must close it.

        Raises:
            NotFoundError: If the bucket or key does not exist
        """
        ...

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> None:
        """Delete an object.

        Raises:
            NotFoundError: If the key does not exist (deletes are not idempotent)
        """
        ...

    @abstractmethod
    async def copy_object(
        self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str
    ) -> None:
        """Duplicate payload and content type; last-modified is not preserved."""
        ...

    async def move_object(
        self, src_bucket: str, src_key: str, dst_bucket: str, dst_key: str
    ) -> None:
        """Copy then delete the source.

        If the delete fails after a successful copy, the object exists in
        both places and the delete error propagates.
        """
        await self.copy_object(src_bucket, src_key, dst_bucket, dst_key)
        await self.delete_object(src_bucket, src_key)

    @abstractmethod
    async def head_object(self, bucket: str, key: str) -> dict[str, str]:
        """Get object metadata as a flat string map.

        Contains Size, LastModified, ContentType and ETag merged with any
        user metadata.
        """
        ...

    async def close(self) -> None:
        """Release backend resources held for the process lifetime."""
        return None
