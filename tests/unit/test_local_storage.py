"""Tests for the filesystem storage backend."""
import hashlib
import io
from collections.abc import AsyncIterator
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from s3proxy.core.exceptions import (
    AlreadyExistsError,
    BackendUnavailableError,
    BucketNotFoundError,
    InvalidArgumentError,
    NotEmptyError,
    NotFoundError,
    ObjectNotFoundError,
)
from s3proxy.core.models import ObjectWrite
from s3proxy.storage import LocalStorage
from s3proxy.storage.local import ATTRS_SUFFIX, LOCAL_OWNER


async def read_object(storage: LocalStorage, bucket: str, key: str) -> bytes:
    async with await storage.get_object(bucket, key) as obj:
        return await obj.read()


async def chunks(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


class TestLocalStorageInit:
    """Test cases for LocalStorage construction."""

    def test_empty_base_path_rejected(self) -> None:
        """Test that an empty base path is an invalid argument."""
        with pytest.raises(InvalidArgumentError):
            LocalStorage("")

    def test_creates_base_directory(self, tmp_path: Path) -> None:
        """Test that the base and staging directories are created."""
        storage = LocalStorage(tmp_path / "fresh")
        assert storage.base_path.is_dir()
        assert storage.staging_path.is_dir()


class TestLocalBuckets:
    """Test cases for bucket operations."""

    @pytest.mark.asyncio
    async def test_empty_store_lists_no_buckets(self, storage: LocalStorage) -> None:
        """Test that a fresh store has no buckets but still reports an owner."""
        result = await storage.list_all_buckets()
        assert result.buckets == []
        assert result.owner.id

    @pytest.mark.asyncio
    async def test_create_bucket_twice_fails(self, storage: LocalStorage) -> None:
        """Test that creating an existing bucket raises AlreadyExists."""
        await storage.create_bucket("photos")
        with pytest.raises(AlreadyExistsError):
            await storage.create_bucket("photos")

    @pytest.mark.asyncio
    async def test_create_bucket_collides_with_file(self, storage: LocalStorage) -> None:
        """Test that any entry with the bucket name counts as existing."""
        (storage.base_path / "photos").write_bytes(b"not a bucket")
        with pytest.raises(AlreadyExistsError):
            await storage.create_bucket("photos")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", ".staging", ".hidden", "a/b", "a\\b"])
    async def test_invalid_bucket_names(self, storage: LocalStorage, name: str) -> None:
        """Test that reserved or path-like bucket names are rejected."""
        with pytest.raises(InvalidArgumentError):
            await storage.create_bucket(name)

    @pytest.mark.asyncio
    async def test_list_all_buckets_sorted(self, storage: LocalStorage) -> None:
        """Test that buckets are listed by name and staging is hidden."""
        for name in ("zeta", "alpha", "mid"):
            await storage.create_bucket(name)

        result = await storage.list_all_buckets()
        assert [b.name for b in result.buckets] == ["alpha", "mid", "zeta"]
        assert result.owner == LOCAL_OWNER

    @pytest.mark.asyncio
    async def test_delete_empty_bucket(self, storage: LocalStorage) -> None:
        """Test that an empty bucket can be deleted."""
        await storage.create_bucket("photos")
        await storage.delete_bucket("photos")

        result = await storage.list_all_buckets()
        assert result.buckets == []

    @pytest.mark.asyncio
    async def test_delete_missing_bucket(self, storage: LocalStorage) -> None:
        """Test that deleting an unknown bucket raises NotFound."""
        with pytest.raises(BucketNotFoundError):
            await storage.delete_bucket("missing")

    @pytest.mark.asyncio
    async def test_delete_non_empty_bucket_changes_nothing(
        self, storage: LocalStorage
    ) -> None:
        """Test that a bucket with objects is kept intact on delete."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "a.jpg", ObjectWrite(data=b"jpeg"))

        with pytest.raises(NotEmptyError):
            await storage.delete_bucket("photos")

        assert await read_object(storage, "photos", "a.jpg") == b"jpeg"
        listing = await storage.list_bucket("photos")
        assert [o.key for o in listing.contents] == ["a.jpg"]

    @pytest.mark.asyncio
    async def test_bucket_acl_stub(self, storage: LocalStorage) -> None:
        """Test the fixed ACL: synthetic owner with full control."""
        await storage.create_bucket("photos")
        policy = await storage.get_bucket_acl("photos")

        assert policy.owner == LOCAL_OWNER
        assert len(policy.grants) == 1
        assert policy.grants[0].permission == "FULL_CONTROL"
        assert policy.grants[0].grantee.id == LOCAL_OWNER.id

    @pytest.mark.asyncio
    async def test_bucket_acl_missing_bucket(self, storage: LocalStorage) -> None:
        """Test that the ACL of an unknown bucket is NotFound."""
        with pytest.raises(NotFoundError):
            await storage.get_bucket_acl("missing")


class TestLocalObjects:
    """Test cases for object operations."""

    @pytest.mark.asyncio
    async def test_photos_scenario(self, storage: LocalStorage) -> None:
        """Test create, put, list, get, delete of a single object."""
        data = b"\xff\xd8\xff" + b"x" * 1021
        await storage.create_bucket("photos")
        await storage.put_object(
            "photos", "a.jpg", ObjectWrite(data=data, content_type="image/jpeg")
        )

        listing = await storage.list_bucket("photos")
        assert len(listing.contents) == 1
        assert listing.contents[0].key == "a.jpg"
        assert listing.contents[0].size == 1024

        obj = await storage.get_object("photos", "a.jpg")
        try:
            assert obj.content_type == "image/jpeg"
            assert await obj.read() == data
        finally:
            await obj.close()

        await storage.delete_object("photos", "a.jpg")
        listing = await storage.list_bucket("photos")
        assert listing.contents == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [b"", b"hello world", bytes(range(256)) * 4096])
    async def test_put_get_round_trip(self, storage: LocalStorage, data: bytes) -> None:
        """Test that stored bytes come back unchanged, including empty payloads."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "blob", ObjectWrite(data=data))
        assert await read_object(storage, "photos", "blob") == data

    @pytest.mark.asyncio
    async def test_put_from_file_and_async_iterator(self, storage: LocalStorage) -> None:
        """Test that file objects and async chunk iterators are accepted."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "f", ObjectWrite(data=io.BytesIO(b"from file")))
        await storage.put_object("photos", "s", ObjectWrite(data=chunks(b"from ", b"stream")))

        assert await read_object(storage, "photos", "f") == b"from file"
        assert await read_object(storage, "photos", "s") == b"from stream"

    @pytest.mark.asyncio
    async def test_default_content_type(self, storage: LocalStorage) -> None:
        """Test that objects without a content type get the default."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "blob", ObjectWrite(data=b"x"))

        async with await storage.get_object("photos", "blob") as obj:
            assert obj.content_type == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_overwrite_replaces_object(self, storage: LocalStorage) -> None:
        """Test that a second put replaces payload and content type."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "a", ObjectWrite(data=b"one", content_type="text/plain"))
        await storage.put_object("photos", "a", ObjectWrite(data=b"two", content_type="image/png"))

        async with await storage.get_object("photos", "a") as obj:
            assert await obj.read() == b"two"
            assert obj.content_type == "image/png"

    @pytest.mark.asyncio
    async def test_put_missing_bucket(self, storage: LocalStorage) -> None:
        """Test that writing into an unknown bucket raises NotFound."""
        with pytest.raises(BucketNotFoundError):
            await storage.put_object("missing", "a", ObjectWrite(data=b"x"))

    @pytest.mark.asyncio
    async def test_get_missing_object(self, storage: LocalStorage) -> None:
        """Test that reading an unknown key raises NotFound."""
        await storage.create_bucket("photos")
        with pytest.raises(ObjectNotFoundError):
            await storage.get_object("photos", "nope")

    @pytest.mark.asyncio
    async def test_delete_missing_object(self, storage: LocalStorage) -> None:
        """Test that deletes are not idempotent."""
        await storage.create_bucket("photos")
        with pytest.raises(NotFoundError):
            await storage.delete_object("photos", "nope")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("key", ["", "../escape", "a//b", "./a", "a.attrs", "dir/x.attrs"])
    async def test_invalid_keys(self, storage: LocalStorage, key: str) -> None:
        """Test that keys escaping the bucket or clashing with sidecars are rejected."""
        await storage.create_bucket("photos")
        with pytest.raises(InvalidArgumentError):
            await storage.put_object("photos", key, ObjectWrite(data=b"x"))

    @pytest.mark.asyncio
    async def test_nested_keys_listed_and_pruned(self, storage: LocalStorage) -> None:
        """Test that slash keys nest on disk and empty directories are removed."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "2024/06/b.png", ObjectWrite(data=b"png"))

        listing = await storage.list_bucket("photos")
        assert [o.key for o in listing.contents] == ["2024/06/b.png"]

        await storage.delete_object("photos", "2024/06/b.png")
        assert not (storage.base_path / "photos" / "2024").exists()
        assert (storage.base_path / "photos").is_dir()

    @pytest.mark.asyncio
    async def test_list_prefix_order_and_truncation(self, storage: LocalStorage) -> None:
        """Test prefix filtering, key ordering and max_keys."""
        await storage.create_bucket("photos")
        for key in ("img/c", "img/a", "doc/x", "img/b"):
            await storage.put_object("photos", key, ObjectWrite(data=key.encode()))

        listing = await storage.list_bucket("photos", prefix="img/")
        assert [o.key for o in listing.contents] == ["img/a", "img/b", "img/c"]
        assert listing.is_truncated is False

        listing = await storage.list_bucket("photos", prefix="img/", max_keys=2)
        assert [o.key for o in listing.contents] == ["img/a", "img/b"]
        assert listing.is_truncated is True
        assert listing.max_keys == 2

    @pytest.mark.asyncio
    async def test_listing_reports_md5_etag(self, storage: LocalStorage) -> None:
        """Test that ETags are quoted MD5 digests and sidecars are hidden."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "a", ObjectWrite(data=b"hello"))

        listing = await storage.list_bucket("photos")
        assert len(listing.contents) == 1
        entry = listing.contents[0]
        assert entry.etag == f'"{hashlib.md5(b"hello").hexdigest()}"'
        assert entry.size == 5
        assert entry.storage_class == "STANDARD"
        assert entry.owner == LOCAL_OWNER

    @pytest.mark.asyncio
    async def test_list_missing_bucket(self, storage: LocalStorage) -> None:
        """Test that listing an unknown bucket raises NotFound."""
        with pytest.raises(BucketNotFoundError):
            await storage.list_bucket("missing")

    @pytest.mark.asyncio
    async def test_copy_preserves_bytes_and_source(self, storage: LocalStorage) -> None:
        """Test that copy duplicates payload and content type, leaving the source."""
        await storage.create_bucket("src")
        await storage.create_bucket("dst")
        await storage.put_object(
            "src", "a", ObjectWrite(data=b"payload", content_type="text/plain")
        )

        await storage.copy_object("src", "a", "dst", "b")

        assert await read_object(storage, "dst", "b") == b"payload"
        assert await read_object(storage, "src", "a") == b"payload"
        async with await storage.get_object("dst", "b") as obj:
            assert obj.content_type == "text/plain"

    @pytest.mark.asyncio
    async def test_copy_to_missing_bucket(self, storage: LocalStorage) -> None:
        """Test that copying into an unknown bucket raises NotFound."""
        await storage.create_bucket("src")
        await storage.put_object("src", "a", ObjectWrite(data=b"x"))
        with pytest.raises(BucketNotFoundError):
            await storage.copy_object("src", "a", "missing", "a")

    @pytest.mark.asyncio
    async def test_move_removes_source(self, storage: LocalStorage) -> None:
        """Test that move leaves only the destination."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "old", ObjectWrite(data=b"data"))

        await storage.move_object("photos", "old", "photos", "new")

        assert await read_object(storage, "photos", "new") == b"data"
        with pytest.raises(NotFoundError):
            await storage.get_object("photos", "old")

    @pytest.mark.asyncio
    async def test_move_keeps_both_when_delete_fails(self, storage: LocalStorage) -> None:
        """Test that a failed delete after the copy surfaces and leaves both copies."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "old", ObjectWrite(data=b"data"))
        failure = BackendUnavailableError("disk gone", operation="delete_object")

        with patch.object(storage, "delete_object", AsyncMock(side_effect=failure)):
            with pytest.raises(BackendUnavailableError):
                await storage.move_object("photos", "old", "photos", "new")

        assert await read_object(storage, "photos", "old") == b"data"
        assert await read_object(storage, "photos", "new") == b"data"

    @pytest.mark.asyncio
    async def test_head_object(self, storage: LocalStorage) -> None:
        """Test that head merges built-in attributes with user metadata."""
        await storage.create_bucket("photos")
        await storage.put_object(
            "photos",
            "a.jpg",
            ObjectWrite(data=b"jpeg", content_type="image/jpeg", metadata={"camera": "x100"}),
        )

        attributes = await storage.head_object("photos", "a.jpg")
        assert attributes["Size"] == "4"
        assert attributes["ContentType"] == "image/jpeg"
        assert attributes["ETag"] == f'"{hashlib.md5(b"jpeg").hexdigest()}"'
        assert attributes["LastModified"].endswith("Z")
        assert attributes["camera"] == "x100"

    @pytest.mark.asyncio
    async def test_head_missing_object(self, storage: LocalStorage) -> None:
        """Test that head of an unknown key raises NotFound."""
        await storage.create_bucket("photos")
        with pytest.raises(ObjectNotFoundError):
            await storage.head_object("photos", "nope")

    @pytest.mark.asyncio
    async def test_corrupt_attribute_file(self, storage: LocalStorage) -> None:
        """Test that an unreadable sidecar fails reads instead of dropping attributes."""
        await storage.create_bucket("photos")
        await storage.put_object(
            "photos", "a.jpg", ObjectWrite(data=b"jpeg", content_type="image/jpeg")
        )
        sidecar = storage.base_path / "photos" / f"a.jpg{ATTRS_SUFFIX}"
        assert sidecar.is_file()
        sidecar.write_bytes(b"{not json")

        with pytest.raises(BackendUnavailableError):
            await storage.get_object("photos", "a.jpg")
        with pytest.raises(BackendUnavailableError):
            await storage.head_object("photos", "a.jpg")

    @pytest.mark.asyncio
    async def test_read_after_close(self, storage: LocalStorage) -> None:
        """Test that a closed stream refuses reads and closes only once."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "a", ObjectWrite(data=b"x"))

        obj = await storage.get_object("photos", "a")
        await obj.close()
        await obj.close()

        assert obj.closed
        with pytest.raises(ValueError):
            await obj.read()

    @pytest.mark.asyncio
    async def test_iter_chunks(self, storage: LocalStorage) -> None:
        """Test chunked reads cover the whole payload."""
        await storage.create_bucket("photos")
        await storage.put_object("photos", "a", ObjectWrite(data=b"abcdefghij"))

        async with await storage.get_object("photos", "a") as obj:
            parts = [chunk async for chunk in obj.iter_chunks(chunk_size=4)]

        assert parts == [b"abcd", b"efgh", b"ij"]
