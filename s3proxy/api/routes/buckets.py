"""Service and bucket level S3 endpoints."""
from fastapi import APIRouter, Query, Request, Response, status

from s3proxy.api.deps import SettingsDep, StorageDep
from s3proxy.api.errors import XML_MEDIA_TYPE
from s3proxy.core.logging import get_logger
from s3proxy.core.xml import (
    render_access_control_policy,
    render_list_all_my_buckets,
    render_list_bucket,
)

logger = get_logger(__name__)

router = APIRouter()


@router.get("/")
async def list_all_buckets(storage: StorageDep) -> Response:
    """ListBuckets: every bucket of the configured provider."""
    result = await storage.list_all_buckets()
    return Response(content=render_list_all_my_buckets(result), media_type=XML_MEDIA_TYPE)


@router.put("/{bucket}")
async def create_bucket(bucket: str, storage: StorageDep) -> Response:
    """CreateBucket."""
    await storage.create_bucket(bucket)
    return Response(status_code=status.HTTP_200_OK, headers={"Location": f"/{bucket}"})


@router.delete("/{bucket}")
async def delete_bucket(bucket: str, storage: StorageDep) -> Response:
    """DeleteBucket; refused while the bucket holds objects."""
    await storage.delete_bucket(bucket)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{bucket}")
async def get_bucket(
    bucket: str,
    request: Request,
    storage: StorageDep,
    config: SettingsDep,
    prefix: str = "",
    max_keys: int | None = Query(default=None, alias="max-keys", ge=0),
) -> Response:
    """ListObjects, or GetBucketAcl when the ``acl`` subresource is requested."""
    if "acl" in request.query_params:
        policy = await storage.get_bucket_acl(bucket)
        return Response(
            content=render_access_control_policy(policy), media_type=XML_MEDIA_TYPE
        )

    limit = config.list_max_keys if max_keys is None else min(max_keys, config.list_max_keys)
    result = await storage.list_bucket(bucket, prefix=prefix, max_keys=limit)
    logger.debug(
        "Bucket listed",
        bucket=bucket,
        prefix=prefix,
        count=len(result.contents),
        truncated=result.is_truncated,
    )
    return Response(content=render_list_bucket(result), media_type=XML_MEDIA_TYPE)
