"""Object level S3 endpoints."""
from fastapi import APIRouter, Request, Response, status
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from s3proxy.api.deps import SettingsDep, StorageDep
from s3proxy.api.errors import XML_MEDIA_TYPE
from s3proxy.api.headers import (
    COPY_SOURCE_HEADER,
    extract_user_metadata,
    http_date,
    parse_copy_source,
    user_metadata_headers,
)
from s3proxy.core.logging import get_logger
from s3proxy.core.models import ObjectRead, ObjectWrite
from s3proxy.core.xml import render_copy_object_result

logger = get_logger(__name__)

router = APIRouter()


async def _stream_body(obj: ObjectRead, chunk_size: int):
    try:
        async for chunk in obj.iter_chunks(chunk_size):
            yield chunk
    finally:
        await obj.close()


@router.put("/{bucket}/{key:path}")
async def put_object(
    bucket: str, key: str, request: Request, storage: StorageDep
) -> Response:
    """PutObject, or CopyObject when ``x-amz-copy-source`` is present."""
    copy_source = request.headers.get(COPY_SOURCE_HEADER)

    if copy_source is not None:
        src_bucket, src_key = parse_copy_source(copy_source)
        logger.debug("Copy requested", src_bucket=src_bucket, src_key=src_key)
        await storage.copy_object(src_bucket, src_key, bucket, key)
        attributes = await storage.head_object(bucket, key)
        return Response(
            content=render_copy_object_result(
                attributes["ETag"], attributes["LastModified"]
            ),
            media_type=XML_MEDIA_TYPE,
        )

    await storage.put_object(
        bucket,
        key,
        ObjectWrite(
            data=request.stream(),
            content_type=request.headers.get("content-type"),
            metadata=extract_user_metadata(request.headers),
        ),
    )
    attributes = await storage.head_object(bucket, key)
    return Response(status_code=status.HTTP_200_OK, headers={"ETag": attributes["ETag"]})


@router.get("/{bucket}/{key:path}")
async def get_object(
    bucket: str, key: str, storage: StorageDep, config: SettingsDep
) -> StreamingResponse:
    """GetObject: stream the payload with its stored content type."""
    obj = await storage.get_object(bucket, key)

    headers = user_metadata_headers(obj.metadata)
    if obj.size is not None:
        headers["Content-Length"] = str(obj.size)
    if obj.etag:
        headers["ETag"] = obj.etag
    if obj.last_modified is not None:
        headers["Last-Modified"] = http_date(obj.last_modified)

    # The generator closes the stream when it finishes; the background task
    # covers responses abandoned before the first chunk.
    return StreamingResponse(
        _stream_body(obj, config.chunk_size),
        media_type=obj.content_type,
        headers=headers,
        background=BackgroundTask(obj.close),
    )


@router.head("/{bucket}/{key:path}")
async def head_object(bucket: str, key: str, storage: StorageDep) -> Response:
    """HeadObject: attributes as headers, no body."""
    attributes = await storage.head_object(bucket, key)

    headers = user_metadata_headers(attributes)
    headers.update(
        {
            "Content-Length": attributes["Size"],
            "Content-Type": attributes["ContentType"],
            "ETag": attributes["ETag"],
            "Last-Modified": http_date(attributes["LastModified"]),
        }
    )
    return Response(status_code=status.HTTP_200_OK, headers=headers)


@router.delete("/{bucket}/{key:path}")
async def delete_object(bucket: str, key: str, storage: StorageDep) -> Response:
    """DeleteObject."""
    await storage.delete_object(bucket, key)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
