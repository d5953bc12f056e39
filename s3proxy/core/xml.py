"""S3 XML rendering for wire documents."""
import xml.etree.ElementTree as ET
from datetime import datetime, timezone

from s3proxy.core.models import (
    AccessControlPolicy,
    ListAllMyBucketsResult,
    ListBucketResult,
    Owner,
)

S3_XMLNS = "http://s3.amazonaws.com/doc/2006-03-01/"
XSI_XMLNS = "http://www.w3.org/2001/XMLSchema-instance"

_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'


def format_timestamp(value: datetime) -> str:
    """Render a datetime as S3 does: 2006-02-03T16:45:09.000Z (UTC)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _text(parent: ET.Element, tag: str, value: object) -> ET.Element:
    child = ET.SubElement(parent, tag)
    if isinstance(value, bool):
        child.text = "true" if value else "false"
    elif isinstance(value, datetime):
        child.text = format_timestamp(value)
    else:
        child.text = "" if value is None else str(value)
    return child


def _owner(parent: ET.Element, owner: Owner) -> None:
    node = ET.SubElement(parent, "Owner")
    _text(node, "ID", owner.id)
    _text(node, "DisplayName", owner.display_name)


def _serialize(root: ET.Element) -> bytes:
    return (_DECLARATION + ET.tostring(root, encoding="unicode")).encode("utf-8")


def render_list_all_my_buckets(result: ListAllMyBucketsResult) -> bytes:
    root = ET.Element("ListAllMyBucketsResult", xmlns=S3_XMLNS)
    _owner(root, result.owner)
    buckets = ET.SubElement(root, "Buckets")
    for bucket in result.buckets:
        node = ET.SubElement(buckets, "Bucket")
        _text(node, "Name", bucket.name)
        _text(node, "CreationDate", bucket.creation_date)
    return _serialize(root)


def render_list_bucket(result: ListBucketResult) -> bytes:
    root = ET.Element("ListBucketResult", xmlns=S3_XMLNS)
    _text(root, "Name", result.name)
    _text(root, "Prefix", result.prefix)
    _text(root, "MaxKeys", result.max_keys)
    _text(root, "Marker", result.marker)
    _text(root, "IsTruncated", result.is_truncated)
    for item in result.contents:
        node = ET.SubElement(root, "Contents")
        _text(node, "Key", item.key)
        _text(node, "LastModified", item.last_modified)
        _text(node, "ETag", item.etag)
        _text(node, "Size", item.size)
        _text(node, "StorageClass", item.storage_class)
        if item.owner is not None:
            _owner(node, item.owner)
    return _serialize(root)


def render_access_control_policy(policy: AccessControlPolicy) -> bytes:
    root = ET.Element("AccessControlPolicy", xmlns=S3_XMLNS)
    _owner(root, policy.owner)
    acl = ET.SubElement(root, "AccessControlList")
    for grant in policy.grants:
        node = ET.SubElement(acl, "Grant")
        grantee = ET.SubElement(
            node,
            "Grantee",
            {"xmlns:xsi": XSI_XMLNS, "xsi:type": grant.grantee.type},
        )
        if grant.grantee.uri:
            _text(grantee, "URI", grant.grantee.uri)
        else:
            _text(grantee, "ID", grant.grantee.id)
            _text(grantee, "DisplayName", grant.grantee.display_name)
        _text(node, "Permission", grant.permission)
    return _serialize(root)


def render_copy_object_result(etag: str, last_modified: datetime | str) -> bytes:
    root = ET.Element("CopyObjectResult", xmlns=S3_XMLNS)
    _text(root, "LastModified", last_modified)
    _text(root, "ETag", etag)
    return _serialize(root)


def render_error(code: str, message: str, resource: str, request_id: str) -> bytes:
    """Render an S3 <Error> document (no namespace, as S3 sends it)."""
    root = ET.Element("Error")
    _text(root, "Code", code)
    _text(root, "Message", message)
    _text(root, "Resource", resource)
    _text(root, "RequestId", request_id)
    return _serialize(root)
