"""
Object storage buckets.

Provides the abstract Bucket contract and implementations for:
- Local filesystem storage
- S3/MinIO storage
"""

from bucketstore.storage.base import Bucket, BytesObjectReader, ObjectReader
from bucketstore.storage.factory import get_bucket_from_settings, new_bucket
from bucketstore.storage.filesystem import FilesystemBucket
from bucketstore.storage.s3 import S3Bucket
from bucketstore.storage.options import (
    EMPTY_OBJECT_ATTRIBUTES,
    RECURSIVE,
    WITH_UPDATED_AT,
    IterObjectAttributes,
    IterOption,
    ObjectAttributes,
)

__all__ = [
    "Bucket",
    "BytesObjectReader",
    "ObjectReader",
    "FilesystemBucket",
    "S3Bucket",
    "EMPTY_OBJECT_ATTRIBUTES",
    "RECURSIVE",
    "WITH_UPDATED_AT",
    "IterObjectAttributes",
    "IterOption",
    "ObjectAttributes",
    "get_bucket_from_settings",
    "new_bucket",
]
