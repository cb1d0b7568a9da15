"""Factory for creating buckets based on configuration."""

import logging

from bucketstore.config import Settings, get_settings
from bucketstore.storage.base import Bucket
from bucketstore.storage.filesystem import FilesystemBucket

logger = logging.getLogger(__name__)


def new_bucket(
    backend: str | None = None,
    filesystem_root: str | None = None,
    s3_bucket: str | None = None,
    s3_prefix: str | None = None,
    s3_endpoint_url: str | None = None,
    s3_region: str | None = None,
    s3_access_key: str | None = None,
    s3_secret_key: str | None = None,
) -> Bucket:
    """
    Create the bucket selected by configuration.

    Arguments override the corresponding settings; anything left unset
    falls back to get_settings(). The caller owns the returned bucket and
    must close it.

    Args:
        backend: "filesystem" or "s3" (defaults to settings.storage_backend)
        filesystem_root: Root directory for the filesystem backend
        s3_bucket: S3 bucket name
        s3_prefix: Key prefix inside the S3 bucket
        s3_endpoint_url: Custom endpoint for MinIO
        s3_region: AWS region
        s3_access_key: AWS access key
        s3_secret_key: AWS secret key

    Returns:
        Configured Bucket instance
    """
    settings = get_settings()
    overrides = {
        "storage_backend": backend,
        "filesystem_root": filesystem_root,
        "s3_bucket": s3_bucket,
        "s3_prefix": s3_prefix,
        "s3_endpoint_url": s3_endpoint_url,
        "s3_region": s3_region,
        "s3_access_key_id": s3_access_key,
        "s3_secret_access_key": s3_secret_key,
    }
    settings = settings.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    return get_bucket_from_settings(settings)


def get_bucket_from_settings(settings: Settings) -> Bucket:
    """
    Create a bucket directly from a Settings object.

    Useful for dependency injection in tests.

    Raises:
        ValueError: If the configured backend is unknown
    """
    if settings.storage_backend == "s3":
        from bucketstore.storage.s3 import S3Bucket

        bucket: Bucket = S3Bucket(
            bucket=settings.s3_bucket,
            prefix=settings.s3_prefix,
            endpoint_url=settings.s3_endpoint_url,
            region=settings.s3_region,
            aws_access_key_id=settings.s3_access_key_id,
            aws_secret_access_key=settings.s3_secret_access_key,
        )
    elif settings.storage_backend == "filesystem":
        bucket = FilesystemBucket(settings.filesystem_root)
    else:
        raise ValueError(f"Unknown storage backend: {settings.storage_backend}")

    logger.info(f"Created {bucket.provider} bucket {bucket.name}")
    return bucket
