"""Uniform async object storage over filesystem and cloud backends."""

from bucketstore.exceptions import (
    BucketClosedError,
    InvalidKeyError,
    ObjectNotFoundError,
    OptionNotSupportedError,
    StorageError,
)

__all__ = [
    "BucketClosedError",
    "InvalidKeyError",
    "ObjectNotFoundError",
    "OptionNotSupportedError",
    "StorageError",
]
