"""S3/MinIO bucket backend."""

import logging
from typing import Any

import aioboto3
from botocore.exceptions import ClientError

from bucketstore.exceptions import ObjectNotFoundError, StorageError
from bucketstore.storage.base import (
    Bucket,
    BytesObjectReader,
    IterCallback,
    ObjectReader,
    UploadData,
    checkpoint,
    invoke_callback,
    iter_upload_chunks,
)
from bucketstore.storage.options import (
    IterObjectAttributes,
    IterOption,
    ObjectAttributes,
    apply_iter_options,
    validate_iter_options,
)

logger = logging.getLogger(__name__)

DIR_DELIM = "/"

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})


def _error_code(err: BaseException) -> str | None:
    if isinstance(err, ClientError):
        return err.response.get("Error", {}).get("Code")
    return None


class _ChunkedUploadSource:
    """File-like object with an async read() over an async chunk iterator."""

    def __init__(self, chunks):
        self._chunks = chunks
        self._buffer = bytearray()
        self._done = False

    async def read(self, size: int = -1) -> bytes:
        while not self._done and (size is None or size < 0 or len(self._buffer) < size):
            try:
                self._buffer += await self._chunks.__anext__()
            except StopAsyncIteration:
                self._done = True
        if size is None or size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


class S3Bucket(Bucket):
    """
    S3/MinIO bucket.

    Supports both AWS S3 and MinIO (via endpoint_url configuration).
    Every key is stored under an optional fixed prefix.
    """

    def __init__(
        self,
        bucket: str,
        prefix: str = "",
        endpoint_url: str | None = None,
        region: str = "us-east-1",
        aws_access_key_id: str | None = None,
        aws_secret_access_key: str | None = None,
    ):
        """
        Initialize S3 bucket.

        Args:
            bucket: S3 bucket name
            prefix: Key prefix for all objects (empty for the bucket root)
            endpoint_url: Custom endpoint URL for MinIO (None for AWS S3)
            region: AWS region
            aws_access_key_id: AWS access key (optional, uses env/IAM if not set)
            aws_secret_access_key: AWS secret key (optional, uses env/IAM if not set)
        """
        super().__init__()
        bucket = (bucket or "").strip()
        if not bucket:
            raise StorageError("missing S3 bucket name", provider="S3")

        prefix = (prefix or "").strip(DIR_DELIM)
        self.bucket = bucket
        self.prefix = f"{prefix}{DIR_DELIM}" if prefix else ""
        self.endpoint_url = endpoint_url
        self.region = region
        self.aws_access_key_id = aws_access_key_id
        self.aws_secret_access_key = aws_secret_access_key
        self._session = aioboto3.Session()

    @property
    def provider(self) -> str:
        return "S3"

    @property
    def name(self) -> str:
        return self.bucket

    def supported_iter_options(self) -> frozenset[IterOption]:
        return frozenset({IterOption.RECURSIVE, IterOption.UPDATED_AT})

    def _get_client_kwargs(self) -> dict:
        """Build kwargs for S3 client."""
        kwargs = {
            "region_name": self.region,
        }
        if self.endpoint_url:
            kwargs["endpoint_url"] = self.endpoint_url
        if self.aws_access_key_id and self.aws_secret_access_key:
            kwargs["aws_access_key_id"] = self.aws_access_key_id
            kwargs["aws_secret_access_key"] = self.aws_secret_access_key
        return kwargs

    def _client(self):
        return self._session.client("s3", **self._get_client_kwargs())

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    def _translate(self, err: ClientError, key: str | None) -> StorageError:
        if _error_code(err) in _NOT_FOUND_CODES:
            return ObjectNotFoundError(key or "", provider=self.provider)
        return StorageError(str(err), key=key, provider=self.provider)

    def is_obj_not_found_err(self, err: BaseException | None) -> bool:
        return super().is_obj_not_found_err(err) or _error_code(err) in _NOT_FOUND_CODES

    # =========================================================================
    # Reads
    # =========================================================================

    async def _get_object(self, key: str, **extra: Any) -> ObjectReader:
        self._ensure_open()
        await checkpoint()
        async with self._client() as s3:
            try:
                response = await s3.get_object(
                    Bucket=self.bucket, Key=self._key(key), **extra
                )
                content = await response["Body"].read()
            except ClientError as e:
                if "Range" in extra and _error_code(e) == "InvalidRange":
                    # Offset at or past the end of the object.
                    return BytesObjectReader(b"")
                raise self._translate(e, key) from e
        return BytesObjectReader(content)

    async def get(self, key: str) -> ObjectReader:
        return await self._get_object(key)

    async def get_range(self, key: str, offset: int, length: int) -> ObjectReader:
        if offset < 0:
            raise StorageError(
                f"negative offset {offset}", key=key, provider=self.provider
            )
        if length == 0:
            # S3 cannot express an empty range; still report a missing key.
            await self.attributes(key)
            return BytesObjectReader(b"")
        if length < 0:
            byte_range = f"bytes={offset}-"
        else:
            byte_range = f"bytes={offset}-{offset + length - 1}"
        return await self._get_object(key, Range=byte_range)

    async def attributes(self, key: str) -> ObjectAttributes:
        self._ensure_open()
        await checkpoint()
        async with self._client() as s3:
            try:
                response = await s3.head_object(Bucket=self.bucket, Key=self._key(key))
            except ClientError as e:
                raise self._translate(e, key) from e
        return ObjectAttributes(
            size=response.get("ContentLength", 0),
            last_modified=response.get("LastModified"),
        )

    async def exists(self, key: str) -> bool:
        try:
            await self.attributes(key)
        except ObjectNotFoundError:
            return False
        return True

    # =========================================================================
    # Writes
    # =========================================================================

    async def upload(self, key: str, data: UploadData) -> None:
        self._ensure_open()
        await checkpoint()
        source = _ChunkedUploadSource(iter_upload_chunks(data))
        async with self._client() as s3:
            try:
                await s3.upload_fileobj(source, self.bucket, self._key(key))
            except ClientError as e:
                raise self._translate(e, key) from e
        logger.debug(f"Uploaded {key} to s3://{self.bucket}/{self.prefix}")

    async def delete(self, key: str) -> None:
        self._ensure_open()
        await checkpoint()
        async with self._client() as s3:
            try:
                # S3 reports success for missing keys; check first.
                await s3.head_object(Bucket=self.bucket, Key=self._key(key))
                await s3.delete_object(Bucket=self.bucket, Key=self._key(key))
            except ClientError as e:
                raise self._translate(e, key) from e

    # =========================================================================
    # Iteration
    # =========================================================================

    async def iter_with_attributes(
        self,
        prefix: str,
        callback: IterCallback,
        *options: IterOption,
    ) -> None:
        self._ensure_open()
        validate_iter_options(
            self.supported_iter_options(), *options, provider=self.provider
        )
        params = apply_iter_options(*options)
        await checkpoint()

        prefix = prefix.strip(DIR_DELIM)
        if prefix:
            prefix += DIR_DELIM

        paginate_kwargs = {"Bucket": self.bucket, "Prefix": self._key(prefix)}
        if not params.recursive:
            paginate_kwargs["Delimiter"] = DIR_DELIM

        strip = len(self.prefix)
        async with self._client() as s3:
            paginator = s3.get_paginator("list_objects_v2")
            try:
                async for page in paginator.paginate(**paginate_kwargs):
                    for common in page.get("CommonPrefixes", []):
                        await checkpoint()
                        await invoke_callback(
                            callback,
                            IterObjectAttributes(name=common["Prefix"][strip:]),
                        )
                    for obj in page.get("Contents", []):
                        await checkpoint()
                        name = obj["Key"][strip:]
                        if not name or name == prefix:
                            continue
                        await invoke_callback(
                            callback,
                            IterObjectAttributes(
                                name=name,
                                last_modified=(
                                    obj.get("LastModified")
                                    if params.last_modified
                                    else None
                                ),
                            ),
                        )
            except ClientError as e:
                raise self._translate(e, prefix) from e
