"""Abstract base class for object storage buckets."""

import asyncio
import inspect
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Awaitable, Callable
from typing import Any, BinaryIO, Union

from bucketstore.exceptions import BucketClosedError, ObjectNotFoundError
from bucketstore.storage.options import (
    IterObjectAttributes,
    IterOption,
    ObjectAttributes,
    filter_name_only_options,
)

CHUNK_SIZE = 64 * 1024

UploadData = Union[bytes, bytearray, memoryview, BinaryIO, Any]
IterCallback = Callable[[IterObjectAttributes], Union[Awaitable[None], None]]
NameCallback = Callable[[str], Union[Awaitable[None], None]]


async def checkpoint() -> None:
    """
    Yield to the event loop so a pending cancellation is raised here.

    Called before starting any unit of I/O: work handed to a thread pool
    keeps running even when the awaiting task is cancelled.
    """
    await asyncio.sleep(0)


async def invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    """Call a sync or async callback and await it if needed."""
    result = callback(*args)
    if inspect.isawaitable(result):
        await result


async def iter_upload_chunks(
    data: UploadData,
    chunk_size: int = CHUNK_SIZE,
) -> AsyncIterator[bytes]:
    """
    Yield the content of an upload source in chunks.

    Accepts raw bytes, a binary file-like object with a sync read(),
    or an object whose read() is a coroutine (aiofiles handles, ObjectReader).
    """
    if isinstance(data, (bytes, bytearray, memoryview)):
        view = memoryview(data)
        for start in range(0, len(view), chunk_size):
            yield bytes(view[start : start + chunk_size])
        return

    read = getattr(data, "read", None)
    if read is None:
        raise TypeError(f"Unsupported upload source: {type(data).__name__}")

    while True:
        chunk = read(chunk_size)
        if inspect.isawaitable(chunk):
            chunk = await chunk
        if not chunk:
            return
        yield bytes(chunk)


class ObjectReader(ABC):
    """
    Async readable stream over an object's content.

    Supports `async with` and `async for` (chunk iteration).
    """

    #: Number of bytes this reader yields in total, when known.
    size: int | None = None

    @abstractmethod
    async def read(self, size: int = -1) -> bytes:
        """Read up to size bytes; read everything remaining if size < 0."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying resource."""

    async def __aenter__(self) -> "ObjectReader":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def __aiter__(self) -> "ObjectReader":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read(CHUNK_SIZE)
        if not chunk:
            raise StopAsyncIteration
        return chunk


class BytesObjectReader(ObjectReader):
    """ObjectReader over content already held in memory."""

    def __init__(self, content: bytes):
        self._content = content
        self._pos = 0
        self._closed = False
        self.size = len(content)

    async def read(self, size: int = -1) -> bytes:
        await checkpoint()
        if self._closed:
            raise ValueError("I/O operation on closed reader")
        if size is None or size < 0:
            end = len(self._content)
        else:
            end = min(self._pos + size, len(self._content))
        chunk = self._content[self._pos : end]
        self._pos = end
        return chunk

    async def close(self) -> None:
        self._closed = True


class Bucket(ABC):
    """
    Abstract base for object storage buckets.

    A bucket is bound to one backend and one root. It is created once,
    shared by any number of concurrent callers and closed once by its owner.
    Every operation is a coroutine; cancelling the calling task (or wrapping
    the call in asyncio.timeout) cancels the operation.
    """

    def __init__(self) -> None:
        self._closed = False

    @property
    @abstractmethod
    def provider(self) -> str:
        """Return the provider identifier (e.g., 'FILESYSTEM', 'S3')."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Return a human-readable name of the bucket."""

    @abstractmethod
    def supported_iter_options(self) -> frozenset[IterOption]:
        """Return the iteration options this backend can honor."""

    @abstractmethod
    async def get(self, key: str) -> ObjectReader:
        """
        Open an object for reading.

        Raises:
            ObjectNotFoundError: If the object doesn't exist
        """

    @abstractmethod
    async def get_range(self, key: str, offset: int, length: int) -> ObjectReader:
        """
        Open a byte range of an object for reading.

        Args:
            key: Object key
            offset: First byte to read
            length: Number of bytes to read; negative reads to the end

        Raises:
            ObjectNotFoundError: If the object doesn't exist
        """

    @abstractmethod
    async def attributes(self, key: str) -> ObjectAttributes:
        """
        Return size and last modification time of an object.

        Raises:
            ObjectNotFoundError: If the object doesn't exist
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if an object exists. Never raises ObjectNotFoundError."""

    @abstractmethod
    async def upload(self, key: str, data: UploadData) -> None:
        """
        Store data under key.

        The object is only visible once it has been fully written.
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """
        Delete an object.

        Raises:
            ObjectNotFoundError: If the object doesn't exist
        """

    @abstractmethod
    async def iter_with_attributes(
        self,
        prefix: str,
        callback: IterCallback,
        *options: IterOption,
    ) -> None:
        """
        Call callback for each entry under prefix.

        Exceptions raised by the callback abort iteration and propagate.

        Raises:
            OptionNotSupportedError: If an option is not supported
        """

    async def iter(
        self,
        prefix: str,
        callback: NameCallback,
        *options: IterOption,
    ) -> None:
        """
        Call callback with the full name of each entry under prefix.

        Only options that don't require attributes are forwarded.
        """

        async def forward(attrs: IterObjectAttributes) -> None:
            await invoke_callback(callback, attrs.name)

        await self.iter_with_attributes(
            prefix, forward, *filter_name_only_options(*options)
        )

    def is_obj_not_found_err(self, err: BaseException | None) -> bool:
        """Return True if err means the object does not exist."""
        return isinstance(err, ObjectNotFoundError)

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Release backend resources. Calling it again is a no-op."""
        if self._closed:
            return
        self._closed = True
        await self._close()

    async def _close(self) -> None:
        pass

    def _ensure_open(self) -> None:
        if self._closed:
            raise BucketClosedError(provider=self.provider)

    async def __aenter__(self) -> "Bucket":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
