"""
Filesystem-backed bucket.

Keys are mapped onto a directory tree: key "a/b/c" is stored as the regular
file <root>/a/b/c. Intermediate directories are created on upload and pruned
on delete once they hold nothing. The tree under the root is the only state;
every operation re-reads it from disk.
"""

import asyncio
import errno
import logging
import os
import stat
import threading
import uuid
from collections.abc import Awaitable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, NamedTuple

import aiofiles
import aiofiles.os

from bucketstore.exceptions import InvalidKeyError, ObjectNotFoundError, StorageError
from bucketstore.storage.base import (
    Bucket,
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
    IterParams,
    ObjectAttributes,
    apply_iter_options,
    validate_iter_options,
)

logger = logging.getLogger(__name__)

DIR_DELIM = "/"

# Name prefix of in-flight upload files; never reported as keys.
TEMP_PREFIX = ".bucketstore-upload-"

# Serializes "remove file, then prune empty ancestors" across every
# FilesystemBucket in the process. Uploads hold it while creating their
# parent directories so a prune cannot remove a directory being written into.
_prune_lock = threading.Lock()


class _DirEntry(NamedTuple):
    name: str
    is_dir: bool
    is_empty_dir: bool


def _mtime(st: os.stat_result) -> datetime:
    return datetime.fromtimestamp(st.st_mtime, tz=timezone.utc)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except (FileNotFoundError, NotADirectoryError):
        pass


def _has_objects(directory: str | os.PathLike) -> bool:
    """Return True if directory holds at least one object, at any depth."""
    try:
        with os.scandir(directory) as it:
            for entry in it:
                if entry.is_dir():
                    if _has_objects(entry.path):
                        return True
                elif not entry.name.startswith(TEMP_PREFIX):
                    return True
    except (FileNotFoundError, NotADirectoryError):
        # Pruned while we were listing.
        pass
    return False


def _list_dir(directory: Path) -> list[_DirEntry]:
    """List a directory sorted by name."""
    entries = []
    with os.scandir(directory) as it:
        for entry in it:
            is_dir = entry.is_dir()
            is_empty = is_dir and not _has_objects(entry.path)
            entries.append(_DirEntry(entry.name, is_dir, is_empty))
    entries.sort(key=lambda e: e.name)
    return entries


async def _run_to_completion(aw: Awaitable[Any]) -> Any:
    """
    Await aw; if the caller is cancelled, wait for aw to finish before
    re-raising so no thread work lands after the caller has moved on.
    """
    task = asyncio.ensure_future(aw)
    try:
        return await asyncio.shield(task)
    except asyncio.CancelledError:
        await asyncio.wait({task})
        if not task.cancelled():
            task.exception()
        raise


class FileObjectReader(ObjectReader):
    """ObjectReader over an open file, limited to a byte count."""

    def __init__(self, handle: Any, size: int):
        self._handle = handle
        self._remaining = size
        self.size = size

    async def read(self, size: int = -1) -> bytes:
        await checkpoint()
        if self._remaining <= 0:
            return b""
        if size is None or size < 0:
            size = self._remaining
        chunk = await self._handle.read(min(size, self._remaining))
        self._remaining -= len(chunk)
        return chunk

    async def close(self) -> None:
        await self._handle.close()


class FilesystemBucket(Bucket):
    """
    Bucket stored in a local directory.

    Mostly useful for development and tests, but safe for concurrent use:
    uploads are atomic (temp file + rename) and deletes prune empty parent
    directories under a process-wide lock.
    """

    def __init__(self, root_dir: str | os.PathLike):
        """
        Initialize filesystem bucket.

        Args:
            root_dir: Directory holding the objects; created if missing

        Raises:
            StorageError: If the root cannot be created or is not a directory
        """
        super().__init__()
        self.root_dir = Path(root_dir).absolute()
        try:
            self.root_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(
                f"cannot create bucket root {self.root_dir}: {e}",
                provider=self.provider,
            ) from e
        logger.debug(f"Opened filesystem bucket at {self.root_dir}")

    @property
    def provider(self) -> str:
        return "FILESYSTEM"

    @property
    def name(self) -> str:
        return f"fs: {self.root_dir}"

    def supported_iter_options(self) -> frozenset[IterOption]:
        return frozenset({IterOption.RECURSIVE, IterOption.UPDATED_AT})

    # =========================================================================
    # Key mapping
    # =========================================================================

    def _path(self, key: str) -> Path:
        """Map a key onto its path under the root."""
        if not key:
            raise InvalidKeyError(key, "object key is empty", provider=self.provider)
        if "\x00" in key:
            raise InvalidKeyError(
                key, "object key contains a NUL byte", provider=self.provider
            )
        parts = key.split(DIR_DELIM)
        if any(part in ("", ".", "..") for part in parts):
            raise InvalidKeyError(
                key,
                "object key has an empty, '.' or '..' segment",
                provider=self.provider,
            )
        return self.root_dir.joinpath(*parts)

    async def _stat_object(self, key: str, path: Path) -> os.stat_result:
        try:
            st = await aiofiles.os.stat(path)
        except (FileNotFoundError, NotADirectoryError) as e:
            raise ObjectNotFoundError(key, provider=self.provider) from e
        except OSError as e:
            raise StorageError(
                f"stat {path}: {e}", key=key, provider=self.provider
            ) from e
        if stat.S_ISDIR(st.st_mode):
            raise StorageError(
                "object path is a directory", key=key, provider=self.provider
            )
        return st

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, key: str) -> ObjectReader:
        return await self.get_range(key, 0, -1)

    async def get_range(self, key: str, offset: int, length: int) -> ObjectReader:
        self._ensure_open()
        await checkpoint()
        if offset < 0:
            raise StorageError(
                f"negative offset {offset}", key=key, provider=self.provider
            )
        path = self._path(key)
        st = await self._stat_object(key, path)

        try:
            handle = await aiofiles.open(path, "rb")
        except (FileNotFoundError, NotADirectoryError) as e:
            raise ObjectNotFoundError(key, provider=self.provider) from e
        except OSError as e:
            raise StorageError(
                f"open {path}: {e}", key=key, provider=self.provider
            ) from e

        try:
            if offset:
                await handle.seek(offset)
        except BaseException:
            await handle.close()
            raise

        remaining = max(st.st_size - offset, 0)
        if length >= 0:
            remaining = min(remaining, length)
        return FileObjectReader(handle, remaining)

    async def attributes(self, key: str) -> ObjectAttributes:
        self._ensure_open()
        await checkpoint()
        st = await self._stat_object(key, self._path(key))
        return ObjectAttributes(size=st.st_size, last_modified=_mtime(st))

    async def exists(self, key: str) -> bool:
        self._ensure_open()
        await checkpoint()
        path = self._path(key)
        try:
            st = await aiofiles.os.stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as e:
            raise StorageError(
                f"stat {path}: {e}", key=key, provider=self.provider
            ) from e
        return not stat.S_ISDIR(st.st_mode)

    # =========================================================================
    # Writes
    # =========================================================================

    def _prepare_upload(self, key: str, path: Path, tmp_path: Path) -> None:
        """Create parent directories and an empty temp file next to path."""
        with _prune_lock:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(
                    f"cannot create directory for object: {e}",
                    key=key,
                    provider=self.provider,
                ) from e
            if path.is_dir():
                raise StorageError(
                    "object path is a directory", key=key, provider=self.provider
                )
            try:
                fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o644)
            except OSError as e:
                raise StorageError(
                    f"create {tmp_path}: {e}", key=key, provider=self.provider
                ) from e
            os.close(fd)

    async def upload(self, key: str, data: UploadData) -> None:
        self._ensure_open()
        await checkpoint()
        path = self._path(key)
        tmp_path = path.parent / f"{TEMP_PREFIX}{uuid.uuid4().hex}"

        committed = False
        try:
            await _run_to_completion(
                asyncio.to_thread(self._prepare_upload, key, path, tmp_path)
            )
            async with aiofiles.open(tmp_path, "wb") as f:
                async for chunk in iter_upload_chunks(data):
                    await f.write(chunk)
            await _run_to_completion(aiofiles.os.replace(tmp_path, path))
            committed = True
        except IsADirectoryError as e:
            raise StorageError(
                "object path is a directory", key=key, provider=self.provider
            ) from e
        except OSError as e:
            raise StorageError(
                f"write {path}: {e}", key=key, provider=self.provider
            ) from e
        finally:
            if not committed:
                await _run_to_completion(
                    asyncio.to_thread(self._abort_upload, key, tmp_path)
                )

        logger.debug(f"Uploaded {key} to {self.name}")

    def _abort_upload(self, key: str, tmp_path: Path) -> None:
        """Remove the temp file of a failed upload and any directory it left empty."""
        with _prune_lock:
            _discard(tmp_path)
            try:
                self._prune_empty_dirs(key, tmp_path.parent)
            except StorageError as e:
                logger.warning(f"Cleanup after failed upload of {key}: {e}")

    async def delete(self, key: str) -> None:
        self._ensure_open()
        await checkpoint()
        path = self._path(key)
        await asyncio.to_thread(self._delete_and_prune, key, path)

    def _delete_and_prune(self, key: str, path: Path) -> None:
        with _prune_lock:
            if path.is_dir():
                raise StorageError(
                    "object path is a directory", key=key, provider=self.provider
                )
            try:
                path.unlink()
            except (FileNotFoundError, NotADirectoryError) as e:
                raise ObjectNotFoundError(key, provider=self.provider) from e
            except OSError as e:
                raise StorageError(
                    f"remove {path}: {e}", key=key, provider=self.provider
                ) from e
            self._prune_empty_dirs(key, path.parent)

    def _prune_empty_dirs(self, key: str, directory: Path) -> None:
        """Remove empty directories from directory up to, not including, the root."""
        while directory != self.root_dir and self.root_dir in directory.parents:
            try:
                directory.rmdir()
            except FileNotFoundError:
                # Already pruned.
                pass
            except OSError as e:
                if e.errno in (errno.ENOTEMPTY, errno.EEXIST, errno.ENOTDIR):
                    return
                raise StorageError(
                    f"prune {directory}: {e}", key=key, provider=self.provider
                ) from e
            else:
                logger.debug(f"Pruned empty directory {directory}")
            directory = directory.parent

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
            directory = self._path(prefix)
            prefix += DIR_DELIM
        else:
            directory = self.root_dir
        await self._walk(directory, prefix, callback, params)

    async def _walk(
        self,
        directory: Path,
        prefix: str,
        callback: IterCallback,
        params: IterParams,
    ) -> None:
        try:
            entries = await asyncio.to_thread(_list_dir, directory)
        except (FileNotFoundError, NotADirectoryError):
            return
        except OSError as e:
            raise StorageError(
                f"list {directory}: {e}", key=prefix, provider=self.provider
            ) from e

        for entry in entries:
            await checkpoint()
            name = prefix + entry.name

            if entry.is_dir:
                if params.recursive:
                    await self._walk(
                        directory / entry.name, name + DIR_DELIM, callback, params
                    )
                elif not entry.is_empty_dir:
                    await invoke_callback(
                        callback, IterObjectAttributes(name=name + DIR_DELIM)
                    )
                continue

            if entry.name.startswith(TEMP_PREFIX):
                continue

            last_modified = None
            if params.last_modified:
                try:
                    st = await aiofiles.os.stat(directory / entry.name)
                except FileNotFoundError:
                    # Deleted since the directory was listed.
                    continue
                last_modified = _mtime(st)

            await invoke_callback(
                callback, IterObjectAttributes(name=name, last_modified=last_modified)
            )
