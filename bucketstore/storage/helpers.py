"""
Bucket helpers built only on the Bucket contract.

Usage:
    from bucketstore.storage.helpers import upload_dir, download_file

    await upload_dir(bucket, "./blocks/01H8", "blocks/01H8")
    await download_file(bucket, "blocks/01H8/meta.json", "/tmp/meta.json")
"""

import asyncio
import logging
import os
from pathlib import Path

import aiofiles
import aiofiles.os

from bucketstore.storage.base import Bucket
from bucketstore.storage.options import RECURSIVE

logger = logging.getLogger(__name__)

DIR_DELIM = "/"


def _join_key(prefix: str, name: str) -> str:
    prefix = prefix.strip(DIR_DELIM)
    return f"{prefix}{DIR_DELIM}{name}" if prefix else name


async def upload_file(bucket: Bucket, src: str | os.PathLike, key: str) -> None:
    """Upload a local file to key."""
    async with aiofiles.open(src, "rb") as f:
        await bucket.upload(key, f)
    logger.debug(f"Uploaded file {src} to {bucket.name}/{key}")


async def download_file(bucket: Bucket, key: str, dst: str | os.PathLike) -> None:
    """
    Download key into a local file.

    The destination is removed if the download fails part way.

    Raises:
        ObjectNotFoundError: If the object doesn't exist
    """
    reader = await bucket.get(key)
    try:
        dst = Path(dst)
        await aiofiles.os.makedirs(dst.parent, exist_ok=True)
        try:
            async with aiofiles.open(dst, "wb") as f:
                async for chunk in reader:
                    await f.write(chunk)
        except BaseException:
            dst.unlink(missing_ok=True)
            raise
    finally:
        await reader.close()
    logger.debug(f"Downloaded {bucket.name}/{key} to {dst}")


def _walk_files(src_dir: Path) -> list[Path]:
    files = []
    for root, _dirs, names in os.walk(src_dir):
        for name in names:
            files.append(Path(root) / name)
    files.sort()
    return files


async def upload_dir(bucket: Bucket, src_dir: str | os.PathLike, prefix: str) -> int:
    """
    Upload every file under src_dir, keyed by its relative path under prefix.

    Returns:
        Number of uploaded files
    """
    src_dir = Path(src_dir)
    if not src_dir.is_dir():
        raise NotADirectoryError(f"not a directory: {src_dir}")

    files = await asyncio.to_thread(_walk_files, src_dir)
    for path in files:
        key = _join_key(prefix, path.relative_to(src_dir).as_posix())
        await upload_file(bucket, path, key)

    logger.info(f"Uploaded {len(files)} files from {src_dir} to {bucket.name}")
    return len(files)


async def download_dir(bucket: Bucket, prefix: str, dst_dir: str | os.PathLike) -> int:
    """
    Download every object under prefix into dst_dir, recreating the hierarchy.

    Returns:
        Number of downloaded objects
    """
    dst_dir = Path(dst_dir)
    keys = await list_keys(bucket, prefix)
    strip = len(_join_key(prefix, ""))
    for key in keys:
        await download_file(bucket, key, dst_dir.joinpath(*key[strip:].split(DIR_DELIM)))

    logger.info(f"Downloaded {len(keys)} objects from {bucket.name} to {dst_dir}")
    return len(keys)


async def list_keys(bucket: Bucket, prefix: str = "") -> list[str]:
    """Return every key under prefix, recursively."""
    keys: list[str] = []
    await bucket.iter(prefix, keys.append, RECURSIVE)
    return keys


async def delete_dir(bucket: Bucket, prefix: str) -> int:
    """
    Delete every object under prefix.

    Keys are collected first so deletes never race the listing.

    Returns:
        Number of deleted objects
    """
    keys = await list_keys(bucket, prefix)
    for key in keys:
        await bucket.delete(key)

    logger.info(f"Deleted {len(keys)} objects under '{prefix}' in {bucket.name}")
    return len(keys)


async def empty_bucket(bucket: Bucket) -> int:
    """Delete every object in the bucket."""
    return await delete_dir(bucket, "")
