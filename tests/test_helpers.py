"""Tests for bucket helpers (file and directory transfer)."""

import pytest

from bucketstore.exceptions import ObjectNotFoundError
from bucketstore.storage.helpers import (
    delete_dir,
    download_dir,
    download_file,
    empty_bucket,
    list_keys,
    upload_dir,
    upload_file,
)


@pytest.fixture
def src_dir(tmp_path):
    """Local directory tree to upload."""
    src = tmp_path / "src"
    (src / "chunks").mkdir(parents=True)
    (src / "meta.json").write_bytes(b'{"version": 1}')
    (src / "chunks" / "000001").write_bytes(b"chunk-1")
    (src / "chunks" / "000002").write_bytes(b"chunk-2")
    return src


@pytest.mark.asyncio
async def test_upload_and_download_file(bucket, tmp_path):
    src = tmp_path / "in.bin"
    src.write_bytes(b"payload")

    await upload_file(bucket, src, "files/in.bin")
    await download_file(bucket, "files/in.bin", tmp_path / "out" / "in.bin")

    assert (tmp_path / "out" / "in.bin").read_bytes() == b"payload"


@pytest.mark.asyncio
async def test_download_missing_file(bucket, tmp_path):
    dst = tmp_path / "out.bin"

    with pytest.raises(ObjectNotFoundError):
        await download_file(bucket, "missing", dst)

    assert not dst.exists()


@pytest.mark.asyncio
async def test_upload_dir(bucket, src_dir):
    count = await upload_dir(bucket, src_dir, "blocks/01")

    assert count == 3
    assert sorted(await list_keys(bucket, "blocks")) == [
        "blocks/01/chunks/000001",
        "blocks/01/chunks/000002",
        "blocks/01/meta.json",
    ]


@pytest.mark.asyncio
async def test_upload_dir_requires_directory(bucket, src_dir):
    with pytest.raises(NotADirectoryError):
        await upload_dir(bucket, src_dir / "meta.json", "x")


@pytest.mark.asyncio
async def test_download_dir_round_trip(bucket, src_dir, tmp_path):
    await upload_dir(bucket, src_dir, "blocks/01")

    count = await download_dir(bucket, "blocks/01/", tmp_path / "dst")

    assert count == 3
    assert (tmp_path / "dst" / "meta.json").read_bytes() == b'{"version": 1}'
    assert (tmp_path / "dst" / "chunks" / "000002").read_bytes() == b"chunk-2"


@pytest.mark.asyncio
async def test_delete_dir(bucket, bucket_root, src_dir):
    await upload_dir(bucket, src_dir, "blocks/01")
    await upload_file(bucket, src_dir / "meta.json", "other/meta.json")

    count = await delete_dir(bucket, "blocks")

    assert count == 3
    assert await list_keys(bucket) == ["other/meta.json"]
    assert not (bucket_root / "blocks").exists()


@pytest.mark.asyncio
async def test_empty_bucket(bucket, bucket_root, src_dir):
    await upload_dir(bucket, src_dir, "")

    assert await empty_bucket(bucket) == 3
    assert list(bucket_root.iterdir()) == []
