"""
Pytest configuration and fixtures.

Provides reusable fixtures for bucket testing:
- override_env: Isolate BUCKETSTORE_* settings from the host environment
- bucket: FilesystemBucket rooted in a temporary directory
- run_cancelled: Run a bucket operation from an already-cancelled task
"""

import asyncio
import os
from collections.abc import Awaitable, Callable, Generator
from typing import Any

import pytest

from bucketstore.config import get_settings
from bucketstore.storage.filesystem import FilesystemBucket

# =============================================================================
# Environment Fixture
# =============================================================================


@pytest.fixture(autouse=True)
def override_env() -> Generator[None, None, None]:
    """
    Drop BUCKETSTORE_* variables and the settings cache around each test.

    Autouse: True (automatically used by all tests)
    """
    original_env = os.environ.copy()
    for name in list(os.environ):
        if name.startswith("BUCKETSTORE_"):
            del os.environ[name]
    get_settings.cache_clear()

    yield

    os.environ.clear()
    os.environ.update(original_env)
    get_settings.cache_clear()


# =============================================================================
# Bucket Fixtures
# =============================================================================


@pytest.fixture
def bucket_root(tmp_path):
    """Root directory of the test bucket."""
    return tmp_path / "bucket"


@pytest.fixture
def bucket(bucket_root) -> FilesystemBucket:
    """Create a filesystem bucket in a temporary directory."""
    return FilesystemBucket(bucket_root)


@pytest.fixture
def run_cancelled() -> Callable[[Callable[[], Awaitable[Any]]], Awaitable[None]]:
    """
    Return a helper that runs an operation from a task cancelled before
    the operation starts, and asserts it raised CancelledError.
    """

    async def _run(operation: Callable[[], Awaitable[Any]]) -> None:
        async def runner() -> Any:
            asyncio.current_task().cancel()
            return await operation()

        task = asyncio.create_task(runner())
        with pytest.raises(asyncio.CancelledError):
            await task

    return _run
