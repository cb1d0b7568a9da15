"""
Storage exception types.

Provides consistent error classification across all bucket providers.
Cancellation is not part of this hierarchy: asyncio.CancelledError and
TimeoutError propagate unchanged so callers can tell them apart.
"""

from typing import Any


class StorageError(Exception):
    """Base exception for all bucket errors."""

    def __init__(
        self,
        message: str,
        key: str | None = None,
        provider: str | None = None,
    ):
        self.message = message
        self.key = key
        self.provider = provider
        super().__init__(self.message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.insert(0, f"[{self.provider}]")
        if self.key is not None:
            parts.append(f"(key '{self.key}')")
        return " ".join(parts)


class ObjectNotFoundError(StorageError):
    """Raised when the requested object does not exist."""

    def __init__(self, key: str, provider: str | None = None):
        super().__init__("object not found", key=key, provider=provider)


class OptionNotSupportedError(StorageError):
    """Raised when a backend cannot honor an iteration option."""

    def __init__(self, option: Any, provider: str | None = None):
        super().__init__(
            f"iteration option not supported: {option}",
            provider=provider,
        )
        self.option = option


class InvalidKeyError(StorageError):
    """Raised when a key cannot be mapped onto the backend."""

    def __init__(
        self,
        key: str,
        reason: str = "invalid object key",
        provider: str | None = None,
    ):
        super().__init__(reason, key=key, provider=provider)
        self.reason = reason


class BucketClosedError(StorageError):
    """Raised when an operation is attempted on a closed bucket."""

    def __init__(self, provider: str | None = None):
        super().__init__("bucket is closed", provider=provider)
