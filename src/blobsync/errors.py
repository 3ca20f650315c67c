"""Custom exceptions for blobsync.

This module defines typed exceptions for storage failures. Local filesystem
failures are not wrapped: they surface as the built-in ``OSError``.
"""

from typing import Optional


class StoreError(RuntimeError):
    """Base class for all blobsync errors.

    Carries the key and backend involved so failures can be diagnosed
    without exposing credentials or client internals.
    """

    def __init__(self, message: str, key: Optional[str] = None, backend: Optional[str] = None):
        self.key = key
        self.backend = backend
        super().__init__(message)


class BackendError(StoreError):
    """Transport or protocol failure talking to a backend, or malformed metadata."""

    def __init__(self, backend: str, key: Optional[str], reason: str):
        target = f"'{key}' on {backend}" if key is not None else backend
        super().__init__(f"Backend operation failed for {target}: {reason}", key=key, backend=backend)


class NotFoundError(StoreError):
    """Key absent at the backend.

    Not a BackendError: a missing key means there is nothing
    to fetch, whereas a BackendError only means the lookup failed.
    """

    def __init__(self, backend: str, key: str):
        super().__init__(f"Blob not found: '{key}' on {backend}", key=key, backend=backend)


class ConfigError(StoreError):
    """Invalid storage configuration."""

    def __init__(self, message: str):
        super().__init__(message)
