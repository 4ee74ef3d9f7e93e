"""
Exception hierarchy for storage operations.

Every failure raised by a storage client is a StorageError subclass. Provider
exceptions are attached as ``__cause__`` so callers can still reach the
original SDK error when they need to.
"""

from typing import Any


class StorageError(Exception):
    """Base exception for storage operations."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class UnsupportedTypeError(StorageError):
    """No client is registered for the requested storage type."""

    def __init__(self, storage_type: str | None, supported: list[str] | None = None):
        supported = supported or []
        super().__init__(
            f"Unsupported storage client type: {storage_type}",
            error_code="UNSUPPORTED_TYPE",
            details={"type": storage_type, "supported": supported},
        )
        self.storage_type = storage_type


class InitError(StorageError):
    """Credentials or endpoint were rejected while initializing a client."""

    pass


class ClientNotReadyError(StorageError):
    """A contract operation was called before ``initialize``."""

    def __init__(self, client_name: str):
        super().__init__(
            f"{client_name} is not initialized; call initialize() first",
            error_code="NOT_INITIALIZED",
        )


class RegionMismatchError(StorageError):
    """The configured region does not match the region the bucket lives in."""

    def __init__(
        self,
        configured_region: str | None,
        expected_region: str,
        error_code: str | None = None,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.configured_region = configured_region
        self.expected_region = expected_region
        super().__init__(
            f"Region mismatch: You configured the connection to use '{configured_region or 'unknown'}' "
            f"but the bucket is in '{expected_region}'. "
            "Please update your connection settings to use the correct region.",
            error_code=error_code,
            status_code=status_code,
            details=details,
        )


class ObjectNotFoundError(StorageError):
    """Bucket or key does not exist."""

    pass


class TransportError(StorageError):
    """Generic network or provider failure."""

    pass


class InvalidPathError(StorageError, ValueError):
    """A key or folder path cannot be used, such as an empty folder name."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message, error_code="INVALID_PATH", details={"path": path})
        self.path = path


class ConnectionNotFoundError(StorageError):
    """No saved connection matches the requested id."""

    def __init__(self, connection_id: str):
        super().__init__(
            f"Connection not found: {connection_id}",
            error_code="CONNECTION_NOT_FOUND",
            details={"connection_id": connection_id},
        )
        self.connection_id = connection_id


__all__ = [
    "StorageError",
    "UnsupportedTypeError",
    "InitError",
    "ClientNotReadyError",
    "RegionMismatchError",
    "ObjectNotFoundError",
    "TransportError",
    "InvalidPathError",
    "ConnectionNotFoundError",
]
