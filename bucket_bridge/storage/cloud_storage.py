"""
Abstract storage client interface.

This module defines the capability contract every storage backend satisfies
and the result types it returns. A client starts uninitialized, becomes ready
after one successful ``initialize`` call and is then used for a single logical
operation and discarded; instances are never pooled.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar

import structlog
from pydantic import ValidationError

from ..models.connection import Connection
from ..utils.env_config import AppSettings, get_settings
from .error_normalizer import normalize_error
from .exceptions import (
    ClientNotReadyError,
    InitError,
    RegionMismatchError,
    StorageError,
)
from .file_utils import DOWNLOAD, UrlOverrides, file_utils

logger = structlog.get_logger(__name__)

# Fixed lifetime of view/download URLs handed to the browser
OBJECT_URL_EXPIRY = 3600
DEFAULT_CHUNK_SIZE = 1024 * 1024


@dataclass
class Bucket:
    """A top-level container (bucket or Azure container)."""

    name: str
    creation_date: datetime | None = None
    location: str | None = None
    storage_class: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "Name": self.name,
            "CreationDate": self.creation_date,
            "Location": self.location,
            "StorageClass": self.storage_class,
            **self.metadata,
        }


@dataclass
class ObjectEntry:
    """One file or folder inside a bucket."""

    key: str
    is_folder: bool = False
    size: int = 0
    last_modified: datetime | None = None
    content_type: str | None = None
    storage_class: str | None = None
    etag: str | None = None

    @classmethod
    def folder(cls, key: str, last_modified: datetime | None = None) -> "ObjectEntry":
        return cls(key=key, is_folder=True, size=0, last_modified=last_modified)

    @property
    def name(self) -> str:
        return file_utils.basename(self.key)

    def to_dict(self) -> dict[str, Any]:
        return {
            "Key": self.key,
            "isFolder": self.is_folder,
            "Size": self.size,
            "LastModified": self.last_modified,
            "ContentType": self.content_type,
            "StorageClass": self.storage_class,
            "ETag": self.etag,
        }


@dataclass
class ListResult:
    """Tagged listing result; consumers switch on ``type``."""

    BUCKETS: ClassVar[str] = "buckets"
    OBJECTS: ClassVar[str] = "objects"

    type: str
    data: list = field(default_factory=list)

    @classmethod
    def of_buckets(cls, buckets: list[Bucket]) -> "ListResult":
        return cls(type=cls.BUCKETS, data=list(buckets))

    @classmethod
    def of_objects(cls, entries: list[ObjectEntry]) -> "ListResult":
        return cls(type=cls.OBJECTS, data=list(entries))

    @property
    def folders(self) -> list[ObjectEntry]:
        return [item for item in self.data if isinstance(item, ObjectEntry) and item.is_folder]

    @property
    def files(self) -> list[ObjectEntry]:
        return [item for item in self.data if isinstance(item, ObjectEntry) and not item.is_folder]

    def keys(self) -> list[str]:
        return [item.key if isinstance(item, ObjectEntry) else item.name for item in self.data]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": [item.to_dict() for item in self.data]}


@dataclass
class ObjectContent:
    """
    Downloaded object envelope.

    ``body`` is either raw bytes or a provider stream (botocore
    ``StreamingBody``, azure ``StorageStreamDownloader``...). Use ``read`` or
    ``iter_chunks`` to consume it without caring which one it is.
    """

    body: Any
    content_type: str | None = None
    content_length: int | None = None
    last_modified: datetime | None = None
    etag: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_stream(self) -> bool:
        return not isinstance(self.body, (bytes, bytearray, memoryview))

    async def read(self) -> bytes:
        """Return the whole body as bytes."""
        if not self.is_stream:
            return bytes(self.body)

        loop = asyncio.get_event_loop()
        try:
            if hasattr(self.body, "readall"):
                data = await loop.run_in_executor(None, self.body.readall)
            elif hasattr(self.body, "read"):
                data = await loop.run_in_executor(None, self.body.read)
            else:
                raise TypeError(f"Unsupported object body type: {type(self.body).__name__}")
        finally:
            self._close()
        return bytes(data)

    async def iter_chunks(self, chunk_size: int = DEFAULT_CHUNK_SIZE) -> AsyncIterator[bytes]:
        """Yield the body in chunks of at most ``chunk_size`` bytes."""
        if not self.is_stream:
            data = bytes(self.body)
            for start in range(0, len(data), chunk_size):
                yield data[start:start + chunk_size]
            return

        loop = asyncio.get_event_loop()
        try:
            if hasattr(self.body, "chunks"):
                iterator = iter(self.body.chunks())
                while True:
                    chunk = await loop.run_in_executor(None, next, iterator, None)
                    if chunk is None:
                        break
                    if chunk:
                        yield bytes(chunk)
            elif hasattr(self.body, "read"):
                while True:
                    chunk = await loop.run_in_executor(None, self.body.read, chunk_size)
                    if not chunk:
                        break
                    yield bytes(chunk)
            else:
                raise TypeError(f"Unsupported object body type: {type(self.body).__name__}")
        finally:
            self._close()

    def _close(self) -> None:
        close = getattr(self.body, "close", None)
        if callable(close):
            close()

    def to_dict(self) -> dict[str, Any]:
        return {
            "Body": self.body,
            "ContentType": self.content_type,
            "ContentLength": self.content_length,
            "LastModified": self.last_modified,
            "ETag": self.etag,
            "Metadata": self.metadata,
        }


@dataclass
class BatchDeleteError:
    """A key that could not be removed by a batch delete."""

    key: str
    code: str | None
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {"Key": self.key, "Code": self.code, "Message": self.message}


@dataclass
class DeleteResult:
    """Outcome of a batch delete; partial failures are reported, never raised."""

    deleted: list[str] = field(default_factory=list)
    errors: list[BatchDeleteError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    def extend(self, other: "DeleteResult") -> None:
        self.deleted.extend(other.deleted)
        self.errors.extend(other.errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "deleted": [{"Key": key} for key in self.deleted],
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass
class OperationResult:
    """Result of a write or delete on a single key."""

    success: bool = True
    key: str | None = None
    etag: str | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"success": self.success, "key": self.key, "etag": self.etag, **self.details}


class StorageClient(ABC):
    """
    Abstract base class for storage backends.

    Subclasses implement the provider calls; URL signing overrides, upload
    content types, folder markers and per-key batch deletion are shared here.
    All SDKs in use are blocking, so provider calls go through ``_run_sync``.
    """

    storage_type: ClassVar[str] = ""
    # Content type written on zero-length folder markers, None to let the provider decide
    folder_content_type: ClassVar[str | None] = None

    def __init__(self, settings: AppSettings | None = None):
        """Create an uninitialized client."""
        self.settings = settings or get_settings()
        self.config: Connection | None = None
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def configured_region(self) -> str | None:
        return self.config.region if self.config else None

    async def initialize(self, config: Connection | Mapping[str, Any]) -> "StorageClient":
        """
        Bind credentials and endpoint from a connection.

        Args:
            config: Connection record, or its persisted mapping form

        Returns:
            This client, now ready

        Raises:
            InitError: If the configuration is invalid or the SDK rejects it
        """
        try:
            connection = config if isinstance(config, Connection) else Connection.model_validate(dict(config))
        except ValidationError as e:
            raise InitError(
                f"Invalid connection configuration: {e}",
                error_code="INVALID_CONFIG",
            ) from e

        try:
            await self._connect(connection)
        except StorageError:
            raise
        except (ValueError, TypeError) as e:
            raise InitError(
                f"Failed to initialize {type(self).__name__}: {e}",
                error_code="INIT_FAILED",
                details={"type": connection.type},
            ) from e

        self.config = connection
        self._ready = True
        logger.debug(
            "Storage client initialized",
            client=type(self).__name__,
            connection=connection.display_name,
            region=connection.region,
            endpoint=connection.endpoint,
        )
        return self

    @abstractmethod
    async def _connect(self, config: Connection) -> None:
        """Create the provider SDK client for ``config``."""
        pass

    @abstractmethod
    async def list_buckets(self) -> list[Bucket]:
        """
        List all buckets/containers available in the account.

        Returns:
            List of Bucket descriptors; empty on a tolerated region mismatch
        """
        pass

    @abstractmethod
    async def list_objects(self, bucket: str, prefix: str = "") -> ListResult:
        """
        List one level of hierarchy under ``prefix``.

        Args:
            bucket: Bucket/container name
            prefix: Folder path, ``""`` for the bucket root

        Returns:
            ``ListResult`` of type ``objects`` holding immediate child folders
            followed by immediate child files; never the prefix itself
        """
        pass

    @abstractmethod
    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        """
        Download an object.

        Returns:
            ObjectContent whose body may be bytes or a stream
        """
        pass

    @abstractmethod
    async def delete_object(self, bucket: str, key: str) -> OperationResult:
        """Delete one key; a missing key counts as deleted."""
        pass

    @abstractmethod
    async def delete_objects(self, bucket: str, keys: list[str]) -> DeleteResult:
        """
        Delete several keys.

        Returns:
            DeleteResult with the removed keys and per-key failures
        """
        pass

    @abstractmethod
    async def _put(self, bucket: str, key: str, data: bytes, content_type: str | None) -> OperationResult:
        """Write ``data`` under ``key``."""
        pass

    @abstractmethod
    async def _sign_url(self, bucket: str, key: str, expires_in: int, overrides: UrlOverrides) -> str:
        """Produce a read URL valid for ``expires_in`` seconds with the given response overrides."""
        pass

    async def upload_object(self, bucket: str, key: str, body: bytes) -> OperationResult:
        """Upload raw bytes; the content type is inferred from the key's extension."""
        self._ensure_ready()
        content_type = file_utils.get_content_type(key)
        result = await self._put(bucket, key, body, content_type)
        logger.info("Uploaded object", bucket=bucket, key=key, size=len(body), content_type=content_type)
        return result

    async def create_folder(self, bucket: str, path: str) -> OperationResult:
        """Write a zero-length marker at ``path`` (normalized to end with ``/``)."""
        self._ensure_ready()
        key = file_utils.folder_key(path)
        result = await self._put(bucket, key, b"", self.folder_content_type)
        logger.info("Created folder", bucket=bucket, key=key)
        return result

    async def get_signed_url(self, bucket: str, key: str, expires_in: int | None = None) -> str:
        """Time-boxed read URL with no response overrides."""
        self._ensure_ready()
        if expires_in is None:
            expires_in = self.settings.storage_signed_url_expiry
        return await self._sign_url(bucket, key, int(expires_in), UrlOverrides())

    async def get_object_url(self, bucket: str, key: str, operation: str = DOWNLOAD) -> str:
        """
        URL for viewing inline or downloading an object.

        Args:
            bucket: Bucket/container name
            key: Object key
            operation: ``view`` or ``download``

        Returns:
            Signed URL valid for one hour
        """
        self._ensure_ready()
        overrides = file_utils.build_url_overrides(key, operation)
        url = await self._sign_url(bucket, key, OBJECT_URL_EXPIRY, overrides)
        logger.debug("Generated object URL", bucket=bucket, key=key, operation=operation)
        return url

    # Shared helpers

    def _ensure_ready(self) -> None:
        if not self._ready:
            raise ClientNotReadyError(type(self).__name__)

    def _normalize(self, error: BaseException, operation: str) -> StorageError:
        return normalize_error(error, self.configured_region, operation)

    def _tolerate_region_mismatch(self, error: RegionMismatchError, operation: str) -> None:
        """Log a region mismatch and re-raise it unless the policy degrades to empty results."""
        logger.warning(
            "Region mismatch detected; not switching regions",
            operation=operation,
            configured_region=error.configured_region,
            expected_region=error.expected_region,
        )
        if self.settings.raise_on_region_mismatch:
            raise error

    async def _delete_each(self, bucket: str, keys: list[str]) -> DeleteResult:
        """Batch delete for backends without a native primitive."""
        semaphore = asyncio.Semaphore(self.settings.storage_delete_concurrency)

        async def delete_one(key: str) -> BatchDeleteError | None:
            async with semaphore:
                try:
                    await self.delete_object(bucket, key)
                except StorageError as e:
                    logger.warning("Failed to delete object", bucket=bucket, key=key, error=e.message)
                    return BatchDeleteError(
                        key=key,
                        code=e.error_code or (str(e.status_code) if e.status_code else "Error"),
                        message=e.message,
                    )
            return None

        outcomes = await asyncio.gather(*(delete_one(key) for key in keys), return_exceptions=True)

        result = DeleteResult()
        for key, outcome in zip(keys, outcomes):
            if outcome is None:
                result.deleted.append(key)
            elif isinstance(outcome, BatchDeleteError):
                result.errors.append(outcome)
            else:
                logger.error("Unexpected failure deleting object", bucket=bucket, key=key, error=str(outcome))
                result.errors.append(BatchDeleteError(key=key, code=type(outcome).__name__, message=str(outcome)))
        return result

    async def _run_sync(self, func, *args, **kwargs):
        """Run a synchronous function in the async context."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: func(*args, **kwargs))


__all__ = [
    "StorageClient",
    "Bucket",
    "ObjectEntry",
    "ListResult",
    "ObjectContent",
    "BatchDeleteError",
    "DeleteResult",
    "OperationResult",
    "OBJECT_URL_EXPIRY",
]
