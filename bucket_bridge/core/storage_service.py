"""
Storage service.

Front door for applications: resolves saved connections from the settings
document, obtains a fresh storage client for every operation and implements
the higher-level workflows (local file transfer, preview, recursive folder
delete) on top of the client contract.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional

import aiofiles
import structlog

from bucket_bridge.factories.storage_factory import create_client, get_supported_client_types
from bucket_bridge.models.connection import Connection
from bucket_bridge.storage.cloud_storage import (
    OBJECT_URL_EXPIRY,
    Bucket,
    DeleteResult,
    ListResult,
    OperationResult,
    StorageClient,
)
from bucket_bridge.storage.exceptions import ConnectionNotFoundError
from bucket_bridge.storage.file_utils import DOWNLOAD, file_utils
from bucket_bridge.utils.env_config import AppSettings, get_settings
from bucket_bridge.utils.settings_store import SettingsStore

logger = structlog.get_logger(__name__)

CONNECTIONS_KEY = "connections"

ClientFactory = Callable[..., Awaitable[StorageClient]]


@dataclass
class PreviewResult:
    """Inline text content, or a signed URL for anything that is not text."""

    type: str
    content: str

    @property
    def is_text(self) -> bool:
        return self.type == "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "content": self.content}


@dataclass
class FolderDeleteResult:
    """Outcome of a recursive folder delete."""

    folder: str
    count: int
    result: DeleteResult

    @property
    def message(self) -> str:
        return f"{self.count} files and folder deleted."

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.result.success, "message": self.message, **self.result.to_dict()}


class StorageService:
    """Connection-aware storage operations."""

    def __init__(
        self,
        settings: Optional[AppSettings] = None,
        store: Optional[SettingsStore] = None,
        client_factory: ClientFactory = create_client,
    ):
        self.settings = settings or get_settings()
        self.store = store or SettingsStore(self.settings.connections_file, defaults={CONNECTIONS_KEY: []})
        self._client_factory = client_factory

    # Connection management

    def list_connections(self) -> List[Connection]:
        records = self.store.get(CONNECTIONS_KEY, []) or []
        return [Connection.model_validate(record) for record in records]

    def get_connection(self, connection_id: str) -> Connection:
        """
        Find a saved connection.

        Raises:
            ConnectionNotFoundError: If no connection has this id
        """
        for connection in self.list_connections():
            if connection.id == connection_id:
                return connection
        available = [c.id for c in self.list_connections()]
        logger.error("Connection not found", connection_id=connection_id, available=available)
        raise ConnectionNotFoundError(connection_id)

    def save_connection(self, connection: Connection | Dict[str, Any]) -> List[Connection]:
        """Append a connection; an existing record with the same id is replaced."""
        if not isinstance(connection, Connection):
            connection = Connection.model_validate(connection)
        connections = [c for c in self.list_connections() if c.id != connection.id]
        connections.append(connection)
        return self.save_connections(connections)

    def save_connections(self, connections: List[Connection | Dict[str, Any]]) -> List[Connection]:
        """Replace the whole connection list."""
        validated = [c if isinstance(c, Connection) else Connection.model_validate(c) for c in connections]
        self.store.set(CONNECTIONS_KEY, [c.to_record() for c in validated])
        logger.info("Saved connections", count=len(validated))
        return validated

    def delete_connection(self, connection_id: str) -> List[Connection]:
        remaining = [c for c in self.list_connections() if c.id != connection_id]
        return self.save_connections(remaining)

    def get_supported_client_types(self) -> List[str]:
        return get_supported_client_types()

    # Client access

    async def get_storage_client(self, connection_id: str) -> StorageClient:
        """Build a new ready client for a saved connection; clients are never reused."""
        connection = self.get_connection(connection_id)
        logger.debug(
            "Creating storage client",
            connection_id=connection_id,
            type=connection.type,
            endpoint=connection.endpoint,
            region=connection.region,
        )
        return await self._client_factory(connection.type, connection, self.settings)

    # Operations

    async def list_buckets(self, connection_id: str) -> List[Bucket]:
        client = await self.get_storage_client(connection_id)
        buckets = await client.list_buckets()
        logger.info("Retrieved buckets", connection_id=connection_id, count=len(buckets))
        return buckets

    async def list_objects(
        self,
        connection_id: str,
        bucket: Optional[str] = None,
        prefix: str = "",
    ) -> ListResult:
        """
        List a folder, or the buckets when no bucket can be determined.

        Args:
            connection_id: Saved connection id
            bucket: Target bucket, the connection's default bucket if omitted
            prefix: Folder path, the connection's default prefix if empty

        Returns:
            ``ListResult`` of type ``objects``, or of type ``buckets`` when
            neither ``bucket`` nor a default bucket is available
        """
        connection = self.get_connection(connection_id)
        client = await self.get_storage_client(connection_id)

        target_bucket = bucket or connection.bucket
        if not target_bucket:
            logger.info("No bucket specified, listing available buckets", connection_id=connection_id)
            return ListResult.of_buckets(await client.list_buckets())

        prefix = prefix or connection.prefix or ""
        result = await client.list_objects(target_bucket, prefix)
        logger.info("Listed objects", bucket=target_bucket, prefix=prefix or "/", count=len(result.data))
        return result

    async def get_object_url(self, connection_id: str, bucket: str, key: str, operation: str = DOWNLOAD) -> str:
        client = await self.get_storage_client(connection_id)
        return await client.get_object_url(bucket, key, operation)

    async def create_folder(self, connection_id: str, bucket: str, folder_path: str) -> OperationResult:
        client = await self.get_storage_client(connection_id)
        return await client.create_folder(bucket, folder_path)

    async def upload_file(self, connection_id: str, bucket: str, key: str, file_path: str | Path) -> OperationResult:
        """Upload a local file under ``key``."""
        path = Path(file_path)
        async with aiofiles.open(path, "rb") as f:
            content = await f.read()

        client = await self.get_storage_client(connection_id)
        result = await client.upload_object(bucket, key, content)
        logger.info("Upload completed", bucket=bucket, key=key, file=str(path), size=len(content))
        return result

    async def download_object(
        self,
        connection_id: str,
        bucket: str,
        key: str,
        destination: str | Path,
    ) -> Path:
        """
        Save an object to a local path.

        If ``destination`` is an existing directory the object's file name is
        appended. The body is streamed whether the backend returns bytes or a
        stream.

        Returns:
            Path of the written file
        """
        target = Path(destination)
        if target.is_dir():
            target = target / file_utils.basename(key)
        target.parent.mkdir(parents=True, exist_ok=True)

        client = await self.get_storage_client(connection_id)
        content = await client.get_object(bucket, key)

        written = 0
        async with aiofiles.open(target, "wb") as f:
            async for chunk in content.iter_chunks():
                await f.write(chunk)
                written += len(chunk)

        logger.info("Downloaded object", bucket=bucket, key=key, path=str(target), size=written)
        return target

    async def preview_object(self, connection_id: str, bucket: str, key: str) -> PreviewResult:
        """Return text content for text files, a one-hour signed URL otherwise."""
        client = await self.get_storage_client(connection_id)
        extension = file_utils.get_extension(key)

        if extension and extension in self.settings.preview_text_extensions:
            content = await client.get_object(bucket, key)
            data = await content.read()
            return PreviewResult(type="text", content=data.decode("utf-8", errors="replace"))

        url = await client.get_signed_url(bucket, key, OBJECT_URL_EXPIRY)
        return PreviewResult(type=extension, content=url)

    async def delete_object(
        self,
        connection_id: str,
        bucket: str,
        key: str,
        is_folder: bool = False,
    ) -> OperationResult | FolderDeleteResult:
        """Delete a file, or a folder together with everything below it."""
        client = await self.get_storage_client(connection_id)
        if not is_folder:
            return await client.delete_object(bucket, key)

        folder = file_utils.folder_key(key)
        keys = await self._collect_keys(client, bucket, folder)
        result = DeleteResult()
        if keys:
            result = await client.delete_objects(bucket, keys)

        await client.delete_object(bucket, folder)
        logger.info(
            "Deleted folder",
            bucket=bucket,
            folder=folder,
            deleted=len(result.deleted),
            failed=len(result.errors),
        )
        return FolderDeleteResult(folder=folder, count=len(result.deleted), result=result)

    async def _collect_keys(self, client: StorageClient, bucket: str, folder: str) -> List[str]:
        """Every key below ``folder``, sub-folder markers included, depth first."""
        keys: List[str] = []
        pending = [folder]
        while pending:
            prefix = pending.pop()
            listing = await client.list_objects(bucket, prefix)
            for entry in listing.data:
                keys.append(entry.key)
                if entry.is_folder:
                    pending.append(entry.key)
        return keys


__all__ = ["StorageService", "PreviewResult", "FolderDeleteResult", "CONNECTIONS_KEY"]
