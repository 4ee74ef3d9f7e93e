"""
Azure Blob Storage client.

Blob storage has a flat namespace, so folders are emulated: listings fetch
every blob under the prefix and collapse them to one level, and folder
markers are zero-length blobs whose names end with ``/``. There is no batch
delete primitive; deletes are issued per blob.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

import structlog
from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobSasPermissions, BlobServiceClient, ContentSettings, generate_blob_sas

from ..models.connection import Connection, StorageType
from .cloud_storage import (
    Bucket,
    DeleteResult,
    ListResult,
    ObjectContent,
    ObjectEntry,
    OperationResult,
    StorageClient,
)
from .exceptions import InitError
from .file_utils import UrlOverrides, file_utils
from .hierarchy import collapse_flat_listing, normalize_prefix

logger = structlog.get_logger(__name__)


class AzureBlobStorage(StorageClient):
    """
    Wraps Azure Blob Storage service.
    Containers are exposed as buckets and blobs as objects.
    """

    storage_type = StorageType.AZURE_BLOB.value
    folder_content_type = "application/directory"

    def __init__(self, settings=None):
        super().__init__(settings)
        self.account_name: Optional[str] = None
        self.account_key: Optional[str] = None
        self.blob_service_client: Optional[BlobServiceClient] = None

    async def _connect(self, config: Connection) -> None:
        if not config.account_name or not config.account_key:
            raise InitError(
                "Azure connections need an account name and an account key",
                error_code="MISSING_CREDENTIALS",
            )

        self.account_name = config.account_name
        self.account_key = config.account_key

        scheme = "https" if config.secure else "http"
        account_url = config.endpoint or f"{scheme}://{self.account_name}.blob.core.windows.net"
        timeout = config.timeout or self.settings.storage_timeout

        self.blob_service_client = BlobServiceClient(
            account_url=account_url,
            credential={"account_name": self.account_name, "account_key": self.account_key},
            retry_total=self.settings.storage_max_retries,
            connection_timeout=timeout,
            read_timeout=timeout,
        )

    async def list_buckets(self) -> List[Bucket]:
        """List all containers in the account."""
        self._ensure_ready()
        try:
            containers = await self._run_sync(lambda: list(self.blob_service_client.list_containers()))
        except AzureError as e:
            raise self._normalize(e, "list containers")

        return [
            Bucket(
                name=container.name,
                creation_date=getattr(container, "last_modified", None),
                metadata={"IsAzureContainer": True},
            )
            for container in containers
        ]

    async def list_objects(self, bucket: str, prefix: str = "") -> ListResult:
        """List one level under ``prefix`` by collapsing a flat blob listing."""
        self._ensure_ready()
        normalized = normalize_prefix(prefix)
        container_client = self.blob_service_client.get_container_client(bucket)

        try:
            blobs = await self._run_sync(
                lambda: list(container_client.list_blobs(name_starts_with=normalized or None))
            )
        except AzureError as e:
            raise self._normalize(e, f"list blobs in {bucket}")

        entries = collapse_flat_listing(normalized, (self._entry_from_blob(blob) for blob in blobs))
        logger.debug("Listed blobs", container=bucket, prefix=normalized, count=len(entries))
        return ListResult.of_objects(entries)

    def _entry_from_blob(self, blob) -> ObjectEntry:
        blob_settings = getattr(blob, "content_settings", None)
        content_type = getattr(blob_settings, "content_type", None) if blob_settings else None
        tier = getattr(blob, "blob_tier", None)
        return ObjectEntry(
            key=blob.name,
            is_folder=False,
            size=getattr(blob, "size", 0) or 0,
            last_modified=getattr(blob, "last_modified", None),
            content_type=content_type or file_utils.get_content_type(blob.name),
            storage_class=str(tier) if tier else "Standard",
            etag=getattr(blob, "etag", None),
        )

    async def _put(self, bucket: str, key: str, data: bytes, content_type: Optional[str]) -> OperationResult:
        self._ensure_ready()
        blob_client = self.blob_service_client.get_blob_client(container=bucket, blob=key)
        content_settings = ContentSettings(content_type=content_type) if content_type else None

        try:
            response = await self._run_sync(
                blob_client.upload_blob,
                data,
                overwrite=True,
                content_settings=content_settings,
            )
        except AzureError as e:
            raise self._normalize(e, f"upload {key}")

        response = response or {}
        return OperationResult(
            success=True,
            key=key,
            etag=response.get("etag"),
            details={"last_modified": response.get("last_modified")},
        )

    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        """Download a blob; the body is the SDK's stream downloader."""
        self._ensure_ready()
        blob_client = self.blob_service_client.get_blob_client(container=bucket, blob=key)
        try:
            downloader = await self._run_sync(blob_client.download_blob)
        except AzureError as e:
            raise self._normalize(e, f"download {key}")

        properties = downloader.properties
        content_settings = getattr(properties, "content_settings", None)
        return ObjectContent(
            body=downloader,
            content_type=getattr(content_settings, "content_type", None),
            content_length=downloader.size,
            last_modified=getattr(properties, "last_modified", None),
            etag=getattr(properties, "etag", None),
            metadata=dict(getattr(properties, "metadata", None) or {}),
        )

    async def _sign_url(self, bucket: str, key: str, expires_in: int, overrides: UrlOverrides) -> str:
        """Generate a read-only SAS URL."""
        self._ensure_ready()
        blob_client = self.blob_service_client.get_blob_client(container=bucket, blob=key)
        starts_on = datetime.now(timezone.utc)

        sas_token = generate_blob_sas(
            account_name=self.account_name,
            container_name=bucket,
            blob_name=key,
            account_key=self.account_key,
            permission=BlobSasPermissions(read=True),
            start=starts_on,
            expiry=starts_on + timedelta(seconds=expires_in),
            content_disposition=overrides.content_disposition,
            content_type=overrides.content_type,
        )
        return f"{blob_client.url}?{sas_token}"

    async def delete_object(self, bucket: str, key: str) -> OperationResult:
        """Delete a blob; a missing blob is not an error."""
        self._ensure_ready()
        blob_client = self.blob_service_client.get_blob_client(container=bucket, blob=key)
        try:
            await self._run_sync(blob_client.delete_blob)
        except ResourceNotFoundError:
            logger.debug("Blob already absent", container=bucket, key=key)
            return OperationResult(success=True, key=key, details={"missing": True})
        except AzureError as e:
            raise self._normalize(e, f"delete {key}")

        return OperationResult(success=True, key=key)

    async def delete_objects(self, bucket: str, keys: List[str]) -> DeleteResult:
        """Delete blobs one by one and aggregate per-key outcomes."""
        self._ensure_ready()
        result = await self._delete_each(bucket, keys)
        if result.errors:
            logger.warning(
                "Blob batch delete finished with failures",
                container=bucket,
                deleted=len(result.deleted),
                failed=len(result.errors),
            )
        return result


__all__ = ["AzureBlobStorage"]
