"""
PCG storage client.

PCG speaks the S3 protocol. Every call goes to a wrapped ``S3Storage``; this
class only fills in the default region and relabels results.
"""

import dataclasses
from typing import Dict, List, Optional

import structlog

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
from .file_utils import UrlOverrides
from .s3_storage import S3Storage

logger = structlog.get_logger(__name__)


STORAGE_CLASS_NAMES: Dict[str, str] = {
    'STANDARD': 'Standard',
    'REDUCED_REDUNDANCY': 'Reduced Redundancy',
    'STANDARD_IA': 'Infrequent Access',
    'ONEZONE_IA': 'One Zone-IA',
    'INTELLIGENT_TIERING': 'Intelligent-Tiering',
    'GLACIER': 'Glacier',
    'DEEP_ARCHIVE': 'Deep Archive',
    'PCG_ARCHIVE': 'PCG Archive',
    'PCG_STANDARD': 'PCG Standard',
}


def storage_class_display_name(storage_class: Optional[str]) -> Optional[str]:
    """Human-readable storage class; unknown classes pass through."""
    if storage_class is None:
        return None
    return STORAGE_CLASS_NAMES.get(storage_class, storage_class)


class PCGStorage(StorageClient):
    """S3-protocol storage with PCG defaults and labels."""

    storage_type = StorageType.PCG.value

    def __init__(self, settings=None, delegate: Optional[S3Storage] = None):
        super().__init__(settings)
        self._delegate = delegate or S3Storage(self.settings)

    @property
    def delegate(self) -> S3Storage:
        return self._delegate

    async def _connect(self, config: Connection) -> None:
        s3_config = config.with_overrides(region=config.region or self.settings.storage_pcg_default_region)
        await self._delegate.initialize(s3_config)

    @property
    def configured_region(self) -> Optional[str]:
        return self._delegate.configured_region

    async def list_buckets(self) -> List[Bucket]:
        self._ensure_ready()
        buckets = await self._delegate.list_buckets()
        return [
            dataclasses.replace(
                bucket,
                storage_class=storage_class_display_name(bucket.storage_class),
                metadata={**bucket.metadata, 'IsPCGBucket': True},
            )
            for bucket in buckets
        ]

    async def list_objects(self, bucket: str, prefix: str = "") -> ListResult:
        self._ensure_ready()
        result = await self._delegate.list_objects(bucket, prefix)
        relabeled: List[ObjectEntry] = [
            dataclasses.replace(entry, storage_class=storage_class_display_name(entry.storage_class))
            for entry in result.data
        ]
        return ListResult.of_objects(relabeled)

    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        self._ensure_ready()
        return await self._delegate.get_object(bucket, key)

    async def delete_object(self, bucket: str, key: str) -> OperationResult:
        self._ensure_ready()
        return await self._delegate.delete_object(bucket, key)

    async def delete_objects(self, bucket: str, keys: List[str]) -> DeleteResult:
        self._ensure_ready()
        return await self._delegate.delete_objects(bucket, keys)

    async def _put(self, bucket: str, key: str, data: bytes, content_type: Optional[str]) -> OperationResult:
        return await self._delegate._put(bucket, key, data, content_type)

    async def _sign_url(self, bucket: str, key: str, expires_in: int, overrides: UrlOverrides) -> str:
        return await self._delegate._sign_url(bucket, key, expires_in, overrides)


__all__ = ["PCGStorage", "STORAGE_CLASS_NAMES", "storage_class_display_name"]
