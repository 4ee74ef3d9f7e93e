import tempfile
from collections.abc import Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
import structlog

from bucket_bridge.models.connection import Connection
from bucket_bridge.storage.cloud_storage import (
    Bucket,
    DeleteResult,
    ListResult,
    ObjectContent,
    ObjectEntry,
    OperationResult,
    StorageClient,
)
from bucket_bridge.storage.exceptions import TransportError
from bucket_bridge.storage.file_utils import UrlOverrides
from bucket_bridge.storage.hierarchy import collapse_flat_listing, normalize_prefix
from bucket_bridge.utils.env_config import AppSettings


@pytest.fixture
def temp_dir() -> Generator[Path]:
    with tempfile.TemporaryDirectory() as tmpdirname:
        yield Path(tmpdirname)


@pytest.fixture
def settings(temp_dir: Path) -> AppSettings:
    return AppSettings(
        environment="test",
        storage_default_region="us-east-1",
        storage_pcg_default_region="us-east-1",
        storage_signed_url_expiry=3600,
        storage_probe_on_initialize=False,
        storage_region_mismatch_policy="empty",
        storage_delete_concurrency=1,
        storage_max_retries=1,
        storage_timeout=5,
        connections_file=str(temp_dir / "config.json"),
    )


@pytest.fixture
def raising_settings(settings: AppSettings) -> AppSettings:
    settings.storage_region_mismatch_policy = "raise"
    return settings


@pytest.fixture
def s3_connection() -> Connection:
    return Connection(
        id="conn-s3",
        name="AWS",
        type="s3",
        region="us-east-1",
        accessKey="AKIA",
        secretKey="secret",
        bucket="photos",
    )


@pytest.fixture(autouse=True)
def mock_logger(mocker: Any) -> MagicMock:
    return mocker.patch.object(structlog, "get_logger", return_value=MagicMock())


@pytest.fixture
def async_mock(mocker: Any) -> type[AsyncMock]:
    return AsyncMock


class MemoryStorage(StorageClient):
    """In-memory flat key store used to exercise the shared client behaviour."""

    storage_type = "memory"
    folder_content_type = "application/x-memory-folder"

    def __init__(self, settings: AppSettings | None = None):
        super().__init__(settings)
        self.objects: dict[str, dict[str, tuple[bytes, str | None]]] = {}
        self.signed: list[tuple[str, str, int, UrlOverrides]] = []
        self.fail_keys: set[str] = set()

    async def _connect(self, config: Connection) -> None:
        if config.bucket:
            self.objects.setdefault(config.bucket, {})

    async def list_buckets(self) -> list[Bucket]:
        self._ensure_ready()
        return [Bucket(name=name) for name in self.objects]

    async def list_objects(self, bucket: str, prefix: str = "") -> ListResult:
        self._ensure_ready()
        normalized = normalize_prefix(prefix)
        entries = [
            ObjectEntry(key=key, size=len(data))
            for key, (data, _) in sorted(self.objects.get(bucket, {}).items())
            if key.startswith(normalized)
        ]
        return ListResult.of_objects(collapse_flat_listing(normalized, entries))

    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        self._ensure_ready()
        data, content_type = self.objects[bucket][key]
        return ObjectContent(body=data, content_type=content_type, content_length=len(data))

    async def delete_object(self, bucket: str, key: str) -> OperationResult:
        self._ensure_ready()
        if key in self.fail_keys:
            raise TransportError("boom", error_code="InternalError", status_code=500)
        self.objects.get(bucket, {}).pop(key, None)
        return OperationResult(success=True, key=key)

    async def delete_objects(self, bucket: str, keys: list[str]) -> DeleteResult:
        self._ensure_ready()
        return await self._delete_each(bucket, keys)

    async def _put(self, bucket: str, key: str, data: bytes, content_type: str | None) -> OperationResult:
        self.objects.setdefault(bucket, {})[key] = (bytes(data), content_type)
        return OperationResult(success=True, key=key)

    async def _sign_url(self, bucket: str, key: str, expires_in: int, overrides: UrlOverrides) -> str:
        self.signed.append((bucket, key, expires_in, overrides))
        return f"https://memory.local/{bucket}/{key}?expires={expires_in}"


@pytest.fixture
def memory_client(settings: AppSettings) -> MemoryStorage:
    return MemoryStorage(settings)
