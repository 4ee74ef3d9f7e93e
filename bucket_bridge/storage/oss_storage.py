"""
Aliyun OSS storage client.

OSS supports delimiter listing and a native multi-delete, so this client
maps the contract almost one-to-one onto oss2 calls. Connections are always
made over HTTPS.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import oss2
import structlog
from oss2.exceptions import OssError

from ..models.connection import Connection, StorageType
from .cloud_storage import (
    BatchDeleteError,
    Bucket,
    DeleteResult,
    ListResult,
    ObjectContent,
    ObjectEntry,
    OperationResult,
    StorageClient,
)
from .exceptions import InitError, ObjectNotFoundError, RegionMismatchError
from .file_utils import DELIMITER, UrlOverrides, file_utils
from .hierarchy import merge_delimited_listing, normalize_prefix

logger = structlog.get_logger(__name__)

# DeleteMultipleObjects accepts at most 1000 keys per request
MAX_DELETE_BATCH = 1000
LIST_PAGE_SIZE = 1000


def _from_timestamp(value: Any) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def oss_region(region: Optional[str]) -> Optional[str]:
    """``cn-hangzhou`` -> ``oss-cn-hangzhou``; already prefixed names pass through."""
    if not region:
        return None
    return region if region.startswith("oss-") else f"oss-{region}"


def oss_endpoint(endpoint: Optional[str], region: Optional[str]) -> str:
    """Resolve the HTTPS endpoint from an explicit endpoint or a region."""
    if endpoint:
        host = endpoint.split("://", 1)[-1]
        return f"https://{host.rstrip('/')}"
    if region:
        return f"https://{oss_region(region)}.aliyuncs.com"
    raise InitError(
        "Aliyun OSS connections need an endpoint or a region",
        error_code="MISSING_ENDPOINT",
    )


class AliyunOSSStorage(StorageClient):
    """Aliyun Object Storage Service implementation."""

    storage_type = StorageType.ALIYUN_OSS.value
    folder_content_type = "application/x-directory"

    def __init__(self, settings=None):
        super().__init__(settings)
        self._auth: Optional[oss2.Auth] = None
        self._endpoint: Optional[str] = None
        self._region: Optional[str] = None
        self._timeout: int = self.settings.storage_timeout
        self._buckets: Dict[str, oss2.Bucket] = {}

    async def _connect(self, config: Connection) -> None:
        if not config.access_key or not config.secret_key:
            raise InitError(
                "Aliyun OSS connections need an access key and a secret key",
                error_code="MISSING_CREDENTIALS",
            )

        self._endpoint = oss_endpoint(config.endpoint, config.region)
        self._region = oss_region(config.region) or self._endpoint.split("://", 1)[-1].split(".", 1)[0]
        self._timeout = config.timeout or self.settings.storage_timeout
        self._auth = oss2.Auth(config.access_key, config.secret_key)
        self._buckets = {}

    @property
    def configured_region(self) -> Optional[str]:
        return self._region

    def _bucket(self, name: str) -> oss2.Bucket:
        bucket = self._buckets.get(name)
        if bucket is None:
            bucket = oss2.Bucket(self._auth, self._endpoint, name, connect_timeout=self._timeout)
            self._buckets[name] = bucket
        return bucket

    async def list_buckets(self) -> List[Bucket]:
        """List all buckets in the account."""
        self._ensure_ready()
        service = oss2.Service(self._auth, self._endpoint, connect_timeout=self._timeout)
        try:
            infos = await self._run_sync(lambda: list(oss2.BucketIterator(service)))
        except OssError as e:
            error = self._normalize(e, "list buckets")
            if isinstance(error, RegionMismatchError):
                self._tolerate_region_mismatch(error, "list buckets")
                return []
            raise error

        return [
            Bucket(
                name=info.name,
                creation_date=_from_timestamp(getattr(info, "creation_date", None)),
                location=getattr(info, "location", None),
                storage_class=getattr(info, "storage_class", None),
                metadata={"IsAliyunOSS": True},
            )
            for info in infos
        ]

    async def list_objects(self, bucket: str, prefix: str = "") -> ListResult:
        """List immediate folders and files under a prefix."""
        self._ensure_ready()
        prefix = normalize_prefix(prefix)
        try:
            common_prefixes, objects = await self._run_sync(self._collect_listing, bucket, prefix)
        except OssError as e:
            error = self._normalize(e, f"list objects in {bucket}")
            if isinstance(error, RegionMismatchError):
                self._tolerate_region_mismatch(error, "list objects")
                return ListResult.of_objects([])
            raise error

        folders = [ObjectEntry.folder(path) for path in common_prefixes]
        files = [
            ObjectEntry(
                key=obj.key,
                is_folder=False,
                size=obj.size or 0,
                last_modified=_from_timestamp(obj.last_modified),
                content_type=file_utils.get_content_type(obj.key),
                storage_class=getattr(obj, "storage_class", None),
                etag=obj.etag.strip('"') if obj.etag else None,
            )
            for obj in objects
        ]
        entries = merge_delimited_listing(prefix, folders, files)
        logger.debug("Listed objects", bucket=bucket, prefix=prefix, count=len(entries))
        return ListResult.of_objects(entries)

    def _collect_listing(self, bucket: str, prefix: str):
        oss_bucket = self._bucket(bucket)
        common_prefixes: List[str] = []
        objects: List[Any] = []
        token = ""
        while True:
            result = oss_bucket.list_objects_v2(
                prefix=prefix,
                delimiter=DELIMITER,
                continuation_token=token,
                max_keys=LIST_PAGE_SIZE,
            )
            common_prefixes.extend(result.prefix_list or [])
            objects.extend(result.object_list or [])
            if not result.is_truncated:
                break
            token = result.next_continuation_token
        return common_prefixes, objects

    async def _put(self, bucket: str, key: str, data: bytes, content_type: Optional[str]) -> OperationResult:
        self._ensure_ready()
        headers = {"Content-Type": content_type} if content_type else None
        try:
            result = await self._run_sync(self._bucket(bucket).put_object, key, data, headers=headers)
        except OssError as e:
            raise self._normalize(e, f"upload {key}")

        return OperationResult(
            success=True,
            key=key,
            etag=result.etag.strip('"') if getattr(result, "etag", None) else None,
            details={"request_id": getattr(result, "request_id", None)},
        )

    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        """Download an object fully into memory; the body is bytes."""
        self._ensure_ready()

        def fetch():
            result = self._bucket(bucket).get_object(key)
            return result, result.read()

        try:
            result, content = await self._run_sync(fetch)
        except OssError as e:
            raise self._normalize(e, f"get {key}")

        headers = getattr(result, "headers", None) or {}
        return ObjectContent(
            body=content,
            content_type=getattr(result, "content_type", None) or headers.get("Content-Type"),
            content_length=getattr(result, "content_length", None) or len(content),
            last_modified=_from_timestamp(getattr(result, "last_modified", None)),
            etag=result.etag.strip('"') if getattr(result, "etag", None) else None,
        )

    async def _sign_url(self, bucket: str, key: str, expires_in: int, overrides: UrlOverrides) -> str:
        self._ensure_ready()
        params: Dict[str, str] = {}
        if overrides.content_disposition:
            params["response-content-disposition"] = overrides.content_disposition
        if overrides.content_type:
            params["response-content-type"] = overrides.content_type

        try:
            return await self._run_sync(
                self._bucket(bucket).sign_url,
                "GET",
                key,
                expires_in,
                params=params or None,
                slash_safe=True,
            )
        except OssError as e:
            raise self._normalize(e, f"sign URL for {key}")

    async def delete_object(self, bucket: str, key: str) -> OperationResult:
        """Delete one object; OSS already answers 204 for missing keys."""
        self._ensure_ready()
        try:
            await self._run_sync(self._bucket(bucket).delete_object, key)
        except OssError as e:
            error = self._normalize(e, f"delete {key}")
            if isinstance(error, ObjectNotFoundError):
                return OperationResult(success=True, key=key, details={"missing": True})
            raise error

        return OperationResult(success=True, key=key)

    async def delete_objects(self, bucket: str, keys: List[str]) -> DeleteResult:
        """Delete many objects with DeleteMultipleObjects."""
        self._ensure_ready()
        result = DeleteResult()
        for start in range(0, len(keys), MAX_DELETE_BATCH):
            batch = keys[start:start + MAX_DELETE_BATCH]
            result.extend(await self._delete_batch(bucket, batch))

        if result.errors:
            logger.warning(
                "Batch delete finished with failures",
                bucket=bucket,
                deleted=len(result.deleted),
                failed=len(result.errors),
            )
        return result

    async def _delete_batch(self, bucket: str, keys: List[str]) -> DeleteResult:
        try:
            response = await self._run_sync(self._bucket(bucket).batch_delete_objects, keys)
        except OssError as e:
            error = self._normalize(e, "delete multiple objects")
            return DeleteResult(
                errors=[BatchDeleteError(key=key, code=error.error_code, message=error.message) for key in keys]
            )

        deleted = set(getattr(response, "deleted_keys", None) or [])
        result = DeleteResult()
        for key in keys:
            if key in deleted:
                result.deleted.append(key)
            else:
                result.errors.append(
                    BatchDeleteError(key=key, code="Unknown", message="Key missing from DeleteMultipleObjects response")
                )
        return result


__all__ = ["AliyunOSSStorage", "oss_endpoint", "oss_region"]
