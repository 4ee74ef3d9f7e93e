"""
S3-compatible storage client.

Works against AWS S3 and any service speaking the S3 API through boto3.
Hierarchy comes straight from ``ListObjectsV2`` with a ``/`` delimiter and
batch deletion uses the native ``DeleteObjects`` call.
"""

from typing import Any, Dict, List, Optional

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

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
from .error_normalizer import NOT_FOUND_CODES, normalize_error
from .exceptions import InitError, ObjectNotFoundError, RegionMismatchError
from .file_utils import DELIMITER, UrlOverrides, file_utils
from .hierarchy import merge_delimited_listing, normalize_prefix

logger = structlog.get_logger(__name__)

# DeleteObjects accepts at most 1000 keys per request
MAX_DELETE_BATCH = 1000

PROVIDER_ERRORS = (ClientError, BotoCoreError)


def _strip_etag(etag: Optional[str]) -> Optional[str]:
    return etag.strip('"') if etag else None


def _endpoint_url(endpoint: Optional[str], secure: bool) -> Optional[str]:
    if not endpoint:
        return None
    if endpoint.startswith(("http://", "https://")):
        return endpoint
    return f"{'https' if secure else 'http'}://{endpoint}"


def _disable_region_redirect(context=None, **kwargs) -> None:
    """Mark every call as already redirected so botocore never retries it in another region."""
    if context is not None:
        context['s3_redirected'] = True


class S3Storage(StorageClient):
    """
    S3-compatible storage implementation.

    Supports any service that implements the S3 API standard: AWS S3,
    MinIO, CloudFlare R2, DigitalOcean Spaces, Wasabi and others.
    """

    storage_type = StorageType.S3.value

    def __init__(self, settings=None):
        """Initialize S3 storage without a provider client."""
        super().__init__(settings)
        self._s3_client = None
        self._session = None

    @property
    def client(self):
        return self._s3_client

    async def _connect(self, config: Connection) -> None:
        """Create the boto3 client and optionally probe the default bucket."""
        if bool(config.access_key) != bool(config.secret_key):
            raise InitError(
                "S3 connections need both an access key and a secret key",
                error_code="MISSING_CREDENTIALS",
            )

        region = config.region or self.settings.storage_default_region
        timeout = config.timeout or self.settings.storage_timeout

        self._session = boto3.Session(
            aws_access_key_id=config.access_key,
            aws_secret_access_key=config.secret_key,
            region_name=region,
        )

        boto_config = Config(
            signature_version="s3v4",
            max_pool_connections=self.settings.storage_max_pool_connections,
            retries={
                'max_attempts': self.settings.storage_max_retries,
                'mode': 'adaptive'
            },
            connect_timeout=timeout,
            read_timeout=timeout,
        )

        client_kwargs: Dict[str, Any] = {
            'config': boto_config,
            'region_name': region,
            'use_ssl': config.secure,
        }
        endpoint_url = _endpoint_url(config.endpoint, config.secure)
        if endpoint_url:
            client_kwargs['endpoint_url'] = endpoint_url

        self._s3_client = self._session.client('s3', **client_kwargs)
        # Wrong-region answers must reach the caller as RegionMismatchError
        self._s3_client.meta.events.register('before-call.s3', _disable_region_redirect)

        if config.bucket and self.settings.storage_probe_on_initialize:
            await self._probe(config.bucket, config.region)

    async def _probe(self, bucket: str, region: Optional[str]) -> None:
        """Cheap one-item listing that surfaces region mismatches early. Never fatal."""
        try:
            await self._run_sync(self._s3_client.list_objects_v2, Bucket=bucket, MaxKeys=1)
            logger.info("Validated S3 client configuration", bucket=bucket, region=region)
        except PROVIDER_ERRORS as e:
            error = normalize_error(e, region, "probe bucket")
            if isinstance(error, RegionMismatchError):
                logger.warning(
                    "Region mismatch detected during initialization; keeping configured region",
                    configured_region=region,
                    expected_region=error.expected_region,
                )
            else:
                logger.warning("Warning during S3 client initialization", bucket=bucket, error=error.message)

    async def list_buckets(self) -> List[Bucket]:
        """List all buckets in the account."""
        self._ensure_ready()
        try:
            response = await self._run_sync(self._s3_client.list_buckets)
        except PROVIDER_ERRORS as e:
            error = self._normalize(e, "list buckets")
            if isinstance(error, RegionMismatchError):
                self._tolerate_region_mismatch(error, "list buckets")
                return []
            raise error

        buckets = [
            Bucket(
                name=item['Name'],
                creation_date=item.get('CreationDate'),
                location=item.get('BucketRegion'),
            )
            for item in response.get('Buckets', [])
        ]
        logger.debug("Listed buckets", count=len(buckets))
        return buckets

    async def list_objects(self, bucket: str, prefix: str = "") -> ListResult:
        """List immediate folders and files under a prefix using delimiter listing."""
        self._ensure_ready()
        prefix = normalize_prefix(prefix)
        try:
            pages = await self._run_sync(self._collect_pages, bucket, prefix)
        except PROVIDER_ERRORS as e:
            error = self._normalize(e, f"list objects in {bucket}")
            if isinstance(error, RegionMismatchError):
                self._tolerate_region_mismatch(error, "list objects")
                return ListResult.of_objects([])
            raise error

        folders: List[ObjectEntry] = []
        files: List[ObjectEntry] = []
        for page in pages:
            for common in page.get('CommonPrefixes', []) or []:
                folders.append(ObjectEntry.folder(common['Prefix']))
            for obj in page.get('Contents', []) or []:
                files.append(self._entry_from_listing(obj))

        entries = merge_delimited_listing(prefix, folders, files)
        logger.debug("Listed objects", bucket=bucket, prefix=prefix, count=len(entries))
        return ListResult.of_objects(entries)

    def _collect_pages(self, bucket: str, prefix: str) -> List[Dict[str, Any]]:
        paginator = self._s3_client.get_paginator('list_objects_v2')
        page_iterator = paginator.paginate(Bucket=bucket, Prefix=prefix, Delimiter=DELIMITER)
        return list(page_iterator)

    def _entry_from_listing(self, obj: Dict[str, Any]) -> ObjectEntry:
        key = obj['Key']
        return ObjectEntry(
            key=key,
            is_folder=False,
            size=obj.get('Size', 0),
            last_modified=obj.get('LastModified'),
            content_type=file_utils.get_content_type(key),
            storage_class=obj.get('StorageClass') or 'STANDARD',
            etag=_strip_etag(obj.get('ETag')),
        )

    async def _put(self, bucket: str, key: str, data: bytes, content_type: Optional[str]) -> OperationResult:
        self._ensure_ready()
        upload_args: Dict[str, Any] = {'Bucket': bucket, 'Key': key, 'Body': data}
        if content_type:
            upload_args['ContentType'] = content_type

        try:
            response = await self._run_sync(self._s3_client.put_object, **upload_args)
        except PROVIDER_ERRORS as e:
            raise self._normalize(e, f"upload {key}")

        return OperationResult(success=True, key=key, etag=_strip_etag(response.get('ETag')))

    async def get_object(self, bucket: str, key: str) -> ObjectContent:
        """Download an object; the body is botocore's streaming body."""
        self._ensure_ready()
        try:
            response = await self._run_sync(self._s3_client.get_object, Bucket=bucket, Key=key)
        except PROVIDER_ERRORS as e:
            raise self._normalize(e, f"get {key}")

        return ObjectContent(
            body=response['Body'],
            content_type=response.get('ContentType'),
            content_length=response.get('ContentLength'),
            last_modified=response.get('LastModified'),
            etag=_strip_etag(response.get('ETag')),
            metadata=response.get('Metadata', {}) or {},
        )

    async def _sign_url(self, bucket: str, key: str, expires_in: int, overrides: UrlOverrides) -> str:
        self._ensure_ready()
        params: Dict[str, Any] = {'Bucket': bucket, 'Key': key}
        if overrides.content_disposition:
            params['ResponseContentDisposition'] = overrides.content_disposition
        if overrides.content_type:
            params['ResponseContentType'] = overrides.content_type

        try:
            return await self._run_sync(
                self._s3_client.generate_presigned_url,
                ClientMethod='get_object',
                Params=params,
                ExpiresIn=expires_in,
            )
        except PROVIDER_ERRORS as e:
            raise self._normalize(e, f"sign URL for {key}")

    async def delete_object(self, bucket: str, key: str) -> OperationResult:
        """Delete a single object; missing keys are not an error."""
        self._ensure_ready()
        try:
            await self._run_sync(self._s3_client.delete_object, Bucket=bucket, Key=key)
        except PROVIDER_ERRORS as e:
            error = self._normalize(e, f"delete {key}")
            if isinstance(error, ObjectNotFoundError):
                logger.debug("Object already absent", bucket=bucket, key=key)
                return OperationResult(success=True, key=key, details={"missing": True})
            raise error

        return OperationResult(success=True, key=key)

    async def delete_objects(self, bucket: str, keys: List[str]) -> DeleteResult:
        """Delete multiple objects with DeleteObjects, 1000 keys per request."""
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
            response = await self._run_sync(
                self._s3_client.delete_objects,
                Bucket=bucket,
                Delete={'Objects': [{'Key': key} for key in keys], 'Quiet': False},
            )
        except PROVIDER_ERRORS as e:
            error = self._normalize(e, "delete multiple objects")
            return DeleteResult(
                errors=[BatchDeleteError(key=key, code=error.error_code, message=error.message) for key in keys]
            )

        deleted = {item['Key'] for item in response.get('Deleted', []) or []}
        failures: Dict[str, BatchDeleteError] = {}
        for item in response.get('Errors', []) or []:
            if item.get('Code') in NOT_FOUND_CODES:
                deleted.add(item['Key'])
                continue
            failures[item['Key']] = BatchDeleteError(
                key=item['Key'],
                code=item.get('Code'),
                message=item.get('Message', ''),
            )

        result = DeleteResult()
        for key in keys:
            if key in failures:
                result.errors.append(failures[key])
            elif key in deleted:
                result.deleted.append(key)
            else:
                result.errors.append(
                    BatchDeleteError(key=key, code="Unknown", message="Key missing from DeleteObjects response")
                )
        return result


__all__ = ["S3Storage"]
