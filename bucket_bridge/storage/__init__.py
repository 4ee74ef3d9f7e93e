"""
Multi-backend object storage module.

This module provides one asynchronous client contract over AWS S3 and
S3-compatible services, PCG, Azure Blob Storage and Aliyun OSS, together
with the shared result types and the normalized exception hierarchy.
"""

from .azure_storage import AzureBlobStorage
from .cloud_storage import (
    OBJECT_URL_EXPIRY,
    BatchDeleteError,
    Bucket,
    DeleteResult,
    ListResult,
    ObjectContent,
    ObjectEntry,
    OperationResult,
    StorageClient,
)
from .error_normalizer import normalize_error
from .exceptions import (
    ClientNotReadyError,
    ConnectionNotFoundError,
    InitError,
    InvalidPathError,
    ObjectNotFoundError,
    RegionMismatchError,
    StorageError,
    TransportError,
    UnsupportedTypeError,
)
from .file_utils import DOWNLOAD, VIEW, FileUtils, file_utils
from .oss_storage import AliyunOSSStorage
from .pcg_storage import PCGStorage
from .s3_storage import S3Storage

__all__ = [
    # Abstract interface
    "StorageClient",
    # Concrete implementations
    "S3Storage",
    "PCGStorage",
    "AzureBlobStorage",
    "AliyunOSSStorage",
    # Data models
    "Bucket",
    "ObjectEntry",
    "ListResult",
    "ObjectContent",
    "BatchDeleteError",
    "DeleteResult",
    "OperationResult",
    "OBJECT_URL_EXPIRY",
    # Exceptions
    "StorageError",
    "UnsupportedTypeError",
    "InitError",
    "ClientNotReadyError",
    "RegionMismatchError",
    "ObjectNotFoundError",
    "TransportError",
    "InvalidPathError",
    "ConnectionNotFoundError",
    "normalize_error",
    # Utilities
    "FileUtils",
    "file_utils",
    "VIEW",
    "DOWNLOAD",
]
