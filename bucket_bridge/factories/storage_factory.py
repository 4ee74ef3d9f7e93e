"""
Factory for creating storage clients.

Maps a connection's storage type to the client class that implements it.
Every call to ``create_client`` builds and initializes a fresh instance;
clients are never cached or shared between operations.
"""

import inspect
import threading
from collections.abc import Mapping
from typing import Any, Dict, List, Type

import structlog

from bucket_bridge.models.connection import Connection, resolve_storage_type
from bucket_bridge.storage.azure_storage import AzureBlobStorage
from bucket_bridge.storage.cloud_storage import StorageClient
from bucket_bridge.storage.exceptions import UnsupportedTypeError
from bucket_bridge.storage.oss_storage import AliyunOSSStorage
from bucket_bridge.storage.pcg_storage import PCGStorage
from bucket_bridge.storage.s3_storage import S3Storage
from bucket_bridge.utils.env_config import AppSettings

logger = structlog.get_logger(__name__)

_registry: Dict[str, Type[StorageClient]] = {}
_registry_lock = threading.Lock()


def register_client_type(storage_type: str, client_class: Type[StorageClient]) -> None:
    """
    Register a storage client class under a type name.

    Re-registering a type replaces the previous class.

    Args:
        storage_type: Type name stored in connection records (e.g. ``s3``)
        client_class: Concrete ``StorageClient`` subclass

    Raises:
        ValueError: If the type name is empty
        TypeError: If the class does not implement the storage client contract
    """
    if not storage_type or not str(storage_type).strip():
        raise ValueError("Storage type name must not be empty")
    if not inspect.isclass(client_class) or not issubclass(client_class, StorageClient):
        raise TypeError(f"{client_class!r} is not a StorageClient subclass")
    if inspect.isabstract(client_class):
        missing = sorted(getattr(client_class, "__abstractmethods__", ()))
        raise TypeError(f"{client_class.__name__} does not implement: {', '.join(missing)}")

    key = str(storage_type).strip().lower()
    with _registry_lock:
        _registry[key] = client_class
    logger.debug("Registered storage client type", type=key, client=client_class.__name__)


def unregister_client_type(storage_type: str) -> bool:
    """Remove a registered type. Returns False if it was not registered."""
    key = str(storage_type).strip().lower()
    with _registry_lock:
        return _registry.pop(key, None) is not None


def get_supported_client_types() -> List[str]:
    """List registered storage types."""
    with _registry_lock:
        return list(_registry.keys())


def get_client_class(storage_type: Any) -> Type[StorageClient]:
    """Look up the client class for a storage type; legacy aliases are accepted."""
    key = resolve_storage_type(storage_type)
    with _registry_lock:
        client_class = _registry.get(key)
        supported = list(_registry.keys())
    if client_class is None:
        raise UnsupportedTypeError(storage_type, supported)
    return client_class


async def create_client(
    storage_type: Any,
    config: Connection | Mapping[str, Any],
    settings: AppSettings | None = None,
) -> StorageClient:
    """
    Create and initialize a new storage client.

    Args:
        storage_type: Registered type name; empty means ``s3``
        config: Connection record or its persisted mapping form
        settings: Optional settings override, the global settings otherwise

    Returns:
        A ready client owned by the caller

    Raises:
        UnsupportedTypeError: If no client is registered for the type
        InitError: If the client rejects the configuration
    """
    client_class = get_client_class(storage_type)
    client = client_class(settings)
    await client.initialize(config)
    logger.debug("Created storage client", type=resolve_storage_type(storage_type), client=client_class.__name__)
    return client


def _register_builtin_types() -> None:
    register_client_type("s3", S3Storage)
    register_client_type("azure-blob", AzureBlobStorage)
    register_client_type("aliyun-oss", AliyunOSSStorage)
    register_client_type("pcg", PCGStorage)


_register_builtin_types()


__all__ = [
    "register_client_type",
    "unregister_client_type",
    "get_supported_client_types",
    "get_client_class",
    "create_client",
]
