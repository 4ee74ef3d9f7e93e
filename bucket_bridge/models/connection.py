"""
Connection records describing how to reach one storage account.

Connections are created and edited by the connection manager and persisted
in the settings document using camelCase keys. The storage layer only reads
them, so the model is frozen.
"""

import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StorageType(str, Enum):
    """Storage backends shipped with the package."""

    S3 = "s3"
    AZURE_BLOB = "azure-blob"
    ALIYUN_OSS = "aliyun-oss"
    PCG = "pcg"


DEFAULT_STORAGE_TYPE = StorageType.S3.value

# Values written by older releases of the connection manager
LEGACY_TYPE_ALIASES: dict[str, str] = {
    "aws-s3": StorageType.S3.value,
    "aws_s3": StorageType.S3.value,
    "azure": StorageType.AZURE_BLOB.value,
    "aliyun": StorageType.ALIYUN_OSS.value,
    "oss": StorageType.ALIYUN_OSS.value,
}


def resolve_storage_type(value: Any) -> str:
    """Map a persisted ``type`` value to a registry key, defaulting to ``s3``."""
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return DEFAULT_STORAGE_TYPE
    text = str(value).strip().lower()
    if not text:
        return DEFAULT_STORAGE_TYPE
    return LEGACY_TYPE_ALIASES.get(text, text)


class Connection(BaseModel):
    """A saved storage account."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="allow",
    )

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    type: str = Field(default=DEFAULT_STORAGE_TYPE)
    endpoint: str | None = None
    region: str | None = None

    # S3 family credentials
    access_key: str | None = Field(default=None, alias="accessKey")
    secret_key: str | None = Field(default=None, alias="secretKey", repr=False)

    # Azure credentials
    account_name: str | None = Field(default=None, alias="accountName")
    account_key: str | None = Field(default=None, alias="accountKey", repr=False)

    bucket: str | None = None
    prefix: str | None = None
    secure: bool = True
    timeout: int | None = Field(default=None, ge=1)

    @field_validator("type", mode="before")
    @classmethod
    def default_type(cls, v: Any) -> str:
        return resolve_storage_type(v)

    @field_validator("endpoint", "region", "bucket", "prefix", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def with_overrides(self, **changes: Any) -> "Connection":
        """Return a copy with the given fields replaced; the original is untouched."""
        return self.model_copy(update=changes)

    def to_record(self) -> dict[str, Any]:
        """Render the camelCase record stored in the settings document."""
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "Connection",
    "StorageType",
    "DEFAULT_STORAGE_TYPE",
    "LEGACY_TYPE_ALIASES",
    "resolve_storage_type",
]
