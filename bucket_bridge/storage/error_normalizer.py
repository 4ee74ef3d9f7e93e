"""
Classification of provider failures into the storage error taxonomy.

Each SDK reports failures in its own shape: botocore puts everything in a
``response`` dict, azure-core exposes ``status_code``/``error_code``
attributes and oss2 carries ``status``/``code``/``details``. This module reads
those structured fields once, close to the provider boundary, and produces a
single StorageError subclass. It never decides whether a failure is
recoverable; callers do that.
"""

from dataclasses import dataclass, field
from typing import Any

from azure.core.exceptions import AzureError, HttpResponseError, ResourceNotFoundError
from botocore.exceptions import BotoCoreError, ClientError
from oss2.exceptions import OssError

from .exceptions import ObjectNotFoundError, RegionMismatchError, StorageError, TransportError


# Authorization-class codes that S3-family services send together with the
# region the bucket actually lives in.
REGION_MISMATCH_CODES = frozenset(
    {
        "AuthorizationHeaderMalformed",
        "AuthorizationQueryParametersError",
        "PermanentRedirect",
        "IllegalLocationConstraintException",
    }
)

# Aliyun OSS answers a wrong-endpoint request with AccessDenied plus an Endpoint detail.
OSS_ENDPOINT_MISMATCH_CODES = frozenset({"AccessDenied", "SecondLevelDomainForbidden"})

NOT_FOUND_CODES = frozenset(
    {
        "NoSuchKey",
        "NoSuchBucket",
        "NotFound",
        "404",
        "BlobNotFound",
        "ContainerNotFound",
        "ResourceNotFound",
    }
)

BUCKET_REGION_HEADER = "x-amz-bucket-region"


@dataclass(frozen=True)
class ProviderFailure:
    """Structured fields pulled out of a provider exception."""

    code: str | None
    status_code: int | None
    message: str
    expected_region: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def _from_botocore(error: ClientError) -> ProviderFailure:
    response = error.response or {}
    body = response.get("Error", {}) or {}
    metadata = response.get("ResponseMetadata", {}) or {}
    headers = metadata.get("HTTPHeaders", {}) or {}

    code = body.get("Code")
    expected_region = body.get("Region") or headers.get(BUCKET_REGION_HEADER)
    if code not in REGION_MISMATCH_CODES:
        expected_region = None

    details = {k: v for k, v in body.items() if k not in ("Code", "Message")}
    if metadata.get("RequestId"):
        details["request_id"] = metadata["RequestId"]

    return ProviderFailure(
        code=code,
        status_code=metadata.get("HTTPStatusCode"),
        message=body.get("Message") or str(error),
        expected_region=expected_region,
        details=details,
    )


def _region_from_oss_endpoint(endpoint: str) -> str | None:
    host = endpoint.split("://", 1)[-1].strip("/")
    label = host.split(".", 1)[0]
    return label or None


def _from_oss(error: OssError) -> ProviderFailure:
    details = dict(getattr(error, "details", None) or {})
    code = getattr(error, "code", None) or details.get("Code") or None

    expected_region = None
    endpoint = details.get("Endpoint")
    if code in OSS_ENDPOINT_MISMATCH_CODES and endpoint:
        expected_region = _region_from_oss_endpoint(endpoint)

    request_id = getattr(error, "request_id", None)
    if request_id:
        details["request_id"] = request_id
    details.pop("Code", None)
    details.pop("Message", None)

    status = getattr(error, "status", None)
    return ProviderFailure(
        code=code,
        status_code=status if isinstance(status, int) and status > 0 else None,
        message=getattr(error, "message", None) or str(error),
        expected_region=expected_region,
        details=details,
    )


def _from_azure(error: AzureError) -> ProviderFailure:
    code = getattr(error, "error_code", None)
    if code is not None:
        code = str(code)
    if code is None and isinstance(error, ResourceNotFoundError):
        code = "ResourceNotFound"
    return ProviderFailure(
        code=code,
        status_code=getattr(error, "status_code", None) if isinstance(error, HttpResponseError) else None,
        message=getattr(error, "message", None) or str(error),
    )


def extract_failure(error: BaseException) -> ProviderFailure:
    """Read the structured fields of any provider exception."""
    if isinstance(error, ClientError):
        return _from_botocore(error)
    if isinstance(error, OssError):
        return _from_oss(error)
    if isinstance(error, AzureError):
        return _from_azure(error)
    if isinstance(error, BotoCoreError):
        return ProviderFailure(code=type(error).__name__, status_code=None, message=str(error))
    return ProviderFailure(code=type(error).__name__, status_code=None, message=str(error) or type(error).__name__)


def expected_region_of(error: BaseException) -> str | None:
    """Region the provider says the bucket lives in, if the error reports one."""
    if isinstance(error, RegionMismatchError):
        return error.expected_region
    if isinstance(error, StorageError):
        return None
    return extract_failure(error).expected_region


def is_region_mismatch(error: BaseException) -> bool:
    return expected_region_of(error) is not None


def is_not_found(error: BaseException) -> bool:
    if isinstance(error, ObjectNotFoundError):
        return True
    if isinstance(error, StorageError):
        return error.error_code in NOT_FOUND_CODES
    failure = extract_failure(error)
    return failure.code in NOT_FOUND_CODES or failure.status_code == 404


def normalize_error(
    error: BaseException,
    configured_region: str | None = None,
    operation: str | None = None,
) -> StorageError:
    """
    Convert a provider exception into a StorageError.

    Args:
        error: Exception raised by a provider SDK call
        configured_region: Region the connection was configured with
        operation: Short description of the failed call, kept in ``details``

    Returns:
        A RegionMismatchError, ObjectNotFoundError or TransportError whose
        ``__cause__`` is the original exception. StorageErrors are returned
        unchanged.
    """
    if isinstance(error, StorageError):
        return error

    failure = extract_failure(error)
    details = dict(failure.details)
    if operation:
        details["operation"] = operation

    if failure.expected_region:
        normalized: StorageError = RegionMismatchError(
            configured_region=configured_region,
            expected_region=failure.expected_region,
            error_code=failure.code,
            status_code=failure.status_code,
            details=details,
        )
    elif failure.code in NOT_FOUND_CODES or failure.status_code == 404:
        normalized = ObjectNotFoundError(
            failure.message,
            error_code=failure.code,
            status_code=failure.status_code,
            details=details,
        )
    else:
        normalized = TransportError(
            failure.message,
            error_code=failure.code,
            status_code=failure.status_code,
            details=details,
        )

    normalized.__cause__ = error
    return normalized


__all__ = [
    "ProviderFailure",
    "REGION_MISMATCH_CODES",
    "NOT_FOUND_CODES",
    "extract_failure",
    "expected_region_of",
    "is_region_mismatch",
    "is_not_found",
    "normalize_error",
]
