from azure.core.exceptions import ResourceNotFoundError, ServiceRequestError
from botocore.exceptions import ClientError, EndpointConnectionError
from oss2.exceptions import ServerError

from bucket_bridge.storage.error_normalizer import (
    expected_region_of,
    extract_failure,
    is_not_found,
    is_region_mismatch,
    normalize_error,
)
from bucket_bridge.storage.exceptions import (
    InitError,
    ObjectNotFoundError,
    RegionMismatchError,
    TransportError,
)


def client_error(code: str, status: int = 400, message: str = "failed", **extra) -> ClientError:
    headers = extra.pop("headers", {})
    return ClientError(
        {
            "Error": {"Code": code, "Message": message, **extra},
            "ResponseMetadata": {"HTTPStatusCode": status, "HTTPHeaders": headers, "RequestId": "req-1"},
        },
        "ListObjectsV2",
    )


def oss_error(code: str, status: int = 403, **details) -> ServerError:
    return ServerError(status, {"x-oss-request-id": "oss-req"}, b"", {"Code": code, "Message": "denied", **details})


class TestRegionMismatch:
    """Recognition of wrong-region failures."""

    def test_s3_authorization_header_malformed_with_region(self) -> None:
        """An authorization failure carrying a Region becomes a RegionMismatchError."""
        error = client_error("AuthorizationHeaderMalformed", Region="eu-west-1")

        normalized = normalize_error(error, "us-east-1", "list objects")

        assert isinstance(normalized, RegionMismatchError)
        assert normalized.configured_region == "us-east-1"
        assert normalized.expected_region == "eu-west-1"
        assert normalized.error_code == "AuthorizationHeaderMalformed"
        assert normalized.status_code == 400
        assert normalized.details["operation"] == "list objects"
        assert normalized.__cause__ is error

    def test_region_from_bucket_region_header(self) -> None:
        """The x-amz-bucket-region header is used when the body has no Region."""
        error = client_error("PermanentRedirect", status=301, headers={"x-amz-bucket-region": "ap-south-1"})

        assert expected_region_of(error) == "ap-south-1"
        assert is_region_mismatch(error)

    def test_mismatch_code_without_region_is_not_mismatch(self) -> None:
        """Without an expected-region hint the failure is a plain transport error."""
        error = client_error("AuthorizationHeaderMalformed")

        assert not is_region_mismatch(error)
        assert isinstance(normalize_error(error, "us-east-1"), TransportError)

    def test_region_on_unrelated_code_is_ignored(self) -> None:
        """A Region field on a non-authorization error does not make it a mismatch."""
        error = client_error("AccessDenied", status=403, Region="eu-west-1")

        assert expected_region_of(error) is None

    def test_message_is_actionable(self) -> None:
        """The message names both regions and tells the user what to change."""
        normalized = normalize_error(client_error("AuthorizationHeaderMalformed", Region="eu-west-1"), "us-east-1")

        assert "'us-east-1'" in normalized.message
        assert "'eu-west-1'" in normalized.message
        assert "update your connection settings" in normalized.message

    def test_oss_access_denied_with_endpoint(self) -> None:
        """OSS AccessDenied with an Endpoint detail reports the endpoint's region."""
        error = oss_error("AccessDenied", Endpoint="oss-cn-beijing.aliyuncs.com")

        normalized = normalize_error(error, "oss-cn-hangzhou")

        assert isinstance(normalized, RegionMismatchError)
        assert normalized.expected_region == "oss-cn-beijing"
        assert normalized.details["request_id"] == "oss-req"

    def test_oss_access_denied_without_endpoint(self) -> None:
        """A plain OSS AccessDenied stays a transport error."""
        normalized = normalize_error(oss_error("AccessDenied"))

        assert isinstance(normalized, TransportError)
        assert normalized.error_code == "AccessDenied"
        assert normalized.status_code == 403


class TestNotFound:
    """Missing buckets and keys."""

    def test_s3_no_such_key(self) -> None:
        """NoSuchKey normalizes to ObjectNotFoundError."""
        error = client_error("NoSuchKey", status=404)

        assert is_not_found(error)
        assert isinstance(normalize_error(error), ObjectNotFoundError)

    def test_status_404_without_known_code(self) -> None:
        """A bare 404 is treated as not found."""
        assert isinstance(normalize_error(client_error("Weird", status=404)), ObjectNotFoundError)

    def test_oss_no_such_key(self) -> None:
        """OSS NoSuchKey normalizes to ObjectNotFoundError."""
        assert isinstance(normalize_error(oss_error("NoSuchKey", status=404)), ObjectNotFoundError)

    def test_azure_resource_not_found(self) -> None:
        """Azure ResourceNotFoundError normalizes to ObjectNotFoundError."""
        error = ResourceNotFoundError("blob is gone")

        assert is_not_found(error)
        assert isinstance(normalize_error(error), ObjectNotFoundError)


class TestTransport:
    """Everything else."""

    def test_botocore_connection_failure(self) -> None:
        """Low-level botocore errors become TransportError keyed by class name."""
        error = EndpointConnectionError(endpoint_url="https://s3.example.com")

        normalized = normalize_error(error)

        assert isinstance(normalized, TransportError)
        assert normalized.error_code == "EndpointConnectionError"
        assert normalized.__cause__ is error

    def test_azure_service_request_error(self) -> None:
        """Azure network errors become TransportError."""
        normalized = normalize_error(ServiceRequestError("connection reset"))

        assert isinstance(normalized, TransportError)
        assert "connection reset" in normalized.message

    def test_already_normalized_is_returned_unchanged(self) -> None:
        """A StorageError is never wrapped a second time."""
        error = InitError("bad credentials", error_code="MISSING_CREDENTIALS")

        assert normalize_error(error, "us-east-1") is error

    def test_extract_failure_keeps_request_id(self) -> None:
        """Provider request ids are kept in the failure details."""
        failure = extract_failure(client_error("InternalError", status=500))

        assert failure.code == "InternalError"
        assert failure.status_code == 500
        assert failure.details["request_id"] == "req-1"
