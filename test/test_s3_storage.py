from datetime import datetime, timezone
from typing import Any
from unittest.mock import MagicMock, patch

import pytest
from botocore.awsrequest import AWSResponse
from botocore.exceptions import ClientError

from bucket_bridge.storage.exceptions import InitError, RegionMismatchError, TransportError
from bucket_bridge.storage.s3_storage import S3Storage


def client_error(code: str, status: int = 400, operation: str = "Op", **extra: Any) -> ClientError:
    return ClientError(
        {"Error": {"Code": code, "Message": f"{code} happened", **extra}, "ResponseMetadata": {"HTTPStatusCode": status}},
        operation,
    )


@pytest.fixture
def s3_client_mock():
    return MagicMock()


@pytest.fixture
def session_mock(s3_client_mock):
    with patch("bucket_bridge.storage.s3_storage.boto3.Session") as session_cls:
        session_cls.return_value.client.return_value = s3_client_mock
        yield session_cls


@pytest.fixture
async def storage(settings, s3_connection, session_mock) -> S3Storage:
    return await S3Storage(settings).initialize(s3_connection)


class TestS3Initialize:
    """Client construction."""

    @pytest.mark.asyncio
    async def test_client_configuration(self, settings, s3_connection, session_mock) -> None:
        """The boto3 client is created for the connection's region."""
        await S3Storage(settings).initialize(s3_connection)

        session_mock.assert_called_once_with(
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
            region_name="us-east-1",
        )
        kwargs = session_mock.return_value.client.call_args.kwargs
        assert kwargs["region_name"] == "us-east-1"
        assert kwargs["use_ssl"] is True
        assert "endpoint_url" not in kwargs

    @pytest.mark.asyncio
    async def test_custom_endpoint_without_scheme(self, settings, session_mock) -> None:
        """A bare endpoint host gets a scheme matching the secure flag."""
        await S3Storage(settings).initialize(
            {"endpoint": "minio.local:9000", "secure": False, "accessKey": "a", "secretKey": "b"}
        )

        kwargs = session_mock.return_value.client.call_args.kwargs
        assert kwargs["endpoint_url"] == "http://minio.local:9000"
        assert kwargs["region_name"] == "us-east-1"

    @pytest.mark.asyncio
    async def test_half_credentials_rejected(self, settings, session_mock) -> None:
        """An access key without a secret key is an InitError."""
        with pytest.raises(InitError):
            await S3Storage(settings).initialize({"accessKey": "a"})

    @pytest.mark.asyncio
    async def test_probe_region_mismatch_is_not_fatal(self, settings, s3_connection, session_mock, s3_client_mock) -> None:
        """A region mismatch found by the probe is logged and initialization succeeds."""
        settings.storage_probe_on_initialize = True
        s3_client_mock.list_objects_v2.side_effect = client_error("AuthorizationHeaderMalformed", Region="eu-west-1")

        client = await S3Storage(settings).initialize(s3_connection)

        assert client.is_ready
        s3_client_mock.list_objects_v2.assert_called_once_with(Bucket="photos", MaxKeys=1)


class TestS3Listing:
    """Buckets and delimiter listings."""

    @pytest.mark.asyncio
    async def test_list_buckets(self, storage, s3_client_mock) -> None:
        """Buckets are mapped to Bucket descriptors."""
        created = datetime(2023, 1, 1, tzinfo=timezone.utc)
        s3_client_mock.list_buckets.return_value = {"Buckets": [{"Name": "photos", "CreationDate": created}]}

        buckets = await storage.list_buckets()

        assert [b.name for b in buckets] == ["photos"]
        assert buckets[0].creation_date == created

    @pytest.mark.asyncio
    async def test_list_objects_merges_pages(self, storage, s3_client_mock) -> None:
        """Folders and files from every page are returned, folders first."""
        paginator = s3_client_mock.get_paginator.return_value
        paginator.paginate.return_value = [
            {
                "CommonPrefixes": [{"Prefix": "docs/a/"}],
                "Contents": [
                    {"Key": "docs/", "Size": 0},
                    {"Key": "docs/x.pdf", "Size": 10, "ETag": '"abc"', "StorageClass": "GLACIER"},
                ],
            },
            {"CommonPrefixes": [{"Prefix": "docs/b/"}], "Contents": [{"Key": "docs/y.txt", "Size": 2}]},
        ]

        result = await storage.list_objects("photos", "docs/")

        paginator.paginate.assert_called_once_with(Bucket="photos", Prefix="docs/", Delimiter="/")
        assert result.type == "objects"
        assert [e.key for e in result.data] == ["docs/a/", "docs/b/", "docs/x.pdf", "docs/y.txt"]
        pdf = result.data[2]
        assert pdf.etag == "abc"
        assert pdf.content_type == "application/pdf"
        assert pdf.storage_class == "GLACIER"
        assert result.data[3].storage_class == "STANDARD"

    @pytest.mark.asyncio
    async def test_list_objects_region_mismatch_returns_empty(self, storage, s3_client_mock) -> None:
        """With the default policy a region mismatch yields an empty listing."""
        s3_client_mock.get_paginator.return_value.paginate.side_effect = client_error(
            "AuthorizationHeaderMalformed", Region="eu-west-1"
        )

        result = await storage.list_objects("photos")

        assert result.type == "objects"
        assert result.data == []

    @pytest.mark.asyncio
    async def test_list_objects_region_mismatch_raise_policy(self, raising_settings, s3_connection, session_mock, s3_client_mock) -> None:
        """With the raise policy the mismatch reaches the caller with both regions."""
        s3_client_mock.get_paginator.return_value.paginate.side_effect = client_error(
            "AuthorizationHeaderMalformed", Region="eu-west-1"
        )
        client = await S3Storage(raising_settings).initialize(s3_connection)

        with pytest.raises(RegionMismatchError) as exc_info:
            await client.list_objects("photos")

        assert exc_info.value.configured_region == "us-east-1"
        assert exc_info.value.expected_region == "eu-west-1"

    @pytest.mark.asyncio
    async def test_list_buckets_other_error_propagates(self, storage, s3_client_mock) -> None:
        """Other failures are normalized and raised."""
        s3_client_mock.list_buckets.side_effect = client_error("AccessDenied", status=403)

        with pytest.raises(TransportError) as exc_info:
            await storage.list_buckets()

        assert exc_info.value.error_code == "AccessDenied"
        assert isinstance(exc_info.value.__cause__, ClientError)

    @pytest.mark.asyncio
    async def test_prefix_without_trailing_slash(self, storage, s3_client_mock) -> None:
        """The prefix is normalized so sibling names are not matched."""
        paginator = s3_client_mock.get_paginator.return_value
        paginator.paginate.return_value = [
            {"CommonPrefixes": [{"Prefix": "a/y/"}], "Contents": [{"Key": "a/", "Size": 0}, {"Key": "a/x.txt", "Size": 1}]},
        ]

        result = await storage.list_objects("photos", "a")

        paginator.paginate.assert_called_once_with(Bucket="photos", Prefix="a/", Delimiter="/")
        assert [e.key for e in result.data] == ["a/y/", "a/x.txt"]


class _RawBody:
    def __init__(self, body: bytes):
        self._body = body

    def stream(self, **kwargs):
        yield self._body


WRONG_REGION_BODY = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b"<Error><Code>AuthorizationHeaderMalformed</Code>"
    b"<Message>The authorization header is malformed; the region 'us-west-2' is wrong; expecting 'eu-west-1'</Message>"
    b"<Region>eu-west-1</Region><RequestId>REQ1</RequestId></Error>"
)

LISTING_BODY = (
    b'<?xml version="1.0" encoding="UTF-8"?>'
    b'<ListBucketResult xmlns="http://s3.amazonaws.com/doc/2006-03-01/">'
    b"<Name>photos</Name><Prefix></Prefix><KeyCount>1</KeyCount><MaxKeys>1000</MaxKeys>"
    b"<Delimiter>/</Delimiter><IsTruncated>false</IsTruncated>"
    b"<Contents><Key>cat.jpg</Key><Size>3</Size><StorageClass>STANDARD</StorageClass></Contents>"
    b"</ListBucketResult>"
)


@pytest.fixture
def sent_urls() -> list:
    return []


@pytest.fixture
def wrong_region_transport(sent_urls):
    """Answers like AWS for a bucket that lives in eu-west-1."""

    def send(request, **kwargs):
        sent_urls.append(request.url)
        headers = {"content-type": "application/xml"}
        if "eu-west-1" in request.url:
            return AWSResponse(request.url, 200, headers, _RawBody(LISTING_BODY))
        headers["x-amz-bucket-region"] = "eu-west-1"
        return AWSResponse(request.url, 400, headers, _RawBody(WRONG_REGION_BODY))

    return send


class TestS3WrongRegion:
    """Requests against the wrong region with a real botocore client."""

    async def _client(self, app_settings, s3_connection, transport) -> S3Storage:
        client = await S3Storage(app_settings).initialize(s3_connection.with_overrides(region="us-west-2"))
        client.client.meta.events.register("before-send.s3", transport)
        return client

    @pytest.mark.asyncio
    async def test_listing_is_not_redirected(self, settings, s3_connection, wrong_region_transport, sent_urls) -> None:
        """The request is not retried in the bucket's region; the listing is empty."""
        client = await self._client(settings, s3_connection, wrong_region_transport)

        result = await client.list_objects("photos")

        assert result.data == []
        assert sent_urls
        assert all("us-west-2" in url for url in sent_urls)

    @pytest.mark.asyncio
    async def test_listing_mismatch_raised(self, raising_settings, s3_connection, wrong_region_transport, sent_urls) -> None:
        """With the raise policy the caller learns the bucket's real region."""
        client = await self._client(raising_settings, s3_connection, wrong_region_transport)

        with pytest.raises(RegionMismatchError) as exc_info:
            await client.list_objects("photos")

        assert exc_info.value.configured_region == "us-west-2"
        assert exc_info.value.expected_region == "eu-west-1"
        assert not any("eu-west-1" in url for url in sent_urls)


class TestS3Objects:
    """Reads, writes and URLs."""

    @pytest.mark.asyncio
    async def test_upload_sets_content_type(self, storage, s3_client_mock) -> None:
        """Uploads send the inferred content type."""
        s3_client_mock.put_object.return_value = {"ETag": '"e1"'}

        result = await storage.upload_object("photos", "a/b.json", b"{}")

        s3_client_mock.put_object.assert_called_once_with(
            Bucket="photos", Key="a/b.json", Body=b"{}", ContentType="application/json"
        )
        assert result.etag == "e1"

    @pytest.mark.asyncio
    async def test_get_object_returns_stream(self, storage, s3_client_mock) -> None:
        """The streaming body is handed back untouched."""
        body = MagicMock()
        s3_client_mock.get_object.return_value = {"Body": body, "ContentType": "text/plain", "ContentLength": 4}

        content = await storage.get_object("photos", "a.txt")

        assert content.body is body
        assert content.is_stream
        assert content.content_length == 4

    @pytest.mark.asyncio
    async def test_download_url(self, storage, s3_client_mock) -> None:
        """Download URLs are presigned with an attachment disposition for one hour."""
        s3_client_mock.generate_presigned_url.return_value = "https://signed"

        url = await storage.get_object_url("photos", "docs/report.pdf", "download")

        assert url == "https://signed"
        s3_client_mock.generate_presigned_url.assert_called_once_with(
            ClientMethod="get_object",
            Params={
                "Bucket": "photos",
                "Key": "docs/report.pdf",
                "ResponseContentDisposition": 'attachment; filename="report.pdf"',
            },
            ExpiresIn=3600,
        )

    @pytest.mark.asyncio
    async def test_view_pdf_url(self, storage, s3_client_mock) -> None:
        """Viewing a PDF overrides the response content type."""
        await storage.get_object_url("photos", "report.pdf", "view")

        params = s3_client_mock.generate_presigned_url.call_args.kwargs["Params"]
        assert params["ResponseContentType"] == "application/pdf"
        assert "ResponseContentDisposition" not in params


class TestS3Delete:
    """Single and batch deletes."""

    @pytest.mark.asyncio
    async def test_delete_missing_is_success(self, storage, s3_client_mock) -> None:
        """Deleting a missing key succeeds."""
        s3_client_mock.delete_object.side_effect = client_error("NoSuchKey", status=404)

        result = await storage.delete_object("photos", "gone.txt")

        assert result.success
        assert result.details["missing"] is True

    @pytest.mark.asyncio
    async def test_batch_partial_failure(self, storage, s3_client_mock) -> None:
        """Per-key errors are reported and missing keys count as deleted."""
        s3_client_mock.delete_objects.return_value = {
            "Deleted": [{"Key": "a"}],
            "Errors": [
                {"Key": "b", "Code": "AccessDenied", "Message": "denied"},
                {"Key": "c", "Code": "NoSuchKey", "Message": "missing"},
            ],
        }

        result = await storage.delete_objects("photos", ["a", "b", "c"])

        assert result.deleted == ["a", "c"]
        assert [(e.key, e.code) for e in result.errors] == [("b", "AccessDenied")]

    @pytest.mark.asyncio
    async def test_batch_is_chunked(self, storage, s3_client_mock) -> None:
        """More than 1000 keys are sent in several requests."""
        keys = [f"k{i}" for i in range(2500)]
        s3_client_mock.delete_objects.side_effect = lambda Bucket, Delete: {
            "Deleted": [{"Key": item["Key"]} for item in Delete["Objects"]]
        }

        result = await storage.delete_objects("photos", keys)

        assert s3_client_mock.delete_objects.call_count == 3
        assert result.deleted == keys
        assert result.success

    @pytest.mark.asyncio
    async def test_batch_request_failure_marks_every_key(self, storage, s3_client_mock) -> None:
        """A failed request reports every key of the chunk as failed."""
        s3_client_mock.delete_objects.side_effect = client_error("InternalError", status=500)

        result = await storage.delete_objects("photos", ["a", "b"])

        assert result.deleted == []
        assert [e.key for e in result.errors] == ["a", "b"]
        assert result.errors[0].code == "InternalError"
