import re
from typing import Any
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from botocore.exceptions import EndpointConnectionError

from course_uploads.adapters.storage import CompletedPart
from course_uploads.adapters.storage import S3StorageAdapter
from course_uploads.adapters.storage import StorageAdapter
from course_uploads.adapters.storage import build_object_key
from course_uploads.adapters.storage import clean_metadata
from course_uploads.errors import StorageError


def client_error(code: str, operation: str = "Op") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} happened"}}, operation)


@pytest.fixture
def s3_client() -> Any:
    return MagicMock()


@pytest.fixture
def adapter(s3_client: Any) -> S3StorageAdapter:
    return S3StorageAdapter(s3_client, bucket="course-videos", region="eu-west-1")


def test_adapter_satisfies_protocol(adapter: S3StorageAdapter) -> None:
    assert isinstance(adapter, StorageAdapter)


def test_object_key_keeps_extension() -> None:
    key = build_object_key("courses/videos/", "Lecture 01.MP4")

    assert re.fullmatch(r"courses/videos/[0-9a-f-]{36}\.mp4", key)


def test_object_key_without_extension() -> None:
    key = build_object_key("courses/videos", "raw")

    assert re.fullmatch(r"courses/videos/[0-9a-f-]{36}", key)


def test_clean_metadata_drops_non_strings() -> None:
    assert clean_metadata({"title": "Intro", "duration": None, "size": 5}) == {"title": "Intro"}
    assert clean_metadata(None) == {}


@pytest.mark.asyncio
async def test_initiate(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.create_multipart_upload.return_value = {"UploadId": "mpu-1"}

    result = await adapter.initiate(
        name="intro.webm", folder="courses/videos/c1", content_type="video/webm", metadata={"title": "Intro"}
    )

    assert result.upload_id == "mpu-1"
    assert result.key.startswith("courses/videos/c1/") and result.key.endswith(".webm")
    s3_client.create_multipart_upload.assert_called_once_with(
        Bucket="course-videos", Key=result.key, ContentType="video/webm", Metadata={"title": "Intro"}
    )


@pytest.mark.asyncio
async def test_initiate_without_upload_id(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.create_multipart_upload.return_value = {}

    with pytest.raises(StorageError):
        await adapter.initiate(name="a.mp4", folder="f", content_type="video/mp4")


@pytest.mark.asyncio
async def test_part_upload_url(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.generate_presigned_url.return_value = "https://signed.example/part"

    url = await adapter.part_upload_url("k.mp4", "mpu-1", 3, 900)

    assert url == "https://signed.example/part"
    s3_client.generate_presigned_url.assert_called_once_with(
        ClientMethod="upload_part",
        Params={"Bucket": "course-videos", "Key": "k.mp4", "UploadId": "mpu-1", "PartNumber": 3},
        ExpiresIn=900,
    )


@pytest.mark.asyncio
async def test_complete_sends_parts_in_order(adapter: S3StorageAdapter, s3_client: Any) -> None:
    parts = [CompletedPart(2, '"b"'), CompletedPart(1, '"a"')]

    await adapter.complete("k.mp4", "mpu-1", parts)

    s3_client.complete_multipart_upload.assert_called_once_with(
        Bucket="course-videos",
        Key="k.mp4",
        UploadId="mpu-1",
        MultipartUpload={"Parts": [{"PartNumber": 1, "ETag": '"a"'}, {"PartNumber": 2, "ETag": '"b"'}]},
    )


@pytest.mark.asyncio
async def test_client_error_carries_provider_code(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.abort_multipart_upload.side_effect = client_error("NoSuchUpload", "AbortMultipartUpload")

    with pytest.raises(StorageError) as exc_info:
        await adapter.abort("k.mp4", "mpu-1")

    assert exc_info.value.provider_code == "NoSuchUpload"
    assert exc_info.value.is_missing_upload
    assert exc_info.value.operation == "abort"


@pytest.mark.asyncio
async def test_connection_error_is_translated(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.complete_multipart_upload.side_effect = EndpointConnectionError(endpoint_url="https://s3.test")

    with pytest.raises(StorageError) as exc_info:
        await adapter.complete("k.mp4", "mpu-1", [CompletedPart(1, "a")])

    assert exc_info.value.provider_code == ""
    assert not exc_info.value.is_missing_upload


@pytest.mark.asyncio
async def test_head_metadata(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.head_object.return_value = {"Metadata": {"duration": "63"}, "ContentLength": 10}

    assert await adapter.head_metadata("k.mp4") == {"duration": "63"}


@pytest.mark.asyncio
async def test_head_metadata_missing_object(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.head_object.side_effect = client_error("404", "HeadObject")

    assert await adapter.head_metadata("k.mp4") is None


@pytest.mark.asyncio
async def test_head_metadata_other_error(adapter: S3StorageAdapter, s3_client: Any) -> None:
    s3_client.head_object.side_effect = client_error("AccessDenied", "HeadObject")

    with pytest.raises(StorageError):
        await adapter.head_metadata("k.mp4")


def test_public_url_defaults_to_virtual_hosted_style(adapter: S3StorageAdapter) -> None:
    assert adapter.public_url("courses/videos/a.mp4") == (
        "https://course-videos.s3.eu-west-1.amazonaws.com/courses/videos/a.mp4"
    )


def test_public_url_with_base(s3_client: Any) -> None:
    adapter = S3StorageAdapter(s3_client, bucket="b", region="r", public_base_url="https://cdn.example.com/")

    assert adapter.public_url("k.mp4") == "https://cdn.example.com/k.mp4"


def test_from_config_uses_injected_client(make_config: Any, s3_client: Any) -> None:
    config = make_config(s3_bucket="bucket-x", aws_region="ap-south-1", public_base_url="")

    adapter = S3StorageAdapter.from_config(config, client=s3_client)

    assert adapter.bucket == "bucket-x"
    assert adapter.region == "ap-south-1"
    assert adapter.public_url("k") == "https://bucket-x.s3.ap-south-1.amazonaws.com/k"
