from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any
from typing import Mapping
from typing import Optional
from typing import Protocol
from typing import Sequence
from typing import runtime_checkable

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError
from botocore.exceptions import ClientError

from course_uploads.config import Config
from course_uploads.errors import StorageError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InitiatedUpload:
    key: str
    upload_id: str


@dataclass(frozen=True)
class CompletedPart:
    part_number: int
    receipt_tag: str


@runtime_checkable
class StorageAdapter(Protocol):
    async def initiate(
        self,
        *,
        name: str,
        folder: str,
        content_type: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> InitiatedUpload: ...

    async def part_upload_url(self, key: str, upload_id: str, part_number: int, ttl: int) -> str: ...

    async def complete(self, key: str, upload_id: str, ordered_parts: Sequence[CompletedPart]) -> None: ...

    async def abort(self, key: str, upload_id: str) -> None: ...

    def public_url(self, key: str) -> str: ...

    async def head_metadata(self, key: str) -> Optional[dict[str, str]]: ...


def build_object_key(folder: str, name: str) -> str:
    """<folder>/<uuid4>[.<ext>] keeping the original file extension when there is one."""
    extension = name.rsplit(".", 1)[-1].lower() if "." in name.strip(".") else ""
    unique_name = f"{uuid.uuid4()}.{extension}" if extension else str(uuid.uuid4())
    return f"{folder.rstrip('/')}/{unique_name}"


def clean_metadata(metadata: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """S3 user metadata only carries strings; anything else is dropped."""
    if not metadata:
        return {}
    return {key: value for key, value in metadata.items() if isinstance(value, str)}


def _provider_code(error: Exception) -> str:
    if isinstance(error, ClientError):
        return str(error.response.get("Error", {}).get("Code", ""))
    return ""


def create_s3_client(config: Config) -> Any:
    """Build the boto3 S3 client from configuration. Credentials fall back to the default AWS chain."""
    kwargs: dict[str, Any] = {
        "region_name": config.aws_region,
        "config": BotoConfig(signature_version="s3v4", retries={"max_attempts": 1, "mode": "standard"}),
    }
    if config.aws_access_key_id and config.aws_secret_access_key:
        kwargs["aws_access_key_id"] = config.aws_access_key_id
        kwargs["aws_secret_access_key"] = config.aws_secret_access_key
    if config.aws_endpoint_url:
        kwargs["endpoint_url"] = config.aws_endpoint_url
    return boto3.client("s3", **kwargs)


class S3StorageAdapter(StorageAdapter):
    """Multipart upload operations against an S3-compatible bucket.

    The boto3 client is injected; this class holds no state beyond the bucket
    and URL settings. Blocking client calls run in a worker thread.
    """

    def __init__(self, client: Any, bucket: str, region: str, public_base_url: str = "") -> None:
        self._client = client
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip("/")

    @classmethod
    def from_config(cls, config: Config, client: Any = None) -> "S3StorageAdapter":
        return cls(
            client=client if client is not None else create_s3_client(config),
            bucket=config.s3_bucket,
            region=config.aws_region,
            public_base_url=config.public_base_url,
        )

    async def _call(self, operation: str, method: str, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(getattr(self._client, method), **kwargs)
        except (ClientError, BotoCoreError) as e:
            raise StorageError(operation, str(e), provider_code=_provider_code(e)) from e

    async def initiate(
        self,
        *,
        name: str,
        folder: str,
        content_type: str,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> InitiatedUpload:
        key = build_object_key(folder, name)
        response = await self._call(
            "initiate",
            "create_multipart_upload",
            Bucket=self.bucket,
            Key=key,
            ContentType=content_type,
            Metadata=clean_metadata(metadata),
        )
        upload_id = response.get("UploadId")
        if not upload_id:
            raise StorageError("initiate", "missing UploadId in response")

        logger.info(f"Initiated multipart upload key={key} upload_id={upload_id}")
        return InitiatedUpload(key=key, upload_id=upload_id)

    async def part_upload_url(self, key: str, upload_id: str, part_number: int, ttl: int) -> str:
        url: str = await self._call(
            "part_upload_url",
            "generate_presigned_url",
            ClientMethod="upload_part",
            Params={"Bucket": self.bucket, "Key": key, "UploadId": upload_id, "PartNumber": part_number},
            ExpiresIn=ttl,
        )
        return url

    async def complete(self, key: str, upload_id: str, ordered_parts: Sequence[CompletedPart]) -> None:
        parts = sorted(ordered_parts, key=lambda p: p.part_number)
        await self._call(
            "complete",
            "complete_multipart_upload",
            Bucket=self.bucket,
            Key=key,
            UploadId=upload_id,
            MultipartUpload={"Parts": [{"PartNumber": p.part_number, "ETag": p.receipt_tag} for p in parts]},
        )
        logger.info(f"Completed multipart upload key={key} upload_id={upload_id} parts={len(parts)}")

    async def abort(self, key: str, upload_id: str) -> None:
        await self._call("abort", "abort_multipart_upload", Bucket=self.bucket, Key=key, UploadId=upload_id)
        logger.info(f"Aborted multipart upload key={key} upload_id={upload_id}")

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def head_metadata(self, key: str) -> Optional[dict[str, str]]:
        try:
            response = await self._call("head_metadata", "head_object", Bucket=self.bucket, Key=key)
        except StorageError as e:
            if e.provider_code in {"404", "NoSuchKey", "NotFound"}:
                return None
            raise
        return dict(response.get("Metadata") or {})
