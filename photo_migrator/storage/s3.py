"""
AWS S3 storage backend.

Works with AWS and S3-compatible endpoints. boto3 clients are blocking,
so every call is made from a worker thread. botocore's own retries are
limited to a single attempt; retry policy belongs to the orchestrator.
"""

import asyncio
from typing import Any, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from photo_migrator.core.error_handler import MISSING_S3_CODES, classify_exception
from .base import ObjectInfo, StorageBackend, StorageUsage
from .factory import register_backend


@register_backend("s3")
class S3StorageBackend(StorageBackend):
    """
    S3 object storage using boto3.
    """

    name = "s3"

    def __init__(
        self,
        bucket: str,
        region: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        key_prefix: str = "",
        storage_class: str = "STANDARD",
        profile: Optional[str] = None,
        client: Optional[Any] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
    ):
        super().__init__(key_prefix=key_prefix)
        self.bucket = bucket
        self.region = region
        self.endpoint_url = endpoint_url
        self.storage_class = storage_class
        self.profile = profile
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._client = client

    @property
    def client(self) -> Any:
        """Lazily created boto3 S3 client."""
        if self._client is None:
            session = boto3.session.Session(
                profile_name=self.profile,
                region_name=self.region,
            )
            config = Config(
                retries={"max_attempts": 1, "mode": "standard"},
                connect_timeout=self.connect_timeout,
                read_timeout=self.read_timeout,
                signature_version="s3v4",
            )
            self._client = session.client(
                "s3",
                endpoint_url=self.endpoint_url,
                config=config,
            )
        return self._client

    async def _call(self, operation: str, ref: Optional[str], **params) -> Any:
        method = getattr(self.client, operation)
        try:
            return await asyncio.to_thread(method, **params)
        except (ClientError, BotoCoreError) as e:
            raise classify_exception(e, ref=ref, operation=operation) from e

    async def _put(self, ref: str, data: bytes, content_type: Optional[str] = None) -> None:
        params = {
            "Bucket": self.bucket,
            "Key": ref,
            "Body": data,
            "StorageClass": self.storage_class,
        }
        if content_type:
            params["ContentType"] = content_type
        await self._call("put_object", ref, **params)
        self.logger.debug(f"Uploaded s3://{self.bucket}/{ref} ({len(data)} bytes)")

    async def get_size(self, ref: str) -> Optional[int]:
        info = await self.describe_object(ref)
        return None if info is None else info.size

    async def describe_object(self, ref: str) -> Optional[ObjectInfo]:
        try:
            response = await asyncio.to_thread(
                self.client.head_object, Bucket=self.bucket, Key=ref
            )
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in MISSING_S3_CODES:
                return None
            raise classify_exception(e, ref=ref, operation="head_object") from e
        except BotoCoreError as e:
            raise classify_exception(e, ref=ref, operation="head_object") from e
        etag = str(response.get("ETag", "")).strip('"')
        # Multipart ETags are not content digests.
        md5 = etag if etag and "-" not in etag else None
        return ObjectInfo(size=int(response.get("ContentLength", 0)), md5=md5)

    async def download(self, ref: str) -> bytes:
        response = await self._call("get_object", ref, Bucket=self.bucket, Key=ref)
        body = response["Body"]
        try:
            return await asyncio.to_thread(body.read)
        except (ClientError, BotoCoreError) as e:
            raise classify_exception(e, ref=ref, operation="get_object") from e

    async def delete(self, ref: str) -> None:
        await self._call("delete_object", ref, Bucket=self.bucket, Key=ref)
        self.logger.debug(f"Deleted s3://{self.bucket}/{ref}")

    async def usage(self) -> StorageUsage:
        return await asyncio.to_thread(self._scan_usage)

    def _scan_usage(self) -> StorageUsage:
        usage = StorageUsage()
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.key_prefix):
                for obj in page.get("Contents", []):
                    usage.bytes_stored += int(obj.get("Size", 0))
                    usage.object_count += 1
        except (ClientError, BotoCoreError) as e:
            raise classify_exception(e, ref=self.key_prefix, operation="list_objects_v2") from e
        return usage

    async def test_connection(self) -> bool:
        try:
            await self._call("head_bucket", None, Bucket=self.bucket)
        except Exception as e:
            self.logger.error(f"S3 connection test failed for bucket {self.bucket}: {e}")
            return False
        return True

    def describe(self) -> str:
        return f"s3://{self.bucket}/{self.key_prefix}"
