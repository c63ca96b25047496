"""S3 object store; boto3 calls run in worker threads."""

from __future__ import annotations

import asyncio
from typing import Any

import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from shared.errors import ErrorKind, GenerationError, classify_status
from shared.models import StoredObject
from shared.utils import config, setup_logging

from .base import ObjectStore

logger = setup_logging("s3-store")


def _classify_client_error(error: ClientError, action: str) -> GenerationError:
    status = error.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    message = error.response.get("Error", {}).get("Message", str(error))
    return classify_status(status, f"{action} failed: {message}", provider="s3", stage="upload")


class S3ObjectStore(ObjectStore):
    name = "s3"

    def __init__(
        self,
        bucket: str | None = None,
        region: str | None = None,
        cdn_base_url: str | None = None,
        client: Any = None,
        timeout_seconds: int = 30,
    ) -> None:
        self.bucket = bucket or config.get("s3_bucket")
        if not self.bucket:
            raise ValueError("S3 bucket not configured. Set S3_BUCKET environment variable.")
        self.region = region or config.get("aws_region", "us-east-1")
        self.cdn_base_url = (cdn_base_url or config.get("cdn_base_url") or "").rstrip("/")

        if client is None:
            aws_kwargs: dict[str, Any] = {}
            if config.get("aws_access_key_id"):
                aws_kwargs["aws_access_key_id"] = config.get("aws_access_key_id")
                aws_kwargs["aws_secret_access_key"] = config.get("aws_secret_access_key")
            session = boto3.session.Session()
            client = session.client(
                "s3",
                region_name=self.region,
                config=Config(connect_timeout=timeout_seconds, read_timeout=timeout_seconds, retries={"max_attempts": 3}),
                **aws_kwargs,
            )
        self.client = client

    def public_url(self, key: str) -> str:
        if self.cdn_base_url:
            return f"{self.cdn_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def upload(self, data: bytes, folder: str, filename: str, content_type: str) -> StoredObject:
        key = self.build_key(folder, filename)
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except ClientError as e:
            raise _classify_client_error(e, "upload") from e
        except BotoCoreError as e:
            raise GenerationError(f"S3 upload failed: {e}", ErrorKind.TEMPORARY, stage="upload", code="STORAGE_ERROR") from e

        logger.info(f"Uploaded {len(data)} bytes to s3://{self.bucket}/{key}")
        return StoredObject(key=key, url=self.public_url(key), size=len(data), content_type=content_type)

    async def download(self, key: str) -> bytes:
        try:
            response = await asyncio.to_thread(self.client.get_object, Bucket=self.bucket, Key=key)
            return await asyncio.to_thread(response["Body"].read)
        except ClientError as e:
            raise _classify_client_error(e, "download") from e

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.client.delete_object, Bucket=self.bucket, Key=key)
        except ClientError as e:
            raise _classify_client_error(e, "delete") from e

    async def exists(self, key: str) -> bool:
        try:
            await asyncio.to_thread(self.client.head_object, Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise _classify_client_error(e, "head") from e
