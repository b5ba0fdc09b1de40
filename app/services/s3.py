"""S3 service for chat attachments too large to embed in a message."""

import asyncio
import logging
from urllib.parse import unquote, urlparse
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError

from app.config import get_settings

logger = logging.getLogger(__name__)


class ObjectStorageError(Exception):
    """Raised when an object cannot be written to or removed from S3."""


class S3Service:
    """Stores attachment blobs in S3 and hands back their public URL."""

    def __init__(self):
        """Initialize S3 client with credentials from settings."""
        settings = get_settings()
        client_kwargs = {
            "aws_access_key_id": settings.aws_access_key_id,
            "aws_secret_access_key": settings.aws_secret_access_key,
            "region_name": settings.aws_s3_region,
        }
        # Support MinIO / LocalStack by pointing to a custom endpoint
        if settings.aws_s3_endpoint_url:
            client_kwargs["endpoint_url"] = settings.aws_s3_endpoint_url

        self.s3_client = boto3.client("s3", **client_kwargs)
        self.bucket = settings.aws_s3_bucket
        self.region = settings.aws_s3_region
        self.endpoint_url = settings.aws_s3_endpoint_url

    def url_for(self, key: str) -> str:
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def key_for(self, url: str) -> str:
        """Inverse of url_for."""
        path = unquote(urlparse(url).path).lstrip("/")
        if self.endpoint_url and path.startswith(f"{self.bucket}/"):
            path = path[len(self.bucket) + 1:]
        return path

    async def put(self, data: bytes, folder: str, filename: str, content_type: str) -> str:
        """
        Upload a blob under folder/<uuid>_<filename>.

        Args:
            data: Raw file bytes
            folder: Key prefix, e.g. projects/<id>/chat/images
            filename: Original filename (kept for readability of the key)
            content_type: MIME type stored on the object

        Returns:
            Public URL of the stored object

        Raises:
            ObjectStorageError: If the S3 operation fails
        """
        key = f"{folder}/{uuid4()}_{filename}"
        try:
            await asyncio.to_thread(
                self.s3_client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except ClientError as e:
            raise ObjectStorageError(f"Failed to upload {filename} to S3: {str(e)}") from e
        return self.url_for(key)

    async def delete(self, url: str) -> None:
        """
        Delete the object behind a URL returned by put().

        Raises:
            ObjectStorageError: If the S3 operation fails
        """
        try:
            await asyncio.to_thread(
                self.s3_client.delete_object,
                Bucket=self.bucket,
                Key=self.key_for(url),
            )
        except ClientError as e:
            raise ObjectStorageError(f"Failed to delete object from S3: {str(e)}") from e
