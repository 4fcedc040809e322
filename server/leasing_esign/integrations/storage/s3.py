"""
S3 object storage service

Thin async wrapper over a boto3 S3 client. boto3 is blocking, so every call is
run on the default executor with asyncio.to_thread.
"""

import asyncio
import uuid
from typing import Any, Dict, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from leasing_esign.core.config import Settings
from leasing_esign.core.exceptions import ConfigurationError, NotFoundError, TransientIOError
from leasing_esign.core.logging import get_logger

logger = get_logger(__name__)

CONTENT_TYPE_EXTENSIONS = {
    "application/pdf": "pdf",
    "application/json": "json",
    "text/plain": "txt",
}


class ObjectStorageService:
    """Uploads, downloads and signs URLs for objects in one bucket."""

    def __init__(
        self,
        bucket_name: Optional[str],
        region_name: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        client: Any = None,
    ):
        self.bucket_name = bucket_name
        self.region_name = region_name
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "ObjectStorageService":
        return cls(
            bucket_name=settings.aws_s3_bucket,
            region_name=settings.aws_region,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
        )

    @property
    def client(self) -> Any:
        """boto3 client, created on first use."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                region_name=self.region_name,
                aws_access_key_id=self._access_key_id,
                aws_secret_access_key=self._secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=5,
                    read_timeout=30,
                    retries={"max_attempts": 3, "mode": "standard"},
                ),
            )
        return self._client

    def _require_bucket(self) -> str:
        if not self.bucket_name:
            raise ConfigurationError(
                "Object storage is not configured. Missing: aws_s3_bucket",
                error_code="storage_not_configured",
                provider="s3",
            )
        return self.bucket_name

    async def upload_file(
        self,
        content: bytes,
        content_type: str,
        folder_path: str,
        file_name: Optional[str] = None,
    ) -> Dict[str, str]:
        """
        Upload bytes under ``folder_path``.

        Args:
            content: Object body
            content_type: MIME type stored with the object
            folder_path: Key prefix without a trailing slash
            file_name: Final key segment; a uuid-based name is generated when omitted

        Returns:
            Dict with the object ``key`` and ``bucket``

        Raises:
            TransientIOError: If S3 rejects the upload or is unreachable
        """
        bucket = self._require_bucket()
        if not file_name:
            extension = CONTENT_TYPE_EXTENSIONS.get(content_type, "bin")
            file_name = f"{uuid.uuid4()}.{extension}"
        key = f"{folder_path.strip('/')}/{file_name}"

        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("storage.s3.upload_failed", bucket=bucket, key=key, error=str(e))
            raise TransientIOError(
                f"Failed to upload {key} to S3: {e}",
                error_code="s3_upload_failed",
                provider="s3",
                context={"key": key},
            ) from e

        logger.info("storage.s3.uploaded", bucket=bucket, key=key, size_bytes=len(content))
        return {"key": key, "bucket": bucket}

    async def get_bytes(self, key: str) -> bytes:
        """
        Download an object's body.

        Raises:
            NotFoundError: If the key does not exist
            TransientIOError: On any other S3 failure
        """
        bucket = self._require_bucket()

        def _read() -> bytes:
            response = self.client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()

        try:
            return await asyncio.to_thread(_read)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                raise NotFoundError(
                    f"Object {key} not found in bucket {bucket}",
                    error_code="object_not_found",
                    provider="s3",
                    context={"key": key},
                ) from e
            logger.error("storage.s3.download_failed", bucket=bucket, key=key, error=str(e))
            raise TransientIOError(
                f"Failed to download {key} from S3: {e}",
                error_code="s3_download_failed",
                provider="s3",
                context={"key": key},
            ) from e
        except BotoCoreError as e:
            logger.error("storage.s3.download_failed", bucket=bucket, key=key, error=str(e))
            raise TransientIOError(
                f"Failed to download {key} from S3: {e}",
                error_code="s3_download_failed",
                provider="s3",
                context={"key": key},
            ) from e

    async def generate_download_url(self, key: str, expires_in_seconds: int = 900) -> str:
        """Presigned GET URL for ``key``."""
        bucket = self._require_bucket()
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=expires_in_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("storage.s3.presign_failed", bucket=bucket, key=key, error=str(e))
            raise TransientIOError(
                f"Failed to generate download URL for {key}: {e}",
                error_code="s3_presign_failed",
                provider="s3",
                context={"key": key},
            ) from e
