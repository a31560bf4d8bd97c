"""S3 service for APK release storage."""

import asyncio
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError

from antimat.config import get_settings

settings = get_settings()

APK_CONTENT_TYPE = "application/vnd.android.package-archive"
CURRENT_RELEASE_KEY = "apk/app-release.apk"
CURRENT_RELEASE_NAME = "app-release.apk"
UPLOAD_PREFIX = "apk/uploads/"


class StorageError(Exception):
    """Raised when the object store rejects an operation."""


class S3Service:
    """Service for storing uploaded installer artifacts in S3."""

    def __init__(self):
        """Initialize S3 client with credentials from settings."""
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

    @staticmethod
    def new_upload_key() -> str:
        """Temporary key for a fresh upload; promoted later."""
        return f"{UPLOAD_PREFIX}app-release-{uuid4().hex}.apk"

    async def generate_presigned_upload(self, file_key: str, expiration: int = 900) -> dict:
        """
        Generate presigned POST data for a direct upload from the admin panel.

        Returns:
            Dictionary with the form url and fields

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            return await asyncio.to_thread(
                self.s3_client.generate_presigned_post,
                self.bucket,
                file_key,
                Fields={"Content-Type": APK_CONTENT_TYPE},
                Conditions=[
                    {"Content-Type": APK_CONTENT_TYPE},
                    ["content-length-range", 1, settings.max_apk_size_bytes],
                ],
                ExpiresIn=expiration,
            )
        except ClientError as e:
            raise StorageError(f"Failed to generate presigned upload: {e}") from e

    async def generate_download_url(self, file_key: str, expiration: int = 300) -> str:
        """Short-lived GET URL for an artifact."""
        try:
            return await asyncio.to_thread(
                self.s3_client.generate_presigned_url,
                "get_object",
                Params={
                    "Bucket": self.bucket,
                    "Key": file_key,
                    "ResponseContentType": APK_CONTENT_TYPE,
                    "ResponseContentDisposition": f'attachment; filename="{CURRENT_RELEASE_NAME}"',
                },
                ExpiresIn=expiration,
            )
        except ClientError as e:
            raise StorageError(f"Failed to generate download URL: {e}") from e

    async def object_size(self, file_key: str) -> int | None:
        """
        Size of an object in bytes, or None if it does not exist.
        """
        try:
            head = await asyncio.to_thread(self.s3_client.head_object, Bucket=self.bucket, Key=file_key)
            return int(head["ContentLength"])
        except ClientError:
            return None

    async def check_file_exists(self, file_key: str) -> bool:
        return await self.object_size(file_key) is not None

    async def delete_file(self, file_key: str) -> None:
        """
        Delete an object.

        Raises:
            StorageError: If S3 operation fails
        """
        try:
            await asyncio.to_thread(self.s3_client.delete_object, Bucket=self.bucket, Key=file_key)
        except ClientError as e:
            raise StorageError(f"Failed to delete {file_key}: {e}") from e

    async def promote_release(self, upload_key: str) -> str:
        """
        Make an uploaded artifact the current release.

        Copies the upload over the fixed current-release key, then deletes the
        temporary upload. The copy is atomic on S3, so downloaders see either
        the previous release or the new one.

        Returns:
            The current-release key
        """
        try:
            await asyncio.to_thread(
                self.s3_client.copy_object,
                Bucket=self.bucket,
                Key=CURRENT_RELEASE_KEY,
                CopySource={"Bucket": self.bucket, "Key": upload_key},
                ContentType=APK_CONTENT_TYPE,
                MetadataDirective="REPLACE",
            )
        except ClientError as e:
            raise StorageError(f"Failed to publish release: {e}") from e
        await self.delete_file(upload_key)
        return CURRENT_RELEASE_KEY


# Singleton instance
s3_service = S3Service()
