"""
AWS S3 Storage Backend.

Implements the ``ObjectStore`` contract with boto3. Credentials are optional:
without an access key pair the default boto3 credential chain (environment,
shared config, IAM role) is used.
"""

import logging
from typing import List, Optional, Tuple

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from app.config import S3Config
from app.core.errors import ObjectNotFoundError, StorageError

from .object_store import DEFAULT_URL_TTL_SECONDS, UploadResult

logger = logging.getLogger("docvault.storage.s3")

MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


def _error_code(error: ClientError) -> str:
    return str(error.response.get("Error", {}).get("Code", ""))


class S3ObjectStore:
    """AWS S3 object store. The boto3 client is created on first use."""

    backend = "s3"

    def __init__(self, config: S3Config, bucket: str, client=None):
        self.region = config.region
        self.access_key_id = config.access_key_id
        self.secret_access_key = config.secret_access_key
        self.endpoint_url = config.endpoint_url
        self.bucket = bucket
        self._client = client

    @property
    def client(self):
        if self._client is None:
            kwargs = {"region_name": self.region}
            if self.endpoint_url:
                kwargs["endpoint_url"] = self.endpoint_url
            if self.access_key_id and self.secret_access_key:
                kwargs["aws_access_key_id"] = self.access_key_id
                kwargs["aws_secret_access_key"] = self.secret_access_key
            self._client = boto3.client("s3", **kwargs)
            logger.info(f"S3 client initialized (region={self.region}, bucket={self.bucket})")
        return self._client

    def put(self, data: bytes, key: str, content_type: str) -> UploadResult:
        try:
            response = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to upload s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to upload {key}: {e}") from e

        logger.info(f"Uploaded object s3://{self.bucket}/{key} ({len(data)} bytes)")
        etag = response.get("ETag")
        try:
            url = self.sign_url(key)
        except StorageError as e:
            logger.warning(f"Uploaded s3://{self.bucket}/{key} but could not sign a URL: {e.message}")
            url = ""
        return UploadResult(
            key=key,
            url=url,
            bucket=self.bucket,
            etag=etag.strip('"') if etag else None,
        )

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in MISSING_OBJECT_CODES:
                raise ObjectNotFoundError(f"Object not found: {key}") from e
            logger.error(f"Failed to download s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to download {key}: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to download s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to download {key}: {e}") from e

        body = response["Body"]
        try:
            return body.read()
        except BotoCoreError as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        finally:
            body.close()

    def delete(self, key: str) -> None:
        # S3 reports success for absent keys
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _error_code(e) in MISSING_OBJECT_CODES:
                return
            logger.error(f"Failed to delete s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to delete {key}: {e}") from e
        except BotoCoreError as e:
            logger.error(f"Failed to delete s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to delete {key}: {e}") from e
        logger.info(f"Deleted object s3://{self.bucket}/{key}")

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to stat {key}: {e}") from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to stat {key}: {e}") from e

    def sign_url(self, key: str, ttl_seconds: int = DEFAULT_URL_TTL_SECONDS) -> str:
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to sign URL for s3://{self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to sign URL for {key}: {e}") from e

    def ensure_bucket(self) -> bool:
        """
        Create the bucket if it doesn't exist.

        Returns:
            True if bucket was created, False if it already existed
        """
        try:
            self.client.head_bucket(Bucket=self.bucket)
            logger.debug(f"Bucket already exists: {self.bucket}")
            return False
        except ClientError as e:
            if _error_code(e) not in {"404", "NoSuchBucket", "NotFound"}:
                raise StorageError(f"Failed to check bucket {self.bucket}: {e}") from e

        try:
            if self.region and self.region != "us-east-1":
                self.client.create_bucket(
                    Bucket=self.bucket,
                    CreateBucketConfiguration={"LocationConstraint": self.region},
                )
            else:
                self.client.create_bucket(Bucket=self.bucket)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to create bucket {self.bucket}: {e}")
            raise StorageError(f"Failed to create bucket {self.bucket}: {e}") from e
        logger.info(f"Created bucket: {self.bucket}")
        return True

    def check_health(self) -> Tuple[bool, Optional[List[str]], Optional[str]]:
        """
        Check S3 connectivity.

        Returns:
            Tuple of (connected, buckets list, error message)
        """
        try:
            response = self.client.list_buckets()
            return True, [b["Name"] for b in response.get("Buckets", [])], None
        except (ClientError, BotoCoreError) as e:
            logger.error(f"S3 health check failed: {e}")
            return False, None, str(e)
