"""
MinIO Storage Backend.

Implements the ``ObjectStore`` contract on top of the MinIO S3-compatible
API. One bucket per process, named in ``StorageConfig.bucket``.
"""

import logging
from datetime import timedelta
from io import BytesIO
from typing import List, Optional, Tuple

from minio import Minio
from minio.error import S3Error

from app.config import MinIOConfig
from app.core.errors import ObjectNotFoundError, StorageError

from .object_store import DEFAULT_URL_TTL_SECONDS, UploadResult

logger = logging.getLogger("docvault.storage.minio")

# S3 error codes that mean "this object is not there"
MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class MinIOObjectStore:
    """
    MinIO object store.

    The SDK client is created lazily on first use, so constructing the store
    never touches the network. A ready-made client can be injected for tests.
    """

    backend = "minio"

    def __init__(self, config: MinIOConfig, bucket: str, client: Optional[Minio] = None):
        self.endpoint = config.endpoint
        self.access_key = config.access_key
        self.secret_key = config.secret_key
        self.secure = config.secure
        self.region = config.region
        self.bucket = bucket
        self._client = client

    @property
    def client(self) -> Minio:
        """Get or create MinIO client (lazy initialization)."""
        if self._client is None:
            self._client = Minio(
                endpoint=self.endpoint,
                access_key=self.access_key,
                secret_key=self.secret_key,
                secure=self.secure,
                region=self.region,
            )
            logger.info(
                f"MinIO client initialized (endpoint={self.endpoint}, "
                f"secure={self.secure}, bucket={self.bucket})"
            )
        return self._client

    # =========================================================================
    # OBJECT OPERATIONS
    # =========================================================================

    def put(self, data: bytes, key: str, content_type: str) -> UploadResult:
        """
        Upload bytes under ``key``, overwriting any previous object.

        Returns:
            UploadResult with a signed retrieval URL and the object ETag
        """
        try:
            result = self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=BytesIO(data),
                length=len(data),
                content_type=content_type,
            )
        except S3Error as e:
            logger.error(f"Failed to upload {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to upload {key}: {e}") from e
        except Exception as e:
            logger.error(f"Failed to upload {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to upload {key}: {e}") from e

        logger.info(f"Uploaded object {self.bucket}/{key} ({len(data)} bytes)")
        etag = result.etag.strip('"') if getattr(result, "etag", None) else None
        try:
            url = self.sign_url(key)
        except StorageError as e:
            # Object is already stored; callers can sign again later
            logger.warning(f"Uploaded {self.bucket}/{key} but could not sign a URL: {e.message}")
            url = ""
        return UploadResult(key=key, url=url, bucket=self.bucket, etag=etag)

    def get(self, key: str) -> bytes:
        """Download the full object body."""
        response = None
        try:
            response = self.client.get_object(self.bucket, key)
            return response.read()
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                raise ObjectNotFoundError(f"Object not found: {key}") from e
            logger.error(f"Failed to download {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to download {key}: {e}") from e
        except Exception as e:
            logger.error(f"Failed to download {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to download {key}: {e}") from e
        finally:
            if response:
                response.close()
                response.release_conn()

    def delete(self, key: str) -> None:
        """Delete an object. Deleting a missing key succeeds."""
        try:
            self.client.remove_object(self.bucket, key)
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return  # Already gone
            logger.error(f"Failed to delete {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to delete {key}: {e}") from e
        except Exception as e:
            logger.error(f"Failed to delete {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to delete {key}: {e}") from e
        logger.info(f"Deleted object {self.bucket}/{key}")

    def exists(self, key: str) -> bool:
        """Check if an object exists."""
        try:
            self.client.stat_object(self.bucket, key)
            return True
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return False
            raise StorageError(f"Failed to stat {key}: {e}") from e
        except Exception as e:
            raise StorageError(f"Failed to stat {key}: {e}") from e

    def sign_url(self, key: str, ttl_seconds: int = DEFAULT_URL_TTL_SECONDS) -> str:
        """Generate a presigned GET URL valid for ``ttl_seconds``."""
        try:
            url = self.client.presigned_get_object(
                bucket_name=self.bucket,
                object_name=key,
                expires=timedelta(seconds=ttl_seconds),
            )
        except Exception as e:
            logger.error(f"Failed to sign URL for {self.bucket}/{key}: {e}")
            raise StorageError(f"Failed to sign URL for {key}: {e}") from e
        logger.debug(f"Generated presigned GET URL for {self.bucket}/{key}")
        return url

    # =========================================================================
    # BUCKET OPERATIONS
    # =========================================================================

    def ensure_bucket(self) -> bool:
        """
        Create the bucket if it doesn't exist.

        Returns:
            True if bucket was created, False if it already existed
        """
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"Created bucket: {self.bucket}")
                return True
            logger.debug(f"Bucket already exists: {self.bucket}")
            return False
        except S3Error as e:
            logger.error(f"Failed to create bucket {self.bucket}: {e}")
            raise StorageError(f"Failed to create bucket {self.bucket}: {e}") from e

    def check_health(self) -> Tuple[bool, Optional[List[str]], Optional[str]]:
        """
        Check MinIO connection health.

        Returns:
            Tuple of (connected, buckets list, error message)
        """
        try:
            buckets = self.client.list_buckets()
            return True, [b.name for b in buckets], None
        except Exception as e:
            logger.error(f"MinIO health check failed: {e}")
            return False, None, str(e)
