"""
Object store selection.

``create_object_store`` is the only place that knows which backend classes
exist. It is called once during application startup (and by the storage CLI
commands); everything else receives the resulting ``ObjectStore``.
"""

import logging

from app.config import StorageConfig
from app.core.errors import StorageConfigurationError

from .minio_service import MinIOObjectStore
from .object_store import ManagedObjectStore
from .s3_service import S3ObjectStore

logger = logging.getLogger("docvault.storage")

SUPPORTED_BACKENDS = ("minio", "s3")


def create_object_store(config: StorageConfig) -> ManagedObjectStore:
    """
    Build the object store described by ``config``.

    Raises:
        StorageConfigurationError: Unknown backend kind, missing bucket name or
            missing connection block for the chosen backend
    """
    backend = (config.backend or "").strip().lower()
    if backend not in SUPPORTED_BACKENDS:
        raise StorageConfigurationError(
            f"Unknown storage backend '{config.backend}'. "
            f"Expected one of: {', '.join(SUPPORTED_BACKENDS)}"
        )
    if not config.bucket:
        raise StorageConfigurationError(f"No bucket configured for storage backend '{backend}'")

    if backend == "minio":
        if config.minio is None:
            raise StorageConfigurationError("MinIO storage selected but no MinIO settings given")
        store = MinIOObjectStore(config.minio, config.bucket)
    else:
        if config.s3 is None:
            raise StorageConfigurationError("S3 storage selected but no S3 settings given")
        store = S3ObjectStore(config.s3, config.bucket)

    logger.info(f"Object storage backend: {backend} (bucket={config.bucket})")
    return store
