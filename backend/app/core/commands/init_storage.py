#!/usr/bin/env python3
# backend/app/core/commands/init_storage.py
"""
Object storage initialization command for DocVault.

Creates the configured document bucket on the selected backend (MinIO or
AWS S3). Safe to run multiple times; an existing bucket is left untouched.

Usage:
    python -m app.core.commands.init_storage

    # Only check connectivity, don't create anything
    python -m app.core.commands.init_storage --check

Environment Variables:
    - STORAGE_BACKEND: minio (default) or s3
    - MINIO_ENDPOINT, MINIO_ACCESS_KEY, MINIO_SECRET_KEY, MINIO_BUCKET
    - S3_REGION, S3_ACCESS_KEY_ID, S3_SECRET_ACCESS_KEY, S3_BUCKET
"""

import argparse
import logging
import sys
from typing import List, Optional

from app.config import Settings, settings
from app.core.errors import DocVaultError
from app.core.storage.storage_factory import create_object_store

logger = logging.getLogger("docvault.commands.init_storage")


def init_storage(app_settings: Optional[Settings] = None, check_only: bool = False, store=None) -> int:
    """
    Ensure the document bucket exists.

    Args:
        app_settings: Settings to read the storage section from
        check_only: Only report connectivity and bucket presence
        store: Pre-built object store (skips the factory)

    Returns:
        0 on success, 1 on failure
    """
    cfg = app_settings or settings
    logger.info("Initializing object storage...")

    if store is None:
        try:
            store = create_object_store(cfg.storage_config())
        except DocVaultError as e:
            logger.error(f"Invalid storage configuration: {e.message}")
            return 1

    connected, buckets, error = store.check_health()
    if not connected:
        logger.error(f"Cannot connect to {store.backend} storage: {error}")
        return 1
    logger.info(f"Connected to {store.backend} storage ({len(buckets or [])} buckets visible)")

    if check_only:
        if store.bucket in (buckets or []):
            logger.info(f"Bucket {store.bucket} exists")
            return 0
        logger.error(f"Bucket {store.bucket} does not exist")
        return 1

    try:
        created = store.ensure_bucket()
    except DocVaultError as e:
        logger.error(f"Failed to create bucket {store.bucket}: {e.message}")
        return 1

    if created:
        logger.info(f"Created bucket: {store.bucket}")
    else:
        logger.info(f"Bucket {store.bucket} already exists")
    logger.info("Object storage initialized successfully")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the command."""
    parser = argparse.ArgumentParser(description="Initialize object storage for DocVault")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Only verify connectivity and that the bucket exists",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(levelname)s: %(message)s",
    )
    return init_storage(check_only=args.check)


if __name__ == "__main__":
    sys.exit(main())
