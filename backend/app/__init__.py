# backend/app/__init__.py
"""DocVault - Document storage and ingestion tracking API."""

__version__ = "1.0.0"
__title__ = "DocVault API"
__description__ = "Store documents in MinIO or S3 and track the jobs that ingest them"
