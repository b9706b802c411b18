# backend/app/services/__init__.py
"""Domain services for DocVault."""

from .document_service import DocumentService
from .ingestion_service import IngestionService

__all__ = ["DocumentService", "IngestionService"]
