# backend/app/core/database/__init__.py
"""
Database package for DocVault.

Provides SQLAlchemy models and the declarative base.
"""

from .base import Base
from .models import (
    Document,
    DocumentCategory,
    DocumentStatus,
    DocumentTag,
    IngestionJob,
    IngestionStatus,
    IngestionType,
    User,
    UserRole,
)

__all__ = [
    "Base",
    "Document",
    "DocumentCategory",
    "DocumentStatus",
    "DocumentTag",
    "IngestionJob",
    "IngestionStatus",
    "IngestionType",
    "User",
    "UserRole",
]
