# backend/app/core/database/models.py
"""
SQLAlchemy ORM models for DocVault persistence.

Models:
    - User: Uploader / job trigger identity (authentication lives elsewhere)
    - Document: Uploaded file metadata; bytes live in object storage
    - DocumentTag: One row per tag attached to a document
    - IngestionJob: Tracked unit of asynchronous ingestion work

Enumerations are stored as plain strings so the schema is portable between
PostgreSQL and SQLite.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.utils.numbers import round_half_up

from .base import Base


class UserRole(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    USER = "user"
    VIEWER = "viewer"


class DocumentCategory(str, Enum):
    GENERAL = "general"
    TECHNICAL = "technical"
    LEGAL = "legal"
    FINANCIAL = "financial"
    MARKETING = "marketing"
    RESEARCH = "research"


class DocumentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class IngestionStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class IngestionType(str, Enum):
    DOCUMENT_UPLOAD = "document_upload"
    BATCH_IMPORT = "batch_import"
    API_TRIGGER = "api_trigger"
    SCHEDULED = "scheduled"


ACTIVE_JOB_STATUSES = (IngestionStatus.PENDING.value, IngestionStatus.PROCESSING.value)
TERMINAL_JOB_STATUSES = (
    IngestionStatus.COMPLETED.value,
    IngestionStatus.FAILED.value,
    IngestionStatus.CANCELLED.value,
)


class User(Base):
    """
    User model.

    Only identity fields are kept here; credentials and role decisions are
    handled by the identity provider that issues access tokens.

    Attributes:
        id: Integer primary key (also the JWT ``sub`` claim)
        email: Unique email address
        username: Unique username
        role: admin, editor, user or viewer
        is_active: Whether the account can act
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    username = Column(String(100), nullable=False, unique=True, index=True)
    full_name = Column(String(255), nullable=True)
    role = Column(String(50), nullable=False, default=UserRole.USER.value, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username}, role={self.role})>"


class Document(Base):
    """
    Document model tracking one uploaded file.

    The file bytes live in object storage under ``storage_key``; this row is
    the metadata record. Documents are never hard-deleted: ``is_active=False``
    marks a soft delete and hides the row from every listing.

    Attributes:
        id: Integer primary key
        title: Display title (at least 3 characters)
        description: Optional free text
        filename: Last path segment of the storage key
        original_name: Filename supplied by the uploader
        mime_type: Declared MIME type (fixed at creation)
        size: Size in bytes (fixed at creation)
        storage_key: Unique object key, ``documents/<ms>-<random><ext>``
        category: general, technical, legal, financial, marketing, research
        status: draft, published, archived
        version: Starts at 1, +1 whenever title or description changes
        is_active: False once soft-deleted
        download_count: Number of successful downloads
        uploaded_by_id: Owner user id
    """

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)

    # File identity
    filename = Column(String(500), nullable=False)
    original_name = Column(String(500), nullable=False)
    mime_type = Column(String(255), nullable=False)
    size = Column(BigInteger, nullable=False)
    storage_key = Column(String(1024), nullable=False, unique=True)

    # Classification
    category = Column(String(50), nullable=False, default=DocumentCategory.GENERAL.value, index=True)
    status = Column(String(50), nullable=False, default=DocumentStatus.DRAFT.value, index=True)

    # Lifecycle
    version = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    download_count = Column(Integer, nullable=False, default=0)

    uploaded_by_id = Column(
        Integer, ForeignKey("users.id"), nullable=False, index=True
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    uploaded_by = relationship("User", lazy="selectin")
    tag_links = relationship(
        "DocumentTag",
        back_populates="document",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("ix_documents_active_created", "is_active", "created_at"),
    )

    @property
    def tags(self) -> List[str]:
        return sorted(link.tag for link in self.tag_links)

    def set_tags(self, tags) -> None:
        """Replace the tag set. Duplicates and blank entries are dropped."""
        wanted = {t.strip() for t in (tags or []) if t and t.strip()}
        current = {link.tag: link for link in self.tag_links}
        self.tag_links = [current.get(tag) or DocumentTag(tag=tag) for tag in sorted(wanted)]

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, title={self.title!r}, version={self.version})>"


class DocumentTag(Base):
    """Single tag attached to a document; used for tag-overlap queries."""

    __tablename__ = "document_tags"

    id = Column(Integer, primary_key=True, autoincrement=True)
    document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False, index=True
    )
    tag = Column(String(100), nullable=False, index=True)

    document = relationship("Document", back_populates="tag_links")

    __table_args__ = (
        UniqueConstraint("document_id", "tag", name="uq_document_tags_document_tag"),
    )


class IngestionJob(Base):
    """
    IngestionJob model representing one unit of asynchronous work.

    Status Transitions:
        pending → processing → completed
        pending → processing → failed
        pending | processing → cancelled

    Timestamps:
        started_at is stamped once, on the first move into processing.
        completed_at and actual_duration are stamped once, on the first move
        into a terminal state; actual_duration needs started_at.

    ``progress`` is derived from the item counters on every read and is
    never stored.
    """

    __tablename__ = "ingestion_jobs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_name = Column(String(255), nullable=False)
    type = Column(String(50), nullable=False, index=True)
    status = Column(String(50), nullable=False, default=IngestionStatus.PENDING.value, index=True)
    description = Column(Text, nullable=True)

    parameters = Column(JSON, nullable=True)
    result = Column(JSON, nullable=True)
    error_message = Column(Text, nullable=True)

    # Item counters
    total_items = Column(Integer, nullable=True)
    processed_items = Column(Integer, nullable=False, default=0)
    successful_items = Column(Integer, nullable=False, default=0)
    failed_items = Column(Integer, nullable=False, default=0)

    # Timing (seconds)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    estimated_duration = Column(Integer, nullable=True)
    actual_duration = Column(Integer, nullable=True)

    triggered_by_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    related_document_id = Column(
        Integer, ForeignKey("documents.id", ondelete="SET NULL"), nullable=True
    )

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    triggered_by = relationship("User", lazy="selectin")

    __table_args__ = (
        Index("ix_ingestion_jobs_type_status", "type", "status"),
    )

    @property
    def progress(self) -> int:
        if self.total_items and self.total_items > 0:
            return round_half_up((self.processed_items or 0) / self.total_items * 100)
        return 100 if self.status == IngestionStatus.COMPLETED.value else 0

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_JOB_STATUSES

    def __repr__(self) -> str:
        return f"<IngestionJob(id={self.id}, type={self.type}, status={self.status})>"
