"""
Document Service for uploaded file management.

Orchestrates the two halves of a document: the bytes in object storage and the
metadata row in the database. Creation writes bytes first and removes them
again if the metadata write fails, so a failed upload never leaves a row
pointing at a missing object.

Documents are soft-deleted (``is_active=False``). Inactive documents are
hidden from listings, tag search and statistics; only an admin can still read
one by id.

Usage:
    service = DocumentService(object_store)

    document = await service.create_document(
        session,
        title="Quarterly report",
        file_bytes=data,
        original_name="q3.pdf",
        mime_type="application/pdf",
        uploader_id=user.id,
    )

    page = await service.list_documents(session, search="report", tags=["finance"])
    download = await service.download_document(session, document.id)
"""

import logging
import math
import os
import random
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..core.database.models import (
    Document,
    DocumentCategory,
    DocumentStatus,
    DocumentTag,
    User,
    UserRole,
)
from ..core.errors import ForbiddenError, InvalidInputError, NotFoundError
from ..core.storage.object_store import ObjectStore

logger = logging.getLogger("docvault.document_service")

# API sort names -> columns; unknown names fall back to created_at
SORTABLE_FIELDS = {
    "title": Document.title,
    "created_at": Document.created_at,
    "createdAt": Document.created_at,
    "updated_at": Document.updated_at,
    "updatedAt": Document.updated_at,
    "size": Document.size,
    "download_count": Document.download_count,
    "downloadCount": Document.download_count,
}

UPDATABLE_FIELDS = ("title", "description", "tags", "category", "status")

MIN_TITLE_LENGTH = 3


@dataclass(frozen=True)
class DocumentDownload:
    content: bytes
    filename: str
    mime_type: str


def normalize_tags(tags: Optional[Iterable[str]]) -> List[str]:
    """Strip whitespace, drop empties and duplicates, keep first-seen order."""
    seen: List[str] = []
    for tag in tags or []:
        tag = (tag or "").strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


def _validate_title(title: Optional[str]) -> str:
    if title is None or len(title.strip()) < MIN_TITLE_LENGTH:
        raise InvalidInputError(f"Title must be at least {MIN_TITLE_LENGTH} characters")
    return title.strip()


def _validate_choice(value: str, enum_cls, field: str) -> str:
    allowed = [member.value for member in enum_cls]
    if value not in allowed:
        raise InvalidInputError(f"Invalid {field} '{value}'. Allowed: {', '.join(allowed)}")
    return value


class DocumentService:
    """
    Service for managing Document records and their stored bytes.

    Args:
        object_store: Backend holding the file bytes
        max_upload_size: Largest accepted file in bytes (inclusive)
        allowed_mime_types: Accepted declared MIME types
    """

    def __init__(
        self,
        object_store: ObjectStore,
        max_upload_size: Optional[int] = None,
        allowed_mime_types: Optional[Iterable[str]] = None,
    ):
        self.object_store = object_store
        self.max_upload_size = max_upload_size if max_upload_size is not None else settings.max_upload_size
        self.allowed_mime_types = frozenset(allowed_mime_types or settings.allowed_mime_types)

    # =========================================================================
    # CREATE
    # =========================================================================

    @staticmethod
    def generate_storage_key(original_name: str) -> str:
        """
        Build a new storage key: ``documents/<epoch ms>-<random><ext>``.

        The extension is taken from the uploaded filename (may be empty).
        """
        ext = os.path.splitext(original_name or "")[1]
        return f"documents/{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"

    def validate_upload(self, mime_type: str, size: int) -> None:
        if mime_type not in self.allowed_mime_types:
            raise InvalidInputError(f"File type '{mime_type}' is not allowed")
        if size > self.max_upload_size:
            raise InvalidInputError(
                f"File size {size} exceeds the maximum of {self.max_upload_size} bytes"
            )

    async def create_document(
        self,
        session: AsyncSession,
        title: str,
        file_bytes: bytes,
        original_name: str,
        mime_type: str,
        uploader_id: int,
        description: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        size: Optional[int] = None,
    ) -> Document:
        """
        Store the file and record its metadata.

        Validation happens before anything is written. If any step after the
        object-store write fails, the stored object is deleted (best effort)
        and the original error is re-raised.

        Raises:
            InvalidInputError: Bad title, MIME type, size, category or status
            NotFoundError: Uploader does not exist
            StorageError: Object store write failed
        """
        size = len(file_bytes) if size is None else size
        title = _validate_title(title)
        self.validate_upload(mime_type, size)
        category = _validate_choice(category or DocumentCategory.GENERAL.value, DocumentCategory, "category")
        status = _validate_choice(status or DocumentStatus.DRAFT.value, DocumentStatus, "status")

        key = self.generate_storage_key(original_name)
        self.object_store.put(file_bytes, key, mime_type)

        try:
            uploader = await session.get(User, uploader_id)
            if uploader is None:
                raise NotFoundError(f"User {uploader_id} not found")

            document = Document(
                title=title,
                description=description,
                filename=key.rsplit("/", 1)[-1],
                original_name=original_name,
                mime_type=mime_type,
                size=size,
                storage_key=key,
                category=category,
                status=status,
                version=1,
                is_active=True,
                download_count=0,
                uploaded_by_id=uploader.id,
            )
            document.set_tags(normalize_tags(tags))
            session.add(document)
            await session.commit()
            await session.refresh(document)
        except Exception:
            await session.rollback()
            self._discard_object(key)
            raise

        logger.info(f"Created document {document.id} ({original_name}, {size} bytes) for user {uploader_id}")
        return document

    def _discard_object(self, key: str) -> None:
        try:
            self.object_store.delete(key)
            logger.info(f"Removed orphaned object {key} after failed document create")
        except Exception as cleanup_error:
            logger.error(f"Failed to clean up orphaned object {key}: {cleanup_error}")

    # =========================================================================
    # READ
    # =========================================================================

    async def list_documents(
        self,
        session: AsyncSession,
        search: Optional[str] = None,
        category: Optional[str] = None,
        status: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """
        Page through active documents.

        Returns:
            Dict with items, total, page, limit, total_pages
        """
        if page < 1 or limit < 1:
            raise InvalidInputError("page and limit must be at least 1")

        conditions = [Document.is_active.is_(True)]
        if search:
            conditions.append(
                or_(
                    Document.title.icontains(search, autoescape=True),
                    Document.description.icontains(search, autoescape=True),
                )
            )
        if category:
            conditions.append(Document.category == category)
        if status:
            conditions.append(Document.status == status)
        tag_list = normalize_tags(tags)
        if tag_list:
            conditions.append(Document.id.in_(self._tag_match(tag_list)))

        total = (
            await session.execute(select(func.count(Document.id)).where(*conditions))
        ).scalar() or 0

        column = SORTABLE_FIELDS.get(sort_by, Document.created_at)
        if (sort_order or "").lower() == "asc":
            ordering = (column.asc(), Document.id.asc())
        else:
            ordering = (column.desc(), Document.id.desc())

        result = await session.execute(
            select(Document)
            .where(*conditions)
            .order_by(*ordering)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return {
            "items": list(result.scalars().all()),
            "total": total,
            "page": page,
            "limit": limit,
            "total_pages": math.ceil(total / limit),
        }

    @staticmethod
    def _tag_match(tags: List[str]):
        return select(DocumentTag.document_id).where(DocumentTag.tag.in_(tags))

    async def get_document(
        self,
        session: AsyncSession,
        document_id: int,
        caller_id: Optional[int] = None,
        caller_role: Optional[str] = None,
    ) -> Document:
        """
        Get one document by id.

        Any caller may read any active document. Soft-deleted documents are
        only returned to admins.

        Raises:
            NotFoundError: Missing, or inactive and caller is not an admin
        """
        document = await session.get(Document, document_id)
        if document is None:
            raise NotFoundError(f"Document {document_id} not found")
        if not document.is_active and caller_role != UserRole.ADMIN.value:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    async def _get_active(self, session: AsyncSession, document_id: int) -> Document:
        document = await session.get(Document, document_id)
        if document is None or not document.is_active:
            raise NotFoundError(f"Document {document_id} not found")
        return document

    async def search_by_tags(self, session: AsyncSession, tags: Iterable[str]) -> List[Document]:
        """Active documents sharing at least one tag with ``tags``, newest first."""
        tag_list = normalize_tags(tags)
        if not tag_list:
            return []
        result = await session.execute(
            select(Document)
            .where(Document.is_active.is_(True), Document.id.in_(self._tag_match(tag_list)))
            .order_by(Document.created_at.desc(), Document.id.desc())
        )
        return list(result.scalars().all())

    async def get_user_documents(self, session: AsyncSession, user_id: int) -> List[Document]:
        result = await session.execute(
            select(Document)
            .where(Document.is_active.is_(True), Document.uploaded_by_id == user_id)
            .order_by(Document.created_at.desc(), Document.id.desc())
        )
        return list(result.scalars().all())

    async def get_statistics(self, session: AsyncSession) -> Dict[str, Any]:
        """
        Aggregate counts over active documents.

        ``by_category`` and ``by_status`` only contain values that occur.
        """
        active = Document.is_active.is_(True)

        totals = (
            await session.execute(
                select(
                    func.count(Document.id),
                    func.coalesce(func.sum(Document.size), 0),
                    func.coalesce(func.sum(Document.download_count), 0),
                ).where(active)
            )
        ).one()

        by_category = await session.execute(
            select(Document.category, func.count(Document.id)).where(active).group_by(Document.category)
        )
        by_status = await session.execute(
            select(Document.status, func.count(Document.id)).where(active).group_by(Document.status)
        )

        return {
            "total_documents": int(totals[0] or 0),
            "by_category": {row[0]: int(row[1]) for row in by_category.all()},
            "by_status": {row[0]: int(row[1]) for row in by_status.all()},
            "total_size": int(totals[1] or 0),
            "total_downloads": int(totals[2] or 0),
        }

    # =========================================================================
    # UPDATE / DELETE
    # =========================================================================

    @staticmethod
    def _check_can_modify(document: Document, caller_id: int, caller_role: str) -> None:
        if caller_role != UserRole.ADMIN.value and document.uploaded_by_id != caller_id:
            raise ForbiddenError("Only the owner or an admin can modify this document")

    async def update_document(
        self,
        session: AsyncSession,
        document_id: int,
        patch: Dict[str, Any],
        caller_id: int,
        caller_role: str,
    ) -> Document:
        """
        Apply a metadata patch.

        Supplying ``title`` or ``description`` bumps ``version`` by one.
        Size, MIME type and storage key are never changed.

        Raises:
            NotFoundError: Missing or inactive document
            ForbiddenError: Caller is neither owner nor admin
            InvalidInputError: Bad title, category or status
        """
        document = await self._get_active(session, document_id)
        self._check_can_modify(document, caller_id, caller_role)

        changes = {k: v for k, v in patch.items() if k in UPDATABLE_FIELDS}

        if "title" in changes:
            document.title = _validate_title(changes["title"])
        if "description" in changes:
            document.description = changes["description"]
        if changes.get("category") is not None:
            document.category = _validate_choice(changes["category"], DocumentCategory, "category")
        if changes.get("status") is not None:
            document.status = _validate_choice(changes["status"], DocumentStatus, "status")
        if changes.get("tags") is not None:
            document.set_tags(normalize_tags(changes["tags"]))

        if "title" in changes or "description" in changes:
            document.version = document.version + 1

        await session.commit()
        await session.refresh(document)

        logger.info(
            f"Updated document {document_id} fields={sorted(changes)} "
            f"version={document.version} by user {caller_id}"
        )
        return document

    async def remove_document(
        self,
        session: AsyncSession,
        document_id: int,
        caller_id: int,
        caller_role: str,
    ) -> None:
        """
        Soft-delete a document and delete its stored bytes.

        A storage failure is logged and does not stop the soft delete.
        Removing an already removed document raises NotFoundError.
        """
        document = await self._get_active(session, document_id)
        self._check_can_modify(document, caller_id, caller_role)

        try:
            self.object_store.delete(document.storage_key)
        except Exception as e:
            logger.error(f"Failed to delete stored object {document.storage_key} for document {document_id}: {e}")

        document.is_active = False
        await session.commit()
        logger.info(f"Soft-deleted document {document_id} by user {caller_id}")

    # =========================================================================
    # DOWNLOAD
    # =========================================================================

    async def download_document(
        self,
        session: AsyncSession,
        document_id: int,
        caller_id: Optional[int] = None,
        caller_role: Optional[str] = None,
    ) -> DocumentDownload:
        """
        Fetch the stored bytes and count the download.

        Raises:
            NotFoundError: Missing/inactive document, or object absent from storage
            StorageError: Object store read failed
        """
        document = await self._get_active(session, document_id)

        if not self.object_store.exists(document.storage_key):
            raise NotFoundError(f"File for document {document_id} not found in storage")
        content = self.object_store.get(document.storage_key)

        document.download_count = Document.download_count + 1
        await session.commit()
        await session.refresh(document)

        logger.debug(f"Document {document_id} downloaded by user {caller_id} (count={document.download_count})")
        return DocumentDownload(
            content=content,
            filename=document.original_name,
            mime_type=document.mime_type,
        )

    async def get_download_url(
        self,
        session: AsyncSession,
        document_id: int,
        ttl_seconds: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Time-limited URL for an active document. Object existence is not checked."""
        document = await self._get_active(session, document_id)
        ttl = ttl_seconds or settings.presigned_url_expiry
        return {
            "url": self.object_store.sign_url(document.storage_key, ttl),
            "expires_in": ttl,
        }
