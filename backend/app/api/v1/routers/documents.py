# backend/app/api/v1/routers/documents.py
"""
Documents API Router.

Upload, list, read, update, soft-delete and download documents. Domain errors
raised by DocumentService are turned into HTTP responses by the application's
exception handlers.
"""

import logging
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status

from ....dependencies import (
    Caller,
    get_current_caller,
    get_database,
    get_document_service,
    require_admin,
)
from ....services.document_service import DocumentService
from ..models import (
    DocumentListResponse,
    DocumentResponse,
    DocumentStatisticsResponse,
    DocumentUpdateRequest,
    DownloadUrlResponse,
)

logger = logging.getLogger("docvault.api.documents")

router = APIRouter(prefix="/documents", tags=["Documents"])


def split_tags(raw: Optional[str]) -> List[str]:
    """Parse a comma-separated tag string; blanks are dropped."""
    if not raw:
        return []
    return [tag.strip() for tag in raw.split(",") if tag.strip()]


def content_disposition(filename: str) -> str:
    """
    Build an attachment header that survives non-ASCII filenames.

    Plain ASCII names are sent as-is; anything else gets an ASCII fallback
    plus an RFC 5987 ``filename*`` parameter.
    """
    quoted = quote(filename, safe="")
    if quoted == filename:
        return f'attachment; filename="{filename}"'
    fallback = "".join(
        "_" if ch in '"\\' else ch for ch in filename if ch.isascii() and ch.isprintable()
    ).strip() or "download"
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quoted}"


@router.post(
    "/upload",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload document",
    description="Store a file and create its metadata record.",
)
async def upload_document(
    file: UploadFile = File(...),
    title: str = Form(...),
    description: Optional[str] = Form(None),
    tags: Optional[str] = Form(None, description="Comma-separated tags"),
    category: Optional[str] = Form(None),
    doc_status: Optional[str] = Form(None, alias="status"),
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    mime_type = file.content_type or "application/octet-stream"
    if file.size is not None:
        # Reject on the declared part size before buffering the body
        service.validate_upload(mime_type, file.size)
    content = await file.read()
    async with database.get_session() as session:
        document = await service.create_document(
            session,
            title=title,
            file_bytes=content,
            original_name=file.filename or "upload",
            mime_type=mime_type,
            uploader_id=caller.user_id,
            description=description,
            tags=split_tags(tags),
            category=category,
            status=doc_status,
            size=len(content),
        )
        return DocumentResponse.model_validate(document)


@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List documents",
    description="Page through active documents with optional search and filters.",
)
async def list_documents(
    search: Optional[str] = Query(None, description="Case-insensitive match on title or description"),
    category: Optional[str] = Query(None),
    doc_status: Optional[str] = Query(None, alias="status"),
    tags: Optional[str] = Query(None, description="Comma-separated; any overlap matches"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at", description="title, created_at, updated_at, size, download_count"),
    sort_order: str = Query("desc", description="asc or desc"),
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> DocumentListResponse:
    async with database.get_session() as session:
        result = await service.list_documents(
            session,
            search=search,
            category=category,
            status=doc_status,
            tags=split_tags(tags),
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return DocumentListResponse(
            items=[DocumentResponse.model_validate(d) for d in result["items"]],
            total=result["total"],
            page=result["page"],
            limit=result["limit"],
            total_pages=result["total_pages"],
        )


@router.get("/my-documents", response_model=List[DocumentResponse], summary="List my documents")
async def my_documents(
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentResponse]:
    async with database.get_session() as session:
        documents = await service.get_user_documents(session, caller.user_id)
        return [DocumentResponse.model_validate(d) for d in documents]


@router.get(
    "/statistics",
    response_model=DocumentStatisticsResponse,
    summary="Document statistics",
    description="Counts over active documents. Admin only.",
)
async def document_statistics(
    caller: Caller = Depends(require_admin),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> DocumentStatisticsResponse:
    async with database.get_session() as session:
        return DocumentStatisticsResponse(**await service.get_statistics(session))


@router.get("/search/tags", response_model=List[DocumentResponse], summary="Search by tags")
async def search_by_tags(
    tags: str = Query("", description="Comma-separated tags"),
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> List[DocumentResponse]:
    async with database.get_session() as session:
        documents = await service.search_by_tags(session, split_tags(tags))
        return [DocumentResponse.model_validate(d) for d in documents]


@router.get("/{document_id}", response_model=DocumentResponse, summary="Get document")
async def get_document(
    document_id: int,
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    async with database.get_session() as session:
        document = await service.get_document(session, document_id, caller.user_id, caller.role)
        return DocumentResponse.model_validate(document)


@router.get("/{document_id}/download", summary="Download document")
async def download_document(
    document_id: int,
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> Response:
    async with database.get_session() as session:
        download = await service.download_document(session, document_id, caller.user_id, caller.role)
    return Response(
        content=download.content,
        media_type=download.mime_type,
        headers={"Content-Disposition": content_disposition(download.filename)},
    )


@router.get("/{document_id}/url", response_model=DownloadUrlResponse, summary="Get signed download URL")
async def get_download_url(
    document_id: int,
    expires_in: Optional[int] = Query(None, ge=1, le=7 * 24 * 3600, description="URL lifetime in seconds"),
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> DownloadUrlResponse:
    async with database.get_session() as session:
        return DownloadUrlResponse(**await service.get_download_url(session, document_id, expires_in))


@router.patch("/{document_id}", response_model=DocumentResponse, summary="Update document metadata")
async def update_document(
    document_id: int,
    request: DocumentUpdateRequest,
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> DocumentResponse:
    async with database.get_session() as session:
        document = await service.update_document(
            session,
            document_id,
            request.model_dump(exclude_unset=True),
            caller.user_id,
            caller.role,
        )
        return DocumentResponse.model_validate(document)


@router.delete(
    "/{document_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete document",
    description="Soft-delete the document and remove its stored bytes.",
)
async def delete_document(
    document_id: int,
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: DocumentService = Depends(get_document_service),
) -> Response:
    async with database.get_session() as session:
        await service.remove_document(session, document_id, caller.user_id, caller.role)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
