"""
Request and response schemas for API v1.

Response models read straight from ORM rows (``from_attributes``); derived
values such as ``progress`` and ``tags`` are properties on the models.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


# ============================================================================
# SHARED
# ============================================================================


class ErrorResponse(BaseModel):
    """
    Standard error response model for API errors.

    Attributes:
        error: Error category or type
        detail: Detailed error message
        timestamp: When the error occurred
    """
    error: str = Field(description="Error category or type")
    detail: Optional[str] = Field(default=None, description="Detailed error message")
    timestamp: datetime = Field(default_factory=datetime.now, description="Timestamp when error occurred")


class UserSummary(BaseModel):
    id: int
    username: str
    email: str
    role: str

    class Config:
        from_attributes = True


# ============================================================================
# DOCUMENTS
# ============================================================================


class DocumentResponse(BaseModel):
    """Document metadata response model."""
    id: int = Field(..., description="Document ID")
    title: str = Field(..., description="Display title")
    description: Optional[str] = Field(None, description="Free-text description")
    filename: str = Field(..., description="Stored object name")
    original_name: str = Field(..., description="Filename supplied at upload")
    mime_type: str = Field(..., description="Declared MIME type")
    size: int = Field(..., description="Size in bytes")
    storage_key: str = Field(..., description="Object storage key")
    tags: List[str] = Field(default_factory=list, description="Tags")
    category: str = Field(..., description="general, technical, legal, financial, marketing, research")
    status: str = Field(..., description="draft, published, archived")
    version: int = Field(..., description="Metadata version, +1 per title/description change")
    is_active: bool = Field(..., description="False once soft-deleted")
    download_count: int = Field(..., description="Successful downloads")
    uploaded_by_id: int = Field(..., description="Uploader user ID")
    uploaded_by: Optional[UserSummary] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class DocumentListResponse(BaseModel):
    items: List[DocumentResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class DocumentUpdateRequest(BaseModel):
    """Metadata patch. Only supplied fields are applied."""
    title: Optional[str] = Field(None, min_length=3, max_length=500)
    description: Optional[str] = None
    tags: Optional[List[str]] = None
    category: Optional[str] = None
    status: Optional[str] = None


class DocumentStatisticsResponse(BaseModel):
    total_documents: int
    by_category: Dict[str, int]
    by_status: Dict[str, int]
    total_size: int
    total_downloads: int


class DownloadUrlResponse(BaseModel):
    url: str
    expires_in: int = Field(..., description="URL lifetime in seconds")


# ============================================================================
# INGESTION
# ============================================================================


class JobCreateRequest(BaseModel):
    job_name: str = Field(..., min_length=3, max_length=255)
    type: str = Field(..., description="document_upload, batch_import, api_trigger, scheduled")
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    total_items: Optional[int] = Field(None, ge=0)
    estimated_duration: Optional[int] = Field(None, ge=0, description="Estimated duration in seconds")
    related_document_id: Optional[int] = None


class JobTriggerRequest(BaseModel):
    job_name: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = None
    document_ids: Optional[List[int]] = None
    options: Optional[Dict[str, Any]] = None


class JobUpdateRequest(BaseModel):
    """Job patch. ``status`` goes through the job state machine."""
    job_name: Optional[str] = Field(None, min_length=3, max_length=255)
    status: Optional[str] = None
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    total_items: Optional[int] = Field(None, ge=0)
    processed_items: Optional[int] = Field(None, ge=0)
    successful_items: Optional[int] = Field(None, ge=0)
    failed_items: Optional[int] = Field(None, ge=0)


class JobResponse(BaseModel):
    """Ingestion job response model."""
    id: int = Field(..., description="Job ID")
    job_name: str
    type: str = Field(..., description="document_upload, batch_import, api_trigger, scheduled")
    status: str = Field(..., description="pending, processing, completed, failed, cancelled")
    description: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None
    result: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    total_items: Optional[int] = None
    processed_items: int = 0
    successful_items: int = 0
    failed_items: int = 0
    progress: int = Field(..., description="Percent complete, derived from the item counters")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_duration: Optional[int] = Field(None, description="Seconds")
    actual_duration: Optional[int] = Field(None, description="Seconds")
    triggered_by_id: int
    related_document_id: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class JobListResponse(BaseModel):
    items: List[JobResponse]
    total: int
    page: int
    limit: int
    total_pages: int


class JobStatisticsResponse(BaseModel):
    total_jobs: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]
    average_duration: int = Field(..., description="Mean actual duration in seconds")
    success_rate: int = Field(..., description="Completed jobs as a percentage of all jobs")


# ============================================================================
# SYSTEM
# ============================================================================


class ComponentHealth(BaseModel):
    status: str
    detail: Dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    version: str
    timestamp: datetime = Field(default_factory=datetime.now)
    components: Dict[str, ComponentHealth]
