# backend/app/api/v1/routers/ingestion.py
"""
Ingestion API Router.

Create, trigger, inspect, update, cancel and delete ingestion jobs.
Creating, triggering, updating and cancelling need the admin or editor role;
deleting jobs and reading statistics are admin only.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from ....dependencies import (
    Caller,
    get_current_caller,
    get_database,
    get_ingestion_service,
    require_admin,
    require_editor,
)
from ....services.ingestion_service import IngestionService
from ..models import (
    JobCreateRequest,
    JobListResponse,
    JobResponse,
    JobStatisticsResponse,
    JobTriggerRequest,
    JobUpdateRequest,
)

logger = logging.getLogger("docvault.api.ingestion")

router = APIRouter(prefix="/ingestion", tags=["Ingestion"])


@router.post(
    "/jobs",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create ingestion job",
)
async def create_job(
    request: JobCreateRequest,
    caller: Caller = Depends(require_editor),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobResponse:
    async with database.get_session() as session:
        job = await service.create_job(
            session,
            job_name=request.job_name,
            job_type=request.type,
            triggered_by_id=caller.user_id,
            description=request.description,
            parameters=request.parameters,
            total_items=request.total_items,
            estimated_duration=request.estimated_duration,
            related_document_id=request.related_document_id,
        )
        return JobResponse.model_validate(job)


@router.post(
    "/trigger",
    response_model=JobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Trigger ingestion",
    description="Create an api_trigger job, start it and run the progress simulator in the background.",
)
async def trigger_ingestion(
    request: JobTriggerRequest,
    caller: Caller = Depends(require_editor),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobResponse:
    async with database.get_session() as session:
        job = await service.trigger(
            session,
            triggered_by_id=caller.user_id,
            job_name=request.job_name,
            document_ids=request.document_ids,
            options=request.options,
            description=request.description,
        )
        logger.info(f"User {caller.user_id} triggered ingestion job {job.id}")
        return JobResponse.model_validate(job)


@router.get("/jobs", response_model=JobListResponse, summary="List ingestion jobs")
async def list_jobs(
    job_status: Optional[str] = Query(None, alias="status", description="pending, processing, completed, failed, cancelled"),
    job_type: Optional[str] = Query(None, alias="type", description="document_upload, batch_import, api_trigger, scheduled"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("created_at"),
    sort_order: str = Query("desc", description="asc or desc"),
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobListResponse:
    async with database.get_session() as session:
        result = await service.list_jobs(
            session,
            status=job_status,
            job_type=job_type,
            page=page,
            limit=limit,
            sort_by=sort_by,
            sort_order=sort_order,
        )
        return JobListResponse(
            items=[JobResponse.model_validate(j) for j in result["items"]],
            total=result["total"],
            page=result["page"],
            limit=result["limit"],
            total_pages=result["total_pages"],
        )


@router.get("/jobs/my-jobs", response_model=List[JobResponse], summary="List my ingestion jobs")
async def my_jobs(
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> List[JobResponse]:
    async with database.get_session() as session:
        jobs = await service.get_user_jobs(session, caller.user_id)
        return [JobResponse.model_validate(j) for j in jobs]


@router.get(
    "/statistics",
    response_model=JobStatisticsResponse,
    summary="Ingestion statistics",
    description="Job counts, average duration and success rate. Admin only.",
)
async def job_statistics(
    caller: Caller = Depends(require_admin),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobStatisticsResponse:
    async with database.get_session() as session:
        return JobStatisticsResponse(**await service.get_statistics(session))


@router.get("/jobs/{job_id}", response_model=JobResponse, summary="Get ingestion job")
async def get_job(
    job_id: int,
    caller: Caller = Depends(get_current_caller),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobResponse:
    async with database.get_session() as session:
        return JobResponse.model_validate(await service.get_job(session, job_id))


@router.patch("/jobs/{job_id}", response_model=JobResponse, summary="Update ingestion job")
async def update_job(
    job_id: int,
    request: JobUpdateRequest,
    caller: Caller = Depends(require_editor),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobResponse:
    fields = request.model_dump(exclude_unset=True)
    target_status = fields.pop("status", None)
    async with database.get_session() as session:
        job = await service.transition_job(session, job_id, target_status, **fields)
        return JobResponse.model_validate(job)


@router.post("/jobs/{job_id}/cancel", response_model=JobResponse, summary="Cancel ingestion job")
async def cancel_job(
    job_id: int,
    caller: Caller = Depends(require_editor),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> JobResponse:
    async with database.get_session() as session:
        job = await service.cancel_job(session, job_id)
        logger.info(f"User {caller.user_id} cancelled ingestion job {job_id}")
        return JobResponse.model_validate(job)


@router.delete(
    "/jobs/{job_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete ingestion job",
    description="Only completed, failed or cancelled jobs can be deleted. Admin only.",
)
async def delete_job(
    job_id: int,
    caller: Caller = Depends(require_admin),
    database=Depends(get_database),
    service: IngestionService = Depends(get_ingestion_service),
) -> Response:
    async with database.get_session() as session:
        await service.delete_job(session, job_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
