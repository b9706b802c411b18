"""
Ingestion Service for background job tracking.

Owns the IngestionJob state machine and the in-process progress simulator
that stands in for a real ingestion worker.

Status transitions:
    pending → processing → completed | failed | cancelled
    pending → completed | failed | cancelled

    Terminal statuses (completed, failed, cancelled) never change again.

Timestamps:
    started_at is stamped on the first move into processing. completed_at and
    actual_duration are stamped on the first move into a terminal status and
    are never overwritten.

Simulator:
    ``trigger`` starts one asyncio task per job. Each tick sleeps, re-reads the
    job in a fresh session and writes the item counters. A job that has been
    deleted, or that is no longer ``processing`` (e.g. cancelled), stops the
    task without further writes.

Usage:
    service = IngestionService(database.get_session)

    job = await service.trigger(session, triggered_by_id=user.id, job_name="Nightly import",
                                document_ids=[1, 2, 3])
    await service.cancel_job(session, job.id)
"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..core.database.models import (
    ACTIVE_JOB_STATUSES,
    TERMINAL_JOB_STATUSES,
    Document,
    IngestionJob,
    IngestionStatus,
    IngestionType,
    User,
)
from ..core.errors import InvalidInputError, InvalidStateError, NotFoundError
from ..utils.numbers import round_half_up

logger = logging.getLogger("docvault.ingestion_service")

CANCELLED_MESSAGE = "Job cancelled by user"
COMPLETED_MESSAGE = "Ingestion completed successfully"

MIN_JOB_NAME_LENGTH = 3

SORTABLE_FIELDS = {
    "job_name": IngestionJob.job_name,
    "jobName": IngestionJob.job_name,
    "status": IngestionJob.status,
    "type": IngestionJob.type,
    "created_at": IngestionJob.created_at,
    "createdAt": IngestionJob.created_at,
    "updated_at": IngestionJob.updated_at,
    "updatedAt": IngestionJob.updated_at,
    "started_at": IngestionJob.started_at,
    "startedAt": IngestionJob.started_at,
    "completed_at": IngestionJob.completed_at,
    "completedAt": IngestionJob.completed_at,
}

# Fields transition_job may set alongside (or instead of) a status change
MUTABLE_FIELDS = (
    "job_name",
    "description",
    "parameters",
    "result",
    "error_message",
    "total_items",
    "processed_items",
    "successful_items",
    "failed_items",
    "estimated_duration",
)
COUNTER_FIELDS = ("total_items", "processed_items", "successful_items", "failed_items", "estimated_duration")


def _validate_job_name(job_name: Optional[str]) -> str:
    if job_name is None or len(job_name.strip()) < MIN_JOB_NAME_LENGTH:
        raise InvalidInputError(f"Job name must be at least {MIN_JOB_NAME_LENGTH} characters")
    return job_name.strip()


def _validate_enum(value: str, enum_cls, field: str) -> str:
    allowed = [member.value for member in enum_cls]
    if value not in allowed:
        raise InvalidInputError(f"Invalid {field} '{value}'. Allowed: {', '.join(allowed)}")
    return value


class IngestionService:
    """
    Service for managing IngestionJob records and their simulators.

    Args:
        session_factory: Callable returning an async context manager that
            yields an ``AsyncSession`` (``DatabaseService.get_session``).
            Simulator tasks open their own sessions through it.
        start_delay: Seconds between trigger and the first tick
        tick_interval: Seconds between item ticks
        seconds_per_item: Estimated duration per document for triggered jobs
    """

    def __init__(
        self,
        session_factory: Callable,
        start_delay: Optional[float] = None,
        tick_interval: Optional[float] = None,
        seconds_per_item: Optional[int] = None,
    ):
        self.session_factory = session_factory
        self.start_delay = settings.ingestion_start_delay_seconds if start_delay is None else start_delay
        self.tick_interval = settings.ingestion_tick_interval_seconds if tick_interval is None else tick_interval
        self.seconds_per_item = seconds_per_item or settings.ingestion_seconds_per_item
        self._tasks: Dict[int, asyncio.Task] = {}

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create_job(
        self,
        session: AsyncSession,
        job_name: str,
        job_type: str,
        triggered_by_id: int,
        description: Optional[str] = None,
        parameters: Optional[Dict[str, Any]] = None,
        total_items: Optional[int] = None,
        estimated_duration: Optional[int] = None,
        related_document_id: Optional[int] = None,
    ) -> IngestionJob:
        """
        Create a pending job.

        Raises:
            InvalidInputError: Bad name, type or negative counters
            NotFoundError: Triggering user or related document does not exist
        """
        job_name = _validate_job_name(job_name)
        job_type = _validate_enum(job_type, IngestionType, "type")
        for field, value in (("total_items", total_items), ("estimated_duration", estimated_duration)):
            if value is not None and value < 0:
                raise InvalidInputError(f"{field} must not be negative")

        if await session.get(User, triggered_by_id) is None:
            raise NotFoundError(f"User {triggered_by_id} not found")
        if related_document_id is not None and await session.get(Document, related_document_id) is None:
            raise NotFoundError(f"Document {related_document_id} not found")

        job = IngestionJob(
            job_name=job_name,
            type=job_type,
            status=IngestionStatus.PENDING.value,
            description=description,
            parameters=parameters,
            total_items=total_items,
            processed_items=0,
            successful_items=0,
            failed_items=0,
            estimated_duration=estimated_duration,
            triggered_by_id=triggered_by_id,
            related_document_id=related_document_id,
        )
        session.add(job)
        await session.commit()
        await session.refresh(job)

        logger.info(f"Created ingestion job {job.id} ({job_type}: {job_name}) for user {triggered_by_id}")
        return job

    async def get_job(self, session: AsyncSession, job_id: int) -> IngestionJob:
        job = await session.get(IngestionJob, job_id)
        if job is None:
            raise NotFoundError(f"Ingestion job {job_id} not found")
        return job

    async def list_jobs(
        self,
        session: AsyncSession,
        status: Optional[str] = None,
        job_type: Optional[str] = None,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: str = "desc",
    ) -> Dict[str, Any]:
        """
        Page through jobs.

        Returns:
            Dict with items, total, page, limit, total_pages
        """
        if page < 1 or limit < 1:
            raise InvalidInputError("page and limit must be at least 1")

        conditions = []
        if status:
            conditions.append(IngestionJob.status == status)
        if job_type:
            conditions.append(IngestionJob.type == job_type)

        total = (
            await session.execute(select(func.count(IngestionJob.id)).where(*conditions))
        ).scalar() or 0

        column = SORTABLE_FIELDS.get(sort_by, IngestionJob.created_at)
        if (sort_order or "").lower() == "asc":
            ordering = (column.asc(), IngestionJob.id.asc())
        else:
            ordering = (column.desc(), IngestionJob.id.desc())

        result = await session.execute(
            select(IngestionJob)
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

    async def get_user_jobs(self, session: AsyncSession, user_id: int) -> List[IngestionJob]:
        result = await session.execute(
            select(IngestionJob)
            .where(IngestionJob.triggered_by_id == user_id)
            .order_by(IngestionJob.created_at.desc(), IngestionJob.id.desc())
        )
        return list(result.scalars().all())

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    async def transition_job(
        self,
        session: AsyncSession,
        job_id: int,
        status: Optional[str] = None,
        **fields: Any,
    ) -> IngestionJob:
        """
        Update a job, optionally moving it to ``status``.

        This is the single entry point for every job mutation, including the
        simulator's progress writes. Repeating the current status is allowed
        and leaves the timestamps untouched.

        Raises:
            NotFoundError: Job does not exist
            InvalidInputError: Unknown status or field, bad value
            InvalidStateError: Leaving a terminal status, or processing → pending
        """
        unknown = set(fields) - set(MUTABLE_FIELDS)
        if unknown:
            raise InvalidInputError(f"Unknown job fields: {', '.join(sorted(unknown))}")

        job = await self.get_job(session, job_id)
        old_status = job.status

        if status is not None:
            status = _validate_enum(status, IngestionStatus, "status")
            if status != old_status:
                if old_status in TERMINAL_JOB_STATUSES:
                    raise InvalidStateError(
                        f"Job {job_id} is {old_status} and cannot move to {status}"
                    )
                if old_status == IngestionStatus.PROCESSING.value and status == IngestionStatus.PENDING.value:
                    raise InvalidStateError(f"Job {job_id} is already processing")

        if "job_name" in fields:
            fields["job_name"] = _validate_job_name(fields["job_name"])
        for field in COUNTER_FIELDS:
            value = fields.get(field)
            if value is not None and value < 0:
                raise InvalidInputError(f"{field} must not be negative")

        for field, value in fields.items():
            setattr(job, field, value)

        if status is not None and status != old_status:
            now = datetime.utcnow()
            job.status = status
            if status == IngestionStatus.PROCESSING.value and job.started_at is None:
                job.started_at = now
            if status in TERMINAL_JOB_STATUSES and job.completed_at is None:
                job.completed_at = now
                if job.started_at is not None:
                    job.actual_duration = round_half_up((now - job.started_at).total_seconds())

        await session.commit()
        await session.refresh(job)

        if status is not None and status != old_status:
            logger.info(f"Ingestion job {job_id} status: {old_status} → {status}")
        return job

    async def cancel_job(self, session: AsyncSession, job_id: int) -> IngestionJob:
        """
        Cancel a pending or processing job.

        A running simulator is not interrupted; it stops on its next tick when
        it sees the job is no longer processing.

        Raises:
            InvalidStateError: Job is already terminal
        """
        job = await self.get_job(session, job_id)
        if job.status not in ACTIVE_JOB_STATUSES:
            raise InvalidStateError("Cannot cancel job that is not pending or processing")
        return await self.transition_job(
            session,
            job_id,
            IngestionStatus.CANCELLED.value,
            error_message=CANCELLED_MESSAGE,
        )

    async def delete_job(self, session: AsyncSession, job_id: int) -> None:
        """
        Delete a finished job.

        Raises:
            InvalidStateError: Job is still pending or processing
        """
        job = await self.get_job(session, job_id)
        if job.status not in TERMINAL_JOB_STATUSES:
            raise InvalidStateError("Cannot delete job that is pending or processing")
        await session.delete(job)
        await session.commit()
        logger.info(f"Deleted ingestion job {job_id}")

    async def trigger(
        self,
        session: AsyncSession,
        triggered_by_id: int,
        job_name: str,
        document_ids: Optional[List[int]] = None,
        options: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> IngestionJob:
        """
        Create an ``api_trigger`` job, start it and launch its simulator.

        Returns as soon as the simulator task is scheduled.
        """
        count = len(document_ids or [])
        job = await self.create_job(
            session,
            job_name=job_name,
            job_type=IngestionType.API_TRIGGER.value,
            triggered_by_id=triggered_by_id,
            description=description,
            parameters={"document_ids": document_ids, "options": options},
            total_items=count,
            estimated_duration=max(1, count) * self.seconds_per_item,
        )
        job = await self.transition_job(session, job.id, IngestionStatus.PROCESSING.value)
        self.start_simulation(job.id)
        return job

    # =========================================================================
    # STATISTICS
    # =========================================================================

    async def get_statistics(self, session: AsyncSession) -> Dict[str, Any]:
        """
        Aggregate job counts.

        ``average_duration`` is the rounded mean of ``actual_duration`` over jobs
        that have one; ``success_rate`` is the rounded percentage of completed
        jobs among all jobs.
        """
        total = (await session.execute(select(func.count(IngestionJob.id)))).scalar() or 0

        by_status_rows = await session.execute(
            select(IngestionJob.status, func.count(IngestionJob.id)).group_by(IngestionJob.status)
        )
        by_status = {row[0]: int(row[1]) for row in by_status_rows.all()}

        by_type_rows = await session.execute(
            select(IngestionJob.type, func.count(IngestionJob.id)).group_by(IngestionJob.type)
        )
        by_type = {row[0]: int(row[1]) for row in by_type_rows.all()}

        duration_sum, duration_count = (
            await session.execute(
                select(
                    func.coalesce(func.sum(IngestionJob.actual_duration), 0),
                    func.count(IngestionJob.actual_duration),
                )
            )
        ).one()

        average_duration = round_half_up(int(duration_sum) / duration_count) if duration_count else 0
        completed = by_status.get(IngestionStatus.COMPLETED.value, 0)
        success_rate = round_half_up(100 * completed / total) if total else 0

        return {
            "total_jobs": int(total),
            "by_status": by_status,
            "by_type": by_type,
            "average_duration": average_duration,
            "success_rate": success_rate,
        }

    # =========================================================================
    # SIMULATOR
    # =========================================================================

    def start_simulation(self, job_id: int) -> asyncio.Task:
        """Schedule the progress simulator for ``job_id`` on the running loop."""
        task = asyncio.create_task(self._run_simulation(job_id), name=f"ingestion-simulator-{job_id}")
        self._tasks[job_id] = task

        def _forget(finished: asyncio.Task) -> None:
            if self._tasks.get(job_id) is finished:
                self._tasks.pop(job_id, None)

        task.add_done_callback(_forget)
        logger.debug(f"Scheduled simulator for ingestion job {job_id}")
        return task

    async def _load_processing_job(self, session: AsyncSession, job_id: int) -> Optional[IngestionJob]:
        job = await session.get(IngestionJob, job_id)
        if job is None:
            logger.debug(f"Ingestion job {job_id} was deleted, stopping simulator")
            return None
        if job.status != IngestionStatus.PROCESSING.value:
            logger.info(f"Ingestion job {job_id} is {job.status}, stopping simulator")
            return None
        return job

    async def _run_simulation(self, job_id: int) -> None:
        try:
            await asyncio.sleep(self.start_delay)
            async with self.session_factory() as session:
                job = await self._load_processing_job(session, job_id)
                if job is None:
                    return
                total = job.total_items or 1

            logger.info(f"Simulating ingestion job {job_id} ({total} items)")
            for index in range(1, total + 1):
                await asyncio.sleep(self.tick_interval)
                async with self.session_factory() as session:
                    if await self._load_processing_job(session, job_id) is None:
                        return
                    await self.transition_job(
                        session,
                        job_id,
                        processed_items=index,
                        successful_items=index,
                        failed_items=0,
                    )

            async with self.session_factory() as session:
                if await self._load_processing_job(session, job_id) is None:
                    return
                await self.transition_job(
                    session,
                    job_id,
                    IngestionStatus.COMPLETED.value,
                    result={"message": COMPLETED_MESSAGE, "processed_count": total},
                )
            logger.info(f"Ingestion job {job_id} simulation finished")
        except asyncio.CancelledError:
            logger.info(f"Simulator for ingestion job {job_id} cancelled")
            raise
        except InvalidStateError as e:
            # Job reached a terminal status between the status check and the write
            logger.info(f"Ingestion job {job_id} stopped by a terminal status: {e.message}")
        except Exception as e:
            logger.exception(f"Simulator for ingestion job {job_id} failed: {e}")
            await self._mark_failed(job_id, str(e))

    async def _mark_failed(self, job_id: int, message: str) -> None:
        try:
            async with self.session_factory() as session:
                job = await session.get(IngestionJob, job_id)
                if job is None:
                    logger.warning(f"Ingestion job {job_id} failed after it was deleted: {message}")
                    return
                if job.is_terminal:
                    return
                await self.transition_job(
                    session, job_id, IngestionStatus.FAILED.value, error_message=message
                )
        except Exception as e:
            logger.warning(f"Could not mark ingestion job {job_id} as failed: {e}")

    async def wait_for_simulation(self, job_id: int, timeout: Optional[float] = None) -> None:
        """Wait until the simulator for ``job_id`` (if any) has finished."""
        task = self._tasks.get(job_id)
        if task is None:
            return
        await asyncio.wait_for(asyncio.shield(task), timeout)

    @property
    def running_simulations(self) -> List[int]:
        return [job_id for job_id, task in self._tasks.items() if not task.done()]

    async def shutdown(self) -> None:
        """Cancel all running simulators and wait for them to exit."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Cancelled {len(tasks)} running ingestion simulator(s)")
        self._tasks.clear()
