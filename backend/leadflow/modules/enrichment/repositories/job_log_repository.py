"""
Job Log Repository
Database operations for pipeline run tracking.

Enables:
- Creating a job when a run starts
- Progress and phase updates while it runs
- Exactly one terminal transition (completed or failed)

All writes are conditional on the job still being active; once a job is
terminal nothing changes it again. This layer raises on database errors;
JobProgressTracker decides which of them are fatal.
"""
import logging
import math
from numbers import Real
from typing import Dict, List, Optional

from sqlalchemy import case, insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.constants import JobStatus
from leadflow.modules.enrichment.models.job_log import (
    JOB_COLUMN_METRICS,
    JOB_CREATE_FIELDS,
    JobLog,
)
from leadflow.shared.core.constants import MAX_ERROR_MESSAGE_LENGTH, PROGRESS_MAX, PROGRESS_MIN
from leadflow.shared.db.base import utcnow
from leadflow.shared.utils.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    LeadflowValidationError,
    PersistenceError,
)

logger = logging.getLogger("job_log_repository")

JOB_COLUMNS = tuple(JobLog.__table__.c)


def clamp_progress(progress) -> int:
    """Clamp to [0, 100] and round to a whole percentage."""
    if isinstance(progress, bool) or not isinstance(progress, Real) or math.isnan(progress):
        raise LeadflowValidationError(f"Progress must be a number, got {progress!r}")
    return int(round(min(PROGRESS_MAX, max(PROGRESS_MIN, progress))))


class JobLogRepository:
    """Repository for job log CRUD operations."""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ============================================
    # JOB CREATION
    # ============================================

    async def create(self, job_data: Dict) -> Dict:
        """
        Start a job in 'running' with started_at stamped.

        Args:
            job_data: Must contain `client`. job_type, file_upload_id,
                current_phase and total_leads are stored in columns; any
                other key is stored in `metrics`.
        """
        if not job_data.get("client"):
            raise LeadflowValidationError("A job needs a client")

        columns = {key: value for key, value in job_data.items() if key in JOB_CREATE_FIELDS}
        metrics = dict(job_data.get("metrics") or {})
        metrics.update({
            key: value for key, value in job_data.items()
            if key not in JOB_CREATE_FIELDS and key != "metrics"
        })

        job_type = columns.get("job_type")
        if job_type is not None:
            columns["job_type"] = getattr(job_type, "value", job_type)

        now = utcnow()
        stmt = (
            insert(JobLog)
            .values(
                **columns,
                status=JobStatus.RUNNING.value,
                progress=PROGRESS_MIN,
                metrics=metrics or None,
                started_at=now,
                created_at=now
            )
            .returning(*JOB_COLUMNS)
        )
        try:
            result = await self.db.execute(stmt)
            job = dict(result.mappings().one())
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("create job log", str(exc)) from exc

        logger.info(f"Created job {job['id']} for {job['client']}")
        return job

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def get_by_id(self, job_id: int) -> Optional[Dict]:
        """Get a job by ID, or None."""
        query = select(*JOB_COLUMNS).where(JobLog.id == job_id)
        try:
            result = await self.db.execute(query)
            row = result.mappings().first()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("get job", str(exc)) from exc
        return dict(row) if row else None

    async def get_active_jobs(self, client: str) -> List[Dict]:
        """Pending and running jobs of a client, newest first."""
        query = (
            select(*JOB_COLUMNS)
            .where(
                JobLog.client == client,
                JobLog.status.in_([status.value for status in JobStatus.active_statuses()])
            )
            .order_by(JobLog.created_at.desc(), JobLog.id.desc())
        )
        try:
            result = await self.db.execute(query)
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("get active jobs", str(exc)) from exc

    # ============================================
    # PROGRESS UPDATES (running jobs only)
    # ============================================

    async def update_progress(self, job_id: int, metrics: Dict) -> Optional[Dict]:
        """
        Merge metrics into a running job.
        total_leads / processed_leads / failed_leads go to their columns;
        every other key is merged into the `metrics` mapping.

        Returns the updated job, or None if the job is not running.
        """
        values, patch = self._split_metrics(metrics)
        return await self._update_running(job_id, values, patch, "update job progress")

    async def update_progress_percentage(self, job_id: int, progress) -> Optional[Dict]:
        """Set progress, clamped to [0, 100]. Progress never goes down."""
        values = {"progress": self._monotonic_progress(clamp_progress(progress))}
        return await self._update_running(job_id, values, None, "update job progress percentage")

    async def update_phase(self, job_id: int, phase: str) -> Optional[Dict]:
        """Set the job's current phase."""
        values = {"current_phase": getattr(phase, "value", phase)}
        return await self._update_running(job_id, values, None, "update job phase")

    async def update_progress_and_phase(
        self,
        job_id: int,
        progress,
        phase: str,
        metrics: Optional[Dict] = None
    ) -> Optional[Dict]:
        """Progress, phase and metrics in a single write."""
        values, patch = self._split_metrics(metrics or {})
        values.update(
            progress=self._monotonic_progress(clamp_progress(progress)),
            current_phase=getattr(phase, "value", phase)
        )
        return await self._update_running(job_id, values, patch, "update job progress and phase")

    # ============================================
    # TERMINAL TRANSITIONS
    # ============================================

    async def complete(self, job_id: int, final_metrics: Optional[Dict] = None) -> Dict:
        """Mark a job completed and stamp completed_at."""
        values, patch = self._split_metrics(final_metrics or {})
        values.update(
            status=JobStatus.COMPLETED.value,
            progress=PROGRESS_MAX,
            completed_at=utcnow()
        )
        job = await self._terminate(job_id, values, patch, JobStatus.COMPLETED, "complete job")
        logger.info(f"Completed job {job_id}")
        return job

    async def fail(self, job_id: int, error_message: str) -> Dict:
        """Mark a job failed, stamp completed_at and record the error."""
        values = {
            "status": JobStatus.FAILED.value,
            "error_message": str(error_message)[:MAX_ERROR_MESSAGE_LENGTH],
            "completed_at": utcnow()
        }
        job = await self._terminate(job_id, values, None, JobStatus.FAILED, "mark job as failed")
        logger.error(f"Job {job_id} failed: {error_message}")
        return job

    # ============================================
    # HELPER METHODS
    # ============================================

    def _split_metrics(self, metrics: Dict):
        """Column metrics vs. free-form metrics."""
        values = {key: value for key, value in metrics.items() if key in JOB_COLUMN_METRICS}
        patch = {key: value for key, value in metrics.items() if key not in JOB_COLUMN_METRICS}
        return values, patch

    def _monotonic_progress(self, progress: int):
        """SQL expression that only ever raises progress."""
        return case((JobLog.progress < progress, progress), else_=JobLog.progress)

    async def _update_running(self, job_id: int, values: Dict, patch: Optional[Dict], operation: str) -> Optional[Dict]:
        return await self._conditional_update(
            job_id, values, patch, [JobStatus.RUNNING.value], operation
        )

    async def _terminate(self, job_id: int, values: Dict, patch: Optional[Dict], target: JobStatus, operation: str) -> Dict:
        active = [status.value for status in JobStatus.active_statuses()]
        job = await self._conditional_update(job_id, values, patch, active, operation)
        if job is None:
            current = await self.get_by_id(job_id)
            if current is None:
                raise EntityNotFoundError("Job", job_id)
            raise InvalidTransitionError("Job", job_id, current["status"], target.value)
        return job

    async def _conditional_update(
        self,
        job_id: int,
        values: Dict,
        patch: Optional[Dict],
        allowed_statuses: List[str],
        operation: str
    ) -> Optional[Dict]:
        """
        UPDATE ... WHERE id = :id AND status IN (:allowed).
        A metrics patch is merged into the stored mapping inside the same
        transaction (row locked on PostgreSQL).
        Returns the updated row, or None if no row qualified.
        """
        try:
            if patch:
                current = await self.db.execute(
                    select(JobLog.metrics)
                    .where(JobLog.id == job_id, JobLog.status.in_(allowed_statuses))
                    .with_for_update()
                )
                row = current.first()
                if row is None:
                    await self.db.rollback()
                    return None
                values = {**values, "metrics": {**(row.metrics or {}), **patch}}

            stmt = (
                update(JobLog)
                .where(JobLog.id == job_id, JobLog.status.in_(allowed_statuses))
                .values(**values)
                .returning(*JOB_COLUMNS)
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            row = result.mappings().first()
            job = dict(row) if row else None
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(operation, str(exc)) from exc
        return job
