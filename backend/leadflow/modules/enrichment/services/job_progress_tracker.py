"""
Job Progress Tracker
Records the lifecycle and progress of pipeline runs.

Error policy:
- create / complete / fail raise. A job that cannot be started or finished
  is a real failure.
- Progress and phase updates are best-effort. A failed write, or one with a
  malformed progress value, is logged and the pipeline keeps going; losing
  one update must not abort a batch whose leads were already processed.
- Progress writes on a job that is no longer running are ignored.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.repositories.job_log_repository import JobLogRepository
from leadflow.shared.utils.exceptions import LeadflowValidationError, PersistenceError

logger = logging.getLogger("job_progress_tracker")


class JobProgressTracker:
    """
    Service for job bookkeeping.

    Provides:
    - Job start / completion / failure
    - Best-effort progress, phase and metric updates
    - Active job lookup
    """

    def __init__(self, db: AsyncSession):
        self.db = db
        self.job_repo = JobLogRepository(db)

    # ============================================
    # JOB LIFECYCLE (hard-fail)
    # ============================================

    async def create(self, job_data: Dict) -> Dict:
        return await self.job_repo.create(job_data)

    async def complete(self, job_id: int, final_metrics: Optional[Dict] = None) -> Dict:
        return await self.job_repo.complete(job_id, final_metrics)

    async def fail(self, job_id: int, error_message: str) -> Dict:
        return await self.job_repo.fail(job_id, error_message)

    async def get_by_id(self, job_id: int) -> Optional[Dict]:
        return await self.job_repo.get_by_id(job_id)

    async def get_active_jobs(self, client: str) -> List[Dict]:
        return await self.job_repo.get_active_jobs(client)

    # ============================================
    # PROGRESS (soft-fail)
    # ============================================

    async def update_progress(self, job_id: int, metrics: Dict) -> bool:
        """Merge metrics into the job. Returns True if the write landed."""
        return await self._soft(
            job_id, "progress", self.job_repo.update_progress(job_id, metrics)
        )

    async def update_progress_percentage(self, job_id: int, progress) -> bool:
        return await self._soft(
            job_id, "progress percentage", self.job_repo.update_progress_percentage(job_id, progress)
        )

    async def update_phase(self, job_id: int, phase: str) -> bool:
        return await self._soft(
            job_id, "phase", self.job_repo.update_phase(job_id, phase)
        )

    async def update_progress_and_phase(
        self,
        job_id: int,
        progress,
        phase: str,
        metrics: Optional[Dict] = None
    ) -> bool:
        return await self._soft(
            job_id,
            "progress and phase",
            self.job_repo.update_progress_and_phase(job_id, progress, phase, metrics)
        )

    async def _soft(self, job_id: int, what: str, write) -> bool:
        try:
            job = await write
        except (PersistenceError, LeadflowValidationError) as e:
            logger.error(
                f"❌ Could not update {what} for job {job_id}: {e}",
                extra={"job_id": job_id}
            )
            return False

        if job is None:
            logger.warning(f"Job {job_id} is not running; {what} update ignored")
            return False
        return True
