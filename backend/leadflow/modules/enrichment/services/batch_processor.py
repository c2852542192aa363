"""
Batch Processor
Drives one pipeline stage for a client: claim a batch, run the stage handler
for each lead, move each lead through its lifecycle, report job progress.

The handler is supplied by the caller (Findymail lookup, AI research,
upload...). It is called as:

    result = await handler(lead, report_phase)

- `lead` is the claimed row as a dict
- `report_phase(phase)` moves the lead to a finer-grained phase
- `result` is a dict of extra lead columns to store on success, or None

Handler failures are retried with a fixed delay; a lead that exhausts its
attempts is marked failed for the stage with the error message. Lead writes
hard-fail; progress reporting is best-effort.
"""
import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.constants import ErrorStage, JobType, LeadStatus
from leadflow.modules.enrichment.lifecycle import failed_status_for
from leadflow.modules.enrichment.repositories.lead_claim_repository import LeadClaimRepository
from leadflow.modules.enrichment.repositories.lead_enrichment_repository import LeadEnrichmentRepository
from leadflow.modules.enrichment.services.job_progress_tracker import JobProgressTracker
from leadflow.shared.core.config import Settings
from leadflow.shared.core.logging import job_context_var
from leadflow.shared.utils.exceptions import PersistenceError, UnknownValueError
from leadflow.shared.utils.retry import with_retry

logger = logging.getLogger("batch_processor")

ReportPhase = Callable[[str], Awaitable[Dict]]
StageHandler = Callable[[Dict, ReportPhase], Awaitable[Optional[Dict]]]


@dataclass(frozen=True)
class StageDefinition:
    """Where a stage claims from, where success lands, what failure is called."""
    job_type: JobType
    input_status: LeadStatus
    success_status: LeadStatus
    error_stage: ErrorStage

    @property
    def failed_status(self) -> LeadStatus:
        return failed_status_for(self.error_stage)


STAGES: Dict[JobType, StageDefinition] = {
    JobType.FINDYMAIL_ENRICHMENT: StageDefinition(
        job_type=JobType.FINDYMAIL_ENRICHMENT,
        input_status=LeadStatus.PENDING,
        success_status=LeadStatus.FINDYMAIL_ENRICHED,
        error_stage=ErrorStage.FINDYMAIL,
    ),
    JobType.AI_ENRICHMENT: StageDefinition(
        job_type=JobType.AI_ENRICHMENT,
        input_status=LeadStatus.FINDYMAIL_ENRICHED,
        success_status=LeadStatus.AI_ENRICHED,
        error_stage=ErrorStage.AI_ENRICHMENT,
    ),
    JobType.UPLOAD: StageDefinition(
        job_type=JobType.UPLOAD,
        input_status=LeadStatus.AI_ENRICHED,
        success_status=LeadStatus.UPLOADED,
        error_stage=ErrorStage.UPLOAD,
    ),
}


def get_stage(job_type) -> StageDefinition:
    """Stage definition for a claimable job type (ingestion is not one)."""
    try:
        return STAGES[JobType(getattr(job_type, "value", job_type))]
    except (ValueError, KeyError):
        raise UnknownValueError("stage job type", job_type, [t.value for t in STAGES]) from None


class BatchProcessor:
    """
    Runs pipeline stages for one worker.

    One instance per worker, bound to that worker's session. Two processors
    on separate sessions never receive the same lead.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: Settings,
        worker_id: Optional[str] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None
    ):
        self.db = db
        self.settings = settings
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"
        self.sleep = sleep or asyncio.sleep

        self.lead_repo = LeadEnrichmentRepository(db)
        self.claimer = LeadClaimRepository(
            db,
            lease_seconds=settings.CLAIM_LEASE_SECONDS,
            worker_id=self.worker_id
        )
        self.tracker = JobProgressTracker(db)

        # Running lead counts per job, for progress reporting across batches
        self._job_totals: Dict[int, Dict[str, int]] = {}

    # ============================================
    # SINGLE BATCH
    # ============================================

    async def process_batch(
        self,
        client: str,
        job_type: str,
        handler: StageHandler,
        job_id: Optional[int] = None,
        retry_failed: bool = False,
        limit: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Claim one batch for `client` and run `handler` on each lead.

        Args:
            client: Tenant to process
            job_type: findymail_enrichment, ai_enrichment or upload
            handler: Stage handler (see module docstring)
            job_id: Job to report progress against, if any
            retry_failed: Claim the stage's failed leads instead of its input;
                only leads with retry_count < MAX_LEAD_RETRIES, and each
                re-claimed lead's retry_count is incremented
            limit: Batch size (defaults to the configured size for the stage)

        Returns:
            {"job_type", "claimed", "succeeded", "failed", "retries",
             "skipped", "lead_ids"}; skipped counts leads whose claim
            lapsed to another worker before they were reached
        """
        stage = get_stage(job_type)
        batch_size = limit if limit is not None else self.settings.batch_size_for(stage.job_type)

        if retry_failed:
            leads = await self.claimer.claim_next_batch(
                client,
                stage.failed_status,
                batch_size,
                max_retries=self.settings.MAX_LEAD_RETRIES
            )
        else:
            leads = await self.claimer.claim_next_batch(client, stage.input_status, batch_size)

        summary = {
            "job_type": stage.job_type.value,
            "claimed": len(leads),
            "succeeded": 0,
            "failed": 0,
            "retries": 0,
            "skipped": 0,
            "lead_ids": [lead["id"] for lead in leads],
        }
        if not leads:
            return summary

        logger.info(
            f"🚀 Processing {len(leads)} leads for {client} ({stage.job_type.value})"
            + (" [retry]" if retry_failed else "")
        )

        remaining: List[Dict] = list(leads)
        try:
            while remaining:
                lead = remaining[0]
                if not await self.claimer.renew_claim(lead["id"]):
                    # Lease lapsed and another worker took the lead
                    logger.warning(f"⚠️ Lost claim on lead {lead['id']}, skipping")
                    remaining.pop(0)
                    summary["skipped"] += 1
                    continue

                if retry_failed:
                    lead["retry_count"] = await self.lead_repo.increment_retry_count(lead["id"])

                succeeded = await self._process_lead(stage, lead, handler, summary)
                remaining.pop(0)

                if succeeded:
                    summary["succeeded"] += 1
                else:
                    summary["failed"] += 1

                if job_id is not None:
                    await self._report_progress(job_id, stage, succeeded)
        except Exception:
            # Hand back what was not reached so other workers can take it now
            # rather than after the lease expires
            for lead in remaining:
                try:
                    await self.claimer.release_claim(lead["id"])
                except PersistenceError as release_error:
                    logger.error(f"❌ Could not release lead {lead['id']}: {release_error}")
            raise

        logger.info(
            f"✅ Batch done for {client}: {summary['succeeded']} succeeded, {summary['failed']} failed"
        )
        return summary

    async def _process_lead(
        self,
        stage: StageDefinition,
        lead: Dict,
        handler: StageHandler,
        summary: Dict[str, Any]
    ) -> bool:
        """
        Run the handler for one lead with retries and record the outcome.
        Returns True on success, False if the lead was marked failed.
        """
        lead_id = lead["id"]
        phase_reported = False

        async def report_phase(phase: str) -> Dict:
            nonlocal phase_reported
            phase_reported = True
            return await self.lead_repo.update_phase(lead_id, phase)

        async def attempt():
            return await handler(lead, report_phase)

        async def before_retry(attempt_number: int, error: BaseException) -> None:
            nonlocal phase_reported
            summary["retries"] += 1
            # The next attempt reports its phases from the start again
            if phase_reported:
                await self.lead_repo.restart_phase(lead_id)
                phase_reported = False

        try:
            result = await with_retry(
                attempt,
                max_attempts=self.settings.RETRY_MAX_ATTEMPTS,
                delay=self.settings.RETRY_DELAY_SECONDS,
                on_retry=before_retry,
                sleep=self.sleep
            )
        except Exception as e:
            logger.error(f"❌ Lead {lead_id} failed at {stage.error_stage.value}: {e}")
            await self.lead_repo.update_error(lead_id, stage.error_stage, str(e))
            return False

        await self.lead_repo.update_status(lead_id, stage.success_status, **(result or {}))
        return True

    async def _report_progress(self, job_id: int, stage: StageDefinition, succeeded: bool) -> None:
        totals = self._job_totals.setdefault(job_id, {"processed_leads": 0, "failed_leads": 0})
        if succeeded:
            totals["processed_leads"] += 1
        else:
            totals["failed_leads"] += 1

        metrics = {"processed_leads": totals["processed_leads"], "failed_leads": totals["failed_leads"]}
        total = totals.get("total_leads")
        if total:
            done = totals["processed_leads"] + totals["failed_leads"]
            await self.tracker.update_progress_and_phase(
                job_id, done * 100 / total, stage.job_type.value, metrics
            )
        else:
            await self.tracker.update_progress(job_id, metrics)

    # ============================================
    # FULL RUN
    # ============================================

    async def run(
        self,
        client: str,
        job_type: str,
        handler: StageHandler,
        max_batches: Optional[int] = None,
        retry_failed: bool = False,
        file_upload_id: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Process batches until nothing is left to claim, recording the run as a job.

        The job is completed with the final counts. If processing raises, the
        job is marked failed with the error and the error is re-raised.

        Returns:
            {"job_id", "batches", "claimed", "succeeded", "failed", "retries",
             "skipped", "job"}
        """
        stage = get_stage(job_type)
        claim_status = stage.failed_status if retry_failed else stage.input_status
        total_leads = await self.lead_repo.count_by_status(client, claim_status)
        batch_size = self.settings.batch_size_for(stage.job_type)

        job = await self.tracker.create({
            "client": client,
            "job_type": stage.job_type,
            "current_phase": stage.job_type.value,
            "total_leads": total_leads,
            "file_upload_id": file_upload_id,
            "worker_id": self.worker_id,
            "retry_failed": retry_failed,
        })
        job_id = job["id"]
        self._job_totals[job_id] = {"processed_leads": 0, "failed_leads": 0, "total_leads": total_leads}

        token = job_context_var.set(f"job-{job_id}")
        run_summary = {
            "job_id": job_id, "batches": 0, "claimed": 0,
            "succeeded": 0, "failed": 0, "retries": 0, "skipped": 0,
        }
        try:
            try:
                while max_batches is None or run_summary["batches"] < max_batches:
                    summary = await self.process_batch(
                        client, stage.job_type, handler,
                        job_id=job_id,
                        retry_failed=retry_failed,
                        limit=batch_size
                    )
                    if summary["claimed"] == 0:
                        break

                    run_summary["batches"] += 1
                    for key in ("claimed", "succeeded", "failed", "retries", "skipped"):
                        run_summary[key] += summary[key]

                    if summary["claimed"] < batch_size:
                        break
            except Exception as e:
                logger.error(f"❌ Job {job_id} aborted: {e}")
                await self.tracker.fail(job_id, str(e))
                raise

            run_summary["job"] = await self.tracker.complete(job_id, {
                "processed_leads": run_summary["succeeded"],
                "failed_leads": run_summary["failed"],
                "batches": run_summary["batches"],
                "retries": run_summary["retries"],
            })
        finally:
            self._job_totals.pop(job_id, None)
            job_context_var.reset(token)

        logger.info(
            f"🏁 Job {job_id} finished: {run_summary['succeeded']} succeeded, "
            f"{run_summary['failed']} failed in {run_summary['batches']} batches"
        )
        return run_summary
