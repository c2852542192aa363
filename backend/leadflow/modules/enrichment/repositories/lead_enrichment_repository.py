"""
Lead Enrichment Repository
All lifecycle operations on the lead_enrichments table.

Every transition is a single conditional UPDATE: the WHERE clause carries the
state machine check, so a write either lands consistently or touches no row.
Failures are hard: callers must not assume a transition happened unless the
call returned.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy import DateTime, func, insert, literal, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.constants import LeadPhase, LeadStatus
from leadflow.modules.enrichment.lifecycle import (
    ALLOWED_PHASES,
    COMPLETION_TIMESTAMP_FIELDS,
    PREDECESSORS,
    as_values,
    failed_status_for,
    parse_phase,
    parse_stage,
    parse_status,
    phases_up_to,
    resolve_phase,
    statuses_allowing_phase,
)
from leadflow.modules.enrichment.models.lead_enrichment import (
    INGEST_FIELDS,
    WRITABLE_EXTRA_FIELDS,
    LeadEnrichment,
)
from leadflow.shared.core.constants import DEFAULT_PAGE_SIZE, MAX_ERROR_MESSAGE_LENGTH
from leadflow.shared.db.base import utcnow
from leadflow.shared.utils.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    LeadflowValidationError,
    PersistenceError,
    UnknownValueError,
)

logger = logging.getLogger("lead_enrichment_repository")

LEAD_COLUMNS = tuple(LeadEnrichment.__table__.c)


class LeadEnrichmentRepository:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    # ============================================
    # READ OPERATIONS
    # ============================================

    async def get_by_id(self, lead_id: int) -> Optional[Dict]:
        """Fetch a single lead by ID, or None."""
        query = select(*LEAD_COLUMNS).where(LeadEnrichment.id == lead_id)
        rows = await self._read(query, "get lead")
        return rows[0] if rows else None

    async def find_by_phase(self, client: str, phase: str, limit: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
        """Leads of a client at a given phase, oldest first."""
        target = parse_phase(phase)
        query = (
            select(*LEAD_COLUMNS)
            .where(
                LeadEnrichment.client == client,
                LeadEnrichment.current_phase == target.value
            )
            .order_by(LeadEnrichment.created_at, LeadEnrichment.id)
            .limit(limit)
        )
        return await self._read(query, "find leads by phase")

    async def find_retryable_leads(self, client: str, max_retries: int = 3, limit: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
        """
        Failed leads that may be retried: status is one of the *_failed
        statuses and retry_count < max_retries. Oldest first.
        """
        query = (
            select(*LEAD_COLUMNS)
            .where(
                LeadEnrichment.client == client,
                LeadEnrichment.status.in_(as_values(LeadStatus.failed_statuses())),
                LeadEnrichment.retry_count < max_retries
            )
            .order_by(LeadEnrichment.created_at, LeadEnrichment.id)
            .limit(limit)
        )
        return await self._read(query, "find retryable leads")

    async def find_by_job_id(self, job_id: int, limit: int = DEFAULT_PAGE_SIZE, offset: int = 0) -> Dict:
        """
        Page through a job's leads, oldest first.

        Returns:
            {"leads": [...], "total": int, "has_more": bool}
        """
        query = (
            select(*LEAD_COLUMNS)
            .where(LeadEnrichment.job_id == job_id)
            .order_by(LeadEnrichment.created_at, LeadEnrichment.id)
            .offset(offset)
            .limit(limit)
        )
        count_query = select(func.count()).select_from(LeadEnrichment).where(LeadEnrichment.job_id == job_id)

        leads = await self._read(query, "find leads by job")
        try:
            total = (await self.db.execute(count_query)).scalar() or 0
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("count leads by job", str(exc)) from exc

        return {
            "leads": leads,
            "total": total,
            "has_more": (offset + limit) < total
        }

    async def count_by_status(self, client: str, status: str) -> int:
        """Number of a client's leads currently in `status`."""
        target = parse_status(status)
        query = (
            select(func.count())
            .select_from(LeadEnrichment)
            .where(LeadEnrichment.client == client, LeadEnrichment.status == target.value)
        )
        try:
            return (await self.db.execute(query)).scalar() or 0
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("count leads", str(exc)) from exc

    # ============================================
    # INSERT OPERATIONS
    # ============================================

    async def batch_create(self, leads: List[Dict]) -> List[Dict]:
        """
        Ingest new leads. Each starts as (pending, pending) with retry_count 0.

        Every lead needs `client` and `job_id`; other keys must be ingest columns.
        Returns the created rows in input order.
        """
        if not leads:
            return []

        rows = []
        for lead in leads:
            unknown = set(lead) - set(INGEST_FIELDS)
            if unknown:
                raise UnknownValueError("lead field", sorted(unknown)[0], INGEST_FIELDS)
            if not lead.get("client") or lead.get("job_id") is None:
                raise LeadflowValidationError("Every lead needs a client and a job_id")
            row = {field: lead.get(field) for field in INGEST_FIELDS}
            row.update(
                status=LeadStatus.PENDING.value,
                current_phase=LeadPhase.PENDING.value,
                retry_count=0,
                created_at=utcnow(),
            )
            rows.append(row)

        table = LeadEnrichment.__table__
        stmt = insert(table).returning(*table.c, sort_by_parameter_order=True)
        try:
            result = await self.db.execute(stmt, rows)
            created = [dict(row) for row in result.mappings().all()]
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("create leads", str(exc)) from exc

        logger.info(f"Created {len(created)} new leads")
        return created

    # ============================================
    # LIFECYCLE TRANSITIONS
    # ============================================

    async def update_status(self, lead_id: int, status: str, phase: Optional[str] = None, **extra) -> Dict:
        """
        Move a lead to `status`, optionally setting its phase and extra columns.

        - The lead's current status must be a predecessor of `status`.
        - Without an explicit phase, a status with a single allowed phase sets
          it; otherwise the current phase must already be allowed.
        - Success statuses stamp their completion timestamp if not already set.
        - The worker's claim on the lead is released.

        Raises:
            UnknownValueError: malformed status/phase or unknown column
            InvalidTransitionError: the state machine forbids the move
            EntityNotFoundError: no such lead
            PersistenceError: the write failed
        """
        target = parse_status(status)
        resolved_phase = resolve_phase(target, phase)
        now = utcnow()

        values = self._extra_values(extra)
        values.update(status=target.value, claimed_by=None, claimed_at=None)
        if resolved_phase is not None:
            values["current_phase"] = resolved_phase.value

        timestamp_field = COMPLETION_TIMESTAMP_FIELDS.get(target)
        if timestamp_field:
            # COALESCE keeps the first success time on idempotent re-writes
            values[timestamp_field] = func.coalesce(
                getattr(LeadEnrichment, timestamp_field),
                literal(now, DateTime(timezone=True))
            )

        conditions = [
            LeadEnrichment.id == lead_id,
            LeadEnrichment.status.in_(as_values(PREDECESSORS[target])),
        ]
        if resolved_phase is None:
            conditions.append(LeadEnrichment.current_phase.in_(as_values(ALLOWED_PHASES[target])))

        stmt = (
            update(LeadEnrichment)
            .where(*conditions)
            .values(**values)
            .returning(*LEAD_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        rows = await self._write(stmt, "update lead")
        if not rows:
            await self._raise_rejected(lead_id, target.value)

        logger.info(f"Updated lead {lead_id} to status {target.value}")
        return rows[0]

    async def update_status_and_phase(self, lead_id: int, status: str, phase: str, **extra) -> Dict:
        """Set status and phase in one write."""
        return await self.update_status(lead_id, status, phase=phase, **extra)

    async def update_error(self, lead_id: int, stage: str, message: str) -> Dict:
        """
        Mark a lead failed at `stage` and record why.
        The failed status comes from an explicit stage → status table.
        """
        error_stage = parse_stage(stage)
        return await self.update_status(
            lead_id,
            failed_status_for(error_stage),
            error_stage=error_stage.value,
            error_message=message
        )

    async def update_phase(self, lead_id: int, phase: str) -> Dict:
        """
        Set a lead's fine-grained phase.

        The phase must be allowed for the lead's current status and may not
        move backwards, except for a lead in a failed status (a retry starts over).
        """
        target = parse_phase(phase)
        stmt = (
            update(LeadEnrichment)
            .where(
                LeadEnrichment.id == lead_id,
                LeadEnrichment.status.in_(as_values(statuses_allowing_phase(target))),
                or_(
                    LeadEnrichment.status.in_(as_values(LeadStatus.failed_statuses())),
                    LeadEnrichment.current_phase.in_(as_values(phases_up_to(target)))
                )
            )
            .values(current_phase=target.value)
            .returning(*LEAD_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        rows = await self._write(stmt, "update lead phase")
        if not rows:
            await self._raise_rejected(lead_id, target.value)

        logger.debug(f"Updated lead {lead_id} to phase {target.value}")
        return rows[0]

    async def restart_phase(self, lead_id: int) -> Dict:
        """
        Put a lead's phase back to 'pending' so a retried attempt can report
        its phases from the start. Status is untouched; only statuses that
        may be paired with 'pending' qualify.
        """
        pending = LeadPhase.PENDING
        stmt = (
            update(LeadEnrichment)
            .where(
                LeadEnrichment.id == lead_id,
                LeadEnrichment.status.in_(as_values(statuses_allowing_phase(pending)))
            )
            .values(current_phase=pending.value)
            .returning(*LEAD_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        rows = await self._write(stmt, "restart lead phase")
        if not rows:
            await self._raise_rejected(lead_id, pending.value)

        logger.debug(f"Restarted phase of lead {lead_id}")
        return rows[0]

    async def increment_retry_count(self, lead_id: int) -> int:
        """
        Add exactly one to retry_count and return the new value.
        A single UPDATE ... RETURNING, so concurrent increments cannot be lost.
        """
        stmt = (
            update(LeadEnrichment)
            .where(LeadEnrichment.id == lead_id)
            .values(retry_count=LeadEnrichment.retry_count + 1)
            .returning(LeadEnrichment.retry_count)
            .execution_options(synchronize_session=False)
        )
        rows = await self._write(stmt, "increment retry count")
        if not rows:
            raise EntityNotFoundError("Lead", lead_id)
        return rows[0]["retry_count"]

    # ============================================
    # HELPER METHODS
    # ============================================

    def _extra_values(self, extra: Dict) -> Dict:
        unknown = set(extra) - WRITABLE_EXTRA_FIELDS
        if unknown:
            raise UnknownValueError("lead field", sorted(unknown)[0], sorted(WRITABLE_EXTRA_FIELDS))
        values = dict(extra)
        if values.get("error_message"):
            values["error_message"] = str(values["error_message"])[:MAX_ERROR_MESSAGE_LENGTH]
        return values

    async def _raise_rejected(self, lead_id: int, target: str) -> None:
        """A conditional write touched no row: find out why."""
        lead = await self.get_by_id(lead_id)
        if lead is None:
            raise EntityNotFoundError("Lead", lead_id)
        raise InvalidTransitionError(
            "Lead", lead_id, f"{lead['status']}/{lead['current_phase']}", target
        )

    async def _read(self, query, operation: str) -> List[Dict]:
        try:
            result = await self.db.execute(query)
            return [dict(row) for row in result.mappings().all()]
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(operation, str(exc)) from exc

    async def _write(self, stmt, operation: str) -> List[Dict]:
        try:
            result = await self.db.execute(stmt)
            rows = [dict(row) for row in result.mappings().all()]
            await self.db.commit()
            return rows
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError(operation, str(exc)) from exc
