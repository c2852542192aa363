"""
Lead Claim Repository
Atomic batch claiming for workers.

claim_next_batch() selects and marks leads in ONE statement:

    UPDATE lead_enrichments SET claimed_by = :worker, claimed_at = :now
    WHERE id IN (
        SELECT id FROM lead_enrichments
        WHERE client = :client AND status = :status
          AND (claimed_at IS NULL OR claimed_at < :lease_cutoff)
        ORDER BY created_at, id
        LIMIT :limit
        FOR UPDATE SKIP LOCKED
    )
    RETURNING *

On PostgreSQL, concurrent claimers skip rows another transaction has locked,
so two workers never receive the same lead. SQLite has no FOR UPDATE; there
the single write statement is serialized by the database lock instead.

A claim is a lease: after CLAIM_LEASE_SECONDS it lapses, so leads held by a
crashed worker become claimable again. A worker renews the lease before each
lead it handles, and every lifecycle transition releases the claim.
"""
import logging
import uuid
from datetime import timedelta
from typing import Dict, List, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.lifecycle import parse_status
from leadflow.modules.enrichment.models.lead_enrichment import LeadEnrichment
from leadflow.shared.db.base import utcnow
from leadflow.shared.utils.exceptions import PersistenceError

logger = logging.getLogger("lead_claim_repository")

DEFAULT_CLAIM_LEASE_SECONDS = 900

LEAD_COLUMNS = tuple(LeadEnrichment.__table__.c)


class LeadClaimRepository:
    """Claims batches of leads for exclusive processing by one worker."""

    def __init__(
        self,
        db_session: AsyncSession,
        lease_seconds: int = DEFAULT_CLAIM_LEASE_SECONDS,
        worker_id: Optional[str] = None
    ):
        self.db = db_session
        self.lease_seconds = lease_seconds
        self.worker_id = worker_id or f"worker-{uuid.uuid4().hex[:8]}"

    async def claim_next_batch(
        self,
        client: str,
        status: str,
        limit: int,
        max_retries: Optional[int] = None
    ) -> List[Dict]:
        """
        Claim up to `limit` of a client's leads in `status`.

        Args:
            client: Tenant whose leads to claim
            status: Lead status to claim from
            limit: Maximum batch size
            max_retries: If given, only leads with retry_count below it

        Returns:
            Claimed leads, oldest first. An empty list means nothing is
            claimable right now (possibly another worker was faster); it is
            not an error.
        """
        target = parse_status(status)
        if limit <= 0:
            return []

        now = utcnow()
        lease_cutoff = now - timedelta(seconds=self.lease_seconds)

        claimable = [
            LeadEnrichment.client == client,
            LeadEnrichment.status == target.value,
            or_(
                LeadEnrichment.claimed_at.is_(None),
                LeadEnrichment.claimed_at < lease_cutoff
            ),
        ]
        if max_retries is not None:
            claimable.append(LeadEnrichment.retry_count < max_retries)

        candidates = (
            select(LeadEnrichment.id)
            .where(*claimable)
            .order_by(LeadEnrichment.created_at, LeadEnrichment.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )

        # The outer WHERE repeats the predicate so a row that changed between
        # selection and update is not claimed
        stmt = (
            update(LeadEnrichment)
            .where(LeadEnrichment.id.in_(candidates), *claimable)
            .values(claimed_by=self.worker_id, claimed_at=now)
            .returning(*LEAD_COLUMNS)
            .execution_options(synchronize_session=False)
        )

        try:
            result = await self.db.execute(stmt)
            leads = [dict(row) for row in result.mappings().all()]
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("claim leads", str(exc)) from exc

        if not leads:
            logger.debug(f"No claimable '{target.value}' leads for {client}")
            return []

        # RETURNING order is unspecified
        leads.sort(key=lambda lead: (lead["created_at"], lead["id"]))
        logger.info(
            f"{self.worker_id} claimed {len(leads)} '{target.value}' leads for {client}",
            extra={"client": client, "status": target.value, "claimed": len(leads)}
        )
        return leads

    async def renew_claim(self, lead_id: int) -> bool:
        """
        Restart the lease on a lead this worker holds.

        Returns False if the claim is no longer ours (it lapsed and another
        worker took the lead); the caller must then leave the lead alone.
        """
        stmt = (
            update(LeadEnrichment)
            .where(
                LeadEnrichment.id == lead_id,
                LeadEnrichment.claimed_by == self.worker_id
            )
            .values(claimed_at=utcnow())
            .returning(LeadEnrichment.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            renewed = result.first() is not None
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("renew lead claim", str(exc)) from exc
        return renewed

    async def release_claim(self, lead_id: int) -> bool:
        """
        Give a claimed lead back without changing its state.
        Only releases claims held by this worker. Returns True if released.
        """
        stmt = (
            update(LeadEnrichment)
            .where(
                LeadEnrichment.id == lead_id,
                LeadEnrichment.claimed_by == self.worker_id
            )
            .values(claimed_by=None, claimed_at=None)
            .returning(LeadEnrichment.id)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            released = result.first() is not None
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("release lead claim", str(exc)) from exc
        return released
