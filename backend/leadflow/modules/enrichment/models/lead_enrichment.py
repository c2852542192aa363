"""
Lead Enrichment ORM Model
SQLAlchemy model representing the 'lead_enrichments' table.

One row per lead moving through ingestion → Findymail → AI enrichment → upload.
"""
from sqlalchemy import Column, ForeignKey, Index, Integer, Text, DateTime

from leadflow.shared.db.base import Base, BigIntegerId, JSONType, TimestampMixin
from leadflow.modules.enrichment.constants import LeadPhase, LeadStatus


class LeadEnrichment(Base, TimestampMixin):
    """
    ORM Model for the lead_enrichments table.

    (status, current_phase) is one composite state; see lifecycle.py for the
    allowed pairs. Rows are never deleted by the pipeline.
    """
    __tablename__ = "lead_enrichments"

    # Primary Key
    id = Column(BigIntegerId, primary_key=True, autoincrement=True)

    # ============================================
    # OWNERSHIP
    # ============================================
    client = Column(Text, nullable=False)
    job_id = Column(BigIntegerId, ForeignKey("job_logs.id"), nullable=False)

    # ============================================
    # INGESTED LEAD DATA
    # ============================================
    email = Column(Text, nullable=True)
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    company_name = Column(Text, nullable=True)
    company_domain = Column(Text, nullable=True)
    linkedin_url = Column(Text, nullable=True)
    raw_data = Column(JSONType, nullable=True)        # Source row as ingested

    # ============================================
    # ENRICHMENT RESULTS
    # ============================================
    enriched_email = Column(Text, nullable=True)      # Findymail result
    enrichment_data = Column(JSONType, nullable=True)  # AI research/generation output

    # ============================================
    # LIFECYCLE STATE
    # ============================================
    status = Column(Text, nullable=False, default=LeadStatus.PENDING.value, server_default=LeadStatus.PENDING.value)
    current_phase = Column(Text, nullable=False, default=LeadPhase.PENDING.value, server_default=LeadPhase.PENDING.value)
    retry_count = Column(Integer, nullable=False, default=0, server_default="0")

    # ============================================
    # ERROR TRACKING
    # ============================================
    error_stage = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)

    # ============================================
    # CLAIM LEASE
    # ============================================
    claimed_by = Column(Text, nullable=True)          # Worker holding the lead
    claimed_at = Column(DateTime(timezone=True), nullable=True)

    # ============================================
    # PHASE COMPLETION TIMESTAMPS (set once)
    # ============================================
    findymail_enriched_at = Column(DateTime(timezone=True), nullable=True)
    ai_enriched_at = Column(DateTime(timezone=True), nullable=True)
    uploaded_at = Column(DateTime(timezone=True), nullable=True)

    # ============================================
    # INDEXES
    # ============================================
    __table_args__ = (
        Index("idx_lead_enrichments_claim", "client", "status", "created_at"),
        Index("idx_lead_enrichments_phase", "client", "current_phase"),
        Index("idx_lead_enrichments_job", "job_id"),
    )

    def __repr__(self):
        return f"<LeadEnrichment(id={self.id}, client='{self.client}', status='{self.status}', phase='{self.current_phase}')>"


# Columns callers may set through update_status(**extra)
WRITABLE_EXTRA_FIELDS = frozenset({
    "email",
    "first_name",
    "last_name",
    "company_name",
    "company_domain",
    "linkedin_url",
    "raw_data",
    "enriched_email",
    "enrichment_data",
    "error_stage",
    "error_message",
})

# Columns accepted at ingestion (client and job_id are required)
INGEST_FIELDS = (
    "client",
    "job_id",
    "email",
    "first_name",
    "last_name",
    "company_name",
    "company_domain",
    "linkedin_url",
    "raw_data",
)
