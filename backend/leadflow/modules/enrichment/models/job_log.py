"""
Job Log ORM Model
One row per pipeline run for a client.

This enables:
- Progress monitoring from outside the worker
- Job history per client
"""
from sqlalchemy import Column, DateTime, Index, Integer, Text

from leadflow.shared.db.base import Base, BigIntegerId, JSONType, TimestampMixin
from leadflow.modules.enrichment.constants import JobStatus


class JobLog(Base, TimestampMixin):
    """
    ORM Model for the job_logs table.

    Tracks status, percentage progress and current phase of a run.
    Arbitrary counters go into `metrics`.
    """
    __tablename__ = "job_logs"

    # Primary Key
    id = Column(BigIntegerId, primary_key=True, autoincrement=True)

    # ============================================
    # JOB CONFIGURATION
    # ============================================
    client = Column(Text, nullable=False)
    job_type = Column(Text, nullable=True)
    file_upload_id = Column(BigIntegerId, nullable=True)

    # ============================================
    # JOB STATUS
    # ============================================
    # Status: pending, running, completed, failed
    status = Column(Text, nullable=False, default=JobStatus.PENDING.value)
    progress = Column(Integer, nullable=False, default=0, server_default="0")
    current_phase = Column(Text, nullable=True)

    # ============================================
    # PROGRESS TRACKING
    # ============================================
    total_leads = Column(Integer, nullable=False, default=0, server_default="0")
    processed_leads = Column(Integer, nullable=False, default=0, server_default="0")
    failed_leads = Column(Integer, nullable=False, default=0, server_default="0")
    metrics = Column(JSONType, nullable=True)

    # ============================================
    # ERROR TRACKING
    # ============================================
    error_message = Column(Text, nullable=True)

    # ============================================
    # TIMESTAMPS
    # ============================================
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # ============================================
    # INDEXES
    # ============================================
    __table_args__ = (
        Index("idx_job_logs_client_status", "client", "status"),
        Index("idx_job_logs_created", "created_at"),
    )

    def __repr__(self):
        return f"<JobLog(id={self.id}, client='{self.client}', status='{self.status}', progress={self.progress})>"


# Metric keys stored in their own columns; anything else is merged into `metrics`
JOB_COLUMN_METRICS = frozenset({"total_leads", "processed_leads", "failed_leads"})

# Fields accepted by create()
JOB_CREATE_FIELDS = frozenset({"client", "job_type", "file_upload_id", "current_phase", "total_leads"})
