"""
Enrichment Repositories

Data access layer for the enrichment pipeline.
"""

from .client_config_repository import ClientConfigRepository
from .file_upload_repository import FileUploadRepository
from .job_log_repository import JobLogRepository, clamp_progress
from .lead_claim_repository import LeadClaimRepository
from .lead_enrichment_repository import LeadEnrichmentRepository

__all__ = [
    "ClientConfigRepository",
    "FileUploadRepository",
    "JobLogRepository",
    "clamp_progress",
    "LeadClaimRepository",
    "LeadEnrichmentRepository",
]
