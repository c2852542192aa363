"""
Enrichment Pipeline Constants
Centralized enums for the enrichment module.

Enums inherit from str so they can be written to the database and compared
with raw column values without .value conversion.
"""
from enum import Enum


class LeadStatus(str, Enum):
    """
    Coarse per-lead state.

    Flow:
    PENDING → FINDYMAIL_ENRICHED → AI_ENRICHED → UPLOADED
        ↘ FINDYMAIL_FAILED  ↘ AI_FAILED   ↘ UPLOAD_FAILED
    ↘ INGESTION_FAILED

    Failed statuses are not terminal: the lead can be re-claimed while
    retry_count is below the configured maximum.
    """
    PENDING = "pending"
    INGESTION_FAILED = "ingestion_failed"
    FINDYMAIL_ENRICHED = "findymail_enriched"
    FINDYMAIL_FAILED = "findymail_failed"
    AI_ENRICHED = "ai_enriched"
    AI_FAILED = "ai_failed"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"

    @classmethod
    def failed_statuses(cls) -> list:
        return [cls.INGESTION_FAILED, cls.FINDYMAIL_FAILED, cls.AI_FAILED, cls.UPLOAD_FAILED]

    @classmethod
    def is_failed(cls, status: str) -> bool:
        return status in cls.failed_statuses()


class LeadPhase(str, Enum):
    """
    Fine-grained progress, mostly within AI enrichment.
    Declaration order is progression order.
    """
    PENDING = "pending"
    SCRAPING = "scraping"
    RESEARCHING = "researching"
    QUALIFYING = "qualifying"
    GENERATING = "generating"
    COMPLETED = "completed"

    @classmethod
    def ordered(cls) -> list:
        return list(cls)


class ErrorStage(str, Enum):
    """Pipeline stage a lead failed in."""
    INGESTION = "ingestion"
    FINDYMAIL = "findymail"
    AI_ENRICHMENT = "ai_enrichment"
    UPLOAD = "upload"


class JobType(str, Enum):
    """Kind of pipeline run a job log records."""
    INGESTION = "ingestion"
    FINDYMAIL_ENRICHMENT = "findymail_enrichment"
    AI_ENRICHMENT = "ai_enrichment"
    UPLOAD = "upload"


class JobStatus(str, Enum):
    """
    Status of a pipeline run.

    Flow: PENDING → RUNNING → COMPLETED
                          ↘ FAILED
    """
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Terminal jobs accept no further writes."""
        return status in [cls.COMPLETED, cls.FAILED]

    @classmethod
    def active_statuses(cls) -> list:
        return [cls.PENDING, cls.RUNNING]


class FileUploadStatus(str, Enum):
    """Status of an ingested source file."""
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    PROCESSED = "processed"
    FAILED = "failed"


class ApiKeyType(str, Enum):
    """External services a client can hold credentials for."""
    FINDYMAIL = "findymail"
    AI = "ai"
    UPLOAD = "upload"


class FolderType(str, Enum):
    """Per-client storage folders."""
    INCOMING = "incoming"
    PROCESSED = "processed"
    FAILED = "failed"
