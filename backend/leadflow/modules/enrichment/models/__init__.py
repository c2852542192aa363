"""
Enrichment Models
"""
from leadflow.modules.enrichment.models.job_log import JobLog
from leadflow.modules.enrichment.models.lead_enrichment import LeadEnrichment
from leadflow.modules.enrichment.models.file_upload import FileUpload
from leadflow.modules.enrichment.models.client_config import ClientConfig

__all__ = ["JobLog", "LeadEnrichment", "FileUpload", "ClientConfig"]
