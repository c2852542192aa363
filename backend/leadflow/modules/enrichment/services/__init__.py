"""
Enrichment Services

Business logic layer for the enrichment pipeline.
"""

from .batch_processor import STAGES, BatchProcessor, StageDefinition, get_stage
from .job_progress_tracker import JobProgressTracker

__all__ = [
    "STAGES",
    "BatchProcessor",
    "StageDefinition",
    "get_stage",
    "JobProgressTracker",
]
