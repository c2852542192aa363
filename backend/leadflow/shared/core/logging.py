"""
Logging Configuration with Job Context Support

This module provides:
1. A context variable holding the job/worker the current task is working for
2. A log filter that stamps that context onto every record
3. setup_logging(), called once at process start
"""
import logging
import uuid
from contextvars import ContextVar
from typing import Optional, Union

from leadflow.shared.utils.exceptions import ConfigurationError

# Context variable for the current job context.
# Each asyncio task gets its own copy, so concurrent workers don't mix contexts.
job_context_var: ContextVar[Optional[str]] = ContextVar("job_context", default=None)


def get_job_context() -> Optional[str]:
    """Get the current job context label."""
    return job_context_var.get()


def set_job_context(job_context: Optional[str] = None) -> str:
    """
    Set the job context label for the current task.
    If not provided, generates a worker label.

    Returns the label that was set.
    """
    if job_context is None:
        job_context = f"worker-{uuid.uuid4().hex[:8]}"
    job_context_var.set(job_context)
    return job_context


class JobContextFilter(logging.Filter):
    """
    A logging filter that adds job_context to log records
    so the formatter can include it.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.job_context = get_job_context() or "no-job"
        return True


def setup_logging(level: Union[int, str] = logging.INFO) -> None:
    """
    Configure the root logger.
    `level` may be a logging constant or a name such as settings.LOG_LEVEL.

    Format: timestamp | [job context] | logger | level | message
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            raise ConfigurationError(f"Unknown log level: {level}")

    log_format = "%(asctime)s | [%(job_context)s] | %(name)s | %(levelname)s | %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"

    formatter = logging.Formatter(log_format, datefmt=date_format)

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)
    handler.addFilter(JobContextFilter())

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicate logs
    for existing_handler in root_logger.handlers[:]:
        root_logger.removeHandler(existing_handler)

    root_logger.addHandler(handler)

    # SQLAlchemy echoes every statement at INFO
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
