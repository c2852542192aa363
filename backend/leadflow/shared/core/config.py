from functools import lru_cache

from pydantic import ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from leadflow.shared.utils.exceptions import ConfigurationError


class Settings(BaseSettings):
    PROJECT_NAME: str = "Leadflow Enrichment Pipeline"
    DATABASE_URL: str
    LOG_LEVEL: str = "INFO"

    # Per-phase batch sizes
    BATCH_SIZE_INGESTION: int = 1000
    BATCH_SIZE_FINDYMAIL: int = 100
    BATCH_SIZE_AI_ENRICHMENT: int = 50
    BATCH_SIZE_UPLOAD: int = 500

    # Retry defaults for external calls (fixed delay, seconds)
    RETRY_MAX_ATTEMPTS: int = 3
    RETRY_DELAY_SECONDS: float = 5.0

    # A failed lead is re-claimable while retry_count < MAX_LEAD_RETRIES
    MAX_LEAD_RETRIES: int = 3

    # Claims older than this are treated as abandoned by a crashed worker
    CLAIM_LEASE_SECONDS: int = 900

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def batch_size_for(self, job_type: str) -> int:
        """Batch size for a pipeline phase (a JobType value)."""
        sizes = {
            "ingestion": self.BATCH_SIZE_INGESTION,
            "findymail_enrichment": self.BATCH_SIZE_FINDYMAIL,
            "ai_enrichment": self.BATCH_SIZE_AI_ENRICHMENT,
            "upload": self.BATCH_SIZE_UPLOAD,
        }
        try:
            return sizes[str(getattr(job_type, "value", job_type))]
        except KeyError:
            raise ConfigurationError(f"No batch size configured for phase '{job_type}'")


def load_settings(**overrides) -> Settings:
    """
    Build Settings from the environment (and .env).

    A missing or malformed value is fatal at startup, so pydantic's
    ValidationError is surfaced as ConfigurationError.
    """
    try:
        return Settings(**overrides)
    except ValidationError as exc:
        fields = ", ".join(str(err["loc"][0]) for err in exc.errors() if err.get("loc"))
        raise ConfigurationError(f"Invalid or missing configuration: {fields}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Settings loaded once per process."""
    return load_settings()
