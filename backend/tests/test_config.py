import logging

import pytest

from leadflow.modules.enrichment.constants import JobType
from leadflow.shared.core.config import get_settings, load_settings
from leadflow.shared.core.logging import JobContextFilter, job_context_var, set_job_context, setup_logging
from leadflow.shared.db.session import Database, normalize_database_url
from leadflow.shared.utils.exceptions import ConfigurationError


def test_defaults(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/leadflow")
    settings = load_settings(_env_file=None)

    assert settings.batch_size_for(JobType.INGESTION) == 1000
    assert settings.batch_size_for("findymail_enrichment") == 100
    assert settings.batch_size_for("ai_enrichment") == 50
    assert settings.batch_size_for("upload") == 500
    assert settings.RETRY_MAX_ATTEMPTS == 3
    assert settings.RETRY_DELAY_SECONDS == 5.0
    assert settings.CLAIM_LEASE_SECONDS == 900


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/leadflow")
    monkeypatch.setenv("BATCH_SIZE_FINDYMAIL", "25")

    settings = load_settings(_env_file=None)
    assert settings.batch_size_for("findymail_enrichment") == 25


def test_missing_database_url_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)

    with pytest.raises(ConfigurationError) as exc_info:
        load_settings(_env_file=None)
    assert "DATABASE_URL" in str(exc_info.value)


def test_malformed_value_is_a_configuration_error(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/leadflow")
    monkeypatch.setenv("BATCH_SIZE_UPLOAD", "lots")

    with pytest.raises(ConfigurationError):
        load_settings(_env_file=None)


def test_unknown_phase_has_no_batch_size(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/leadflow")
    settings = load_settings(_env_file=None)

    with pytest.raises(ConfigurationError):
        settings.batch_size_for("scraping")


@pytest.mark.parametrize("url, expected", [
    ("postgres://u:p@db/leads", "postgresql+asyncpg://u:p@db/leads"),
    ("postgresql://u:p@db/leads", "postgresql+asyncpg://u:p@db/leads"),
    ("postgresql+asyncpg://u:p@db/leads", "postgresql+asyncpg://u:p@db/leads"),
    ("sqlite:///tmp/leads.db", "sqlite+aiosqlite:///tmp/leads.db"),
])
def test_normalize_database_url(url, expected):
    assert normalize_database_url(url) == expected


def test_database_requires_url():
    with pytest.raises(ConfigurationError):
        Database("")


def test_session_before_connect_is_an_error():
    with pytest.raises(RuntimeError):
        Database("sqlite:///unused.db").session()


def test_job_context_filter_stamps_records():
    record = logging.LogRecord("test", logging.INFO, __file__, 1, "hello", None, None)
    token = job_context_var.set(None)
    try:
        JobContextFilter().filter(record)
        assert record.job_context == "no-job"

        assert set_job_context("job-7") == "job-7"
        JobContextFilter().filter(record)
        assert record.job_context == "job-7"

        assert set_job_context().startswith("worker-")
    finally:
        job_context_var.reset(token)


def test_setup_logging_installs_single_handler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("debug")
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].filters[0], JobContextFilter)

        with pytest.raises(ConfigurationError):
            setup_logging("LOUD")
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_get_settings_loads_once(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "postgresql://localhost/leadflow")
    get_settings.cache_clear()
    try:
        first = get_settings()
        monkeypatch.setenv("BATCH_SIZE_UPLOAD", "7")
        assert get_settings() is first
    finally:
        get_settings.cache_clear()
