# backend/tests/conftest.py
"""
Shared fixtures for all test modules.
Fixtures are sync; each test drives its own event loop with asyncio.run(),
so engines are created and disposed inside that loop.

Database tests run against a throwaway SQLite file per test.
"""

import pytest
from unittest.mock import AsyncMock

from leadflow.modules.enrichment.repositories.job_log_repository import JobLogRepository
from leadflow.modules.enrichment.repositories.lead_enrichment_repository import LeadEnrichmentRepository
from leadflow.shared.core.config import Settings
from leadflow.shared.db.session import Database


# --- DATABASE FIXTURES ---
@pytest.fixture
def database_url(tmp_path):
    """File-backed so several sessions can share it."""
    return f"sqlite+aiosqlite:///{tmp_path / 'leadflow_test.db'}"


@pytest.fixture
def make_database(database_url):
    """Async factory: connected Database with all tables created. Caller disposes it."""
    async def factory():
        database = Database(database_url)
        await database.connect()
        await database.create_all()
        return database
    return factory


@pytest.fixture
def test_settings(database_url):
    """Settings with no retry delay and small batches."""
    return Settings(
        _env_file=None,
        DATABASE_URL=database_url,
        BATCH_SIZE_FINDYMAIL=10,
        BATCH_SIZE_AI_ENRICHMENT=10,
        BATCH_SIZE_UPLOAD=10,
        RETRY_MAX_ATTEMPTS=3,
        RETRY_DELAY_SECONDS=0,
        MAX_LEAD_RETRIES=3,
    )


@pytest.fixture
def no_sleep():
    """Stand-in for asyncio.sleep that records delays without waiting."""
    return AsyncMock(return_value=None)


# --- SAMPLE LEAD DATA FIXTURES ---
@pytest.fixture
def sample_leads():
    """Three raw leads as ingestion would hand them over (client/job_id added by seed_leads)."""
    return [
        {
            "email": "jane.doe@acme.test",
            "first_name": "Jane",
            "last_name": "Doe",
            "company_name": "Acme Corp",
            "company_domain": "acme.test",
            "linkedin_url": "https://linkedin.com/in/janedoe",
            "raw_data": {"source_row": 1},
        },
        {
            "email": None,
            "first_name": "John",
            "last_name": "Smith",
            "company_name": "Acme Corp",
            "company_domain": "acme.test",
            "linkedin_url": "https://linkedin.com/in/johnsmith",
            "raw_data": {"source_row": 2},
        },
        {
            "email": None,
            "first_name": "Ada",
            "last_name": "Lovelace",
            "company_name": "Analytical Engines",
            "company_domain": "engines.test",
            "linkedin_url": None,
            "raw_data": {"source_row": 3},
        },
    ]


@pytest.fixture
def seed_leads(sample_leads):
    """
    Async helper: create an ingestion job for `client` and ingest leads under it.
    Returns (job, leads).
    """
    async def seed(session, client="acme", count=None):
        job = await JobLogRepository(session).create({"client": client, "job_type": "ingestion"})
        raw = sample_leads if count is None else [
            {"email": f"lead{i}@{client}.test", "first_name": f"Lead{i}"} for i in range(count)
        ]
        leads = await LeadEnrichmentRepository(session).batch_create(
            [{**lead, "client": client, "job_id": job["id"]} for lead in raw]
        )
        return job, leads
    return seed
