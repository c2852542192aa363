import asyncio

import pytest
from sqlalchemy import update

from leadflow.modules.enrichment.models.lead_enrichment import LeadEnrichment
from leadflow.modules.enrichment.repositories.lead_enrichment_repository import LeadEnrichmentRepository
from leadflow.shared.utils.exceptions import (
    EntityNotFoundError,
    InvalidTransitionError,
    LeadflowValidationError,
    UnknownValueError,
)


# --- TESTS ---

def test_batch_create_starts_leads_pending(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                job, leads = await seed_leads(session)

                assert len(leads) == 3
                assert [lead["first_name"] for lead in leads] == ["Jane", "John", "Ada"]
                for lead in leads:
                    assert lead["client"] == "acme"
                    assert lead["job_id"] == job["id"]
                    assert lead["status"] == "pending"
                    assert lead["current_phase"] == "pending"
                    assert lead["retry_count"] == 0
                    assert lead["findymail_enriched_at"] is None

                fetched = await LeadEnrichmentRepository(session).get_by_id(leads[0]["id"])
                assert fetched["raw_data"] == {"source_row": 1}
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_batch_create_validates_input(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                job, _ = await seed_leads(session, count=0)
                repo = LeadEnrichmentRepository(session)

                assert await repo.batch_create([]) == []
                with pytest.raises(LeadflowValidationError):
                    await repo.batch_create([{"client": "acme", "email": "x@acme.test"}])
                with pytest.raises(UnknownValueError):
                    await repo.batch_create([{"client": "acme", "job_id": job["id"], "status": "uploaded"}])
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_get_by_id_missing_returns_none(make_database):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                assert await LeadEnrichmentRepository(session).get_by_id(999) is None
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_completion_timestamp_is_set_once(make_database, seed_leads):
    """
    Reaching findymail_enriched stamps findymail_enriched_at; writing the same
    status again keeps the first timestamp.
    """
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session)
                repo = LeadEnrichmentRepository(session)
                lead_id = leads[0]["id"]

                first = await repo.update_status(lead_id, "findymail_enriched", enriched_email="jane@acme.test")
                assert first["status"] == "findymail_enriched"
                assert first["enriched_email"] == "jane@acme.test"
                assert first["findymail_enriched_at"] is not None

                await asyncio.sleep(0.01)
                second = await repo.update_status(lead_id, "findymail_enriched")
                assert second["findymail_enriched_at"] == first["findymail_enriched_at"]

                # Moving on stamps the next field and leaves the earlier one alone
                third = await repo.update_status(lead_id, "ai_enriched", enrichment_data={"hook": "hi"})
                assert third["current_phase"] == "completed"
                assert third["ai_enriched_at"] is not None
                assert third["findymail_enriched_at"] == first["findymail_enriched_at"]
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_invalid_transitions_are_rejected(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session)
                repo = LeadEnrichmentRepository(session)
                lead_id = leads[0]["id"]

                with pytest.raises(InvalidTransitionError):
                    await repo.update_status(lead_id, "uploaded")
                with pytest.raises(UnknownValueError):
                    await repo.update_status(lead_id, "enriched")
                with pytest.raises(UnknownValueError):
                    await repo.update_status(lead_id, "findymail_enriched", mobile_number="+1")
                with pytest.raises(InvalidTransitionError):
                    await repo.update_status_and_phase(lead_id, "findymail_enriched", "completed")
                with pytest.raises(EntityNotFoundError):
                    await repo.update_status(999, "findymail_enriched")

                # Nothing above was applied
                lead = await repo.get_by_id(lead_id)
                assert (lead["status"], lead["current_phase"]) == ("pending", "pending")
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_update_error_sets_failed_status_for_stage(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session)
                repo = LeadEnrichmentRepository(session)

                failed = await repo.update_error(leads[0]["id"], "findymail", "No email found")
                assert failed["status"] == "findymail_failed"
                assert failed["error_stage"] == "findymail"
                assert failed["error_message"] == "No email found"

                await repo.update_status(leads[1]["id"], "findymail_enriched")
                await repo.update_phase(leads[1]["id"], "researching")
                ai_failed = await repo.update_error(leads[1]["id"], "ai_enrichment", "LLM timeout")
                assert ai_failed["status"] == "ai_failed"
                assert ai_failed["current_phase"] == "researching"

                with pytest.raises(UnknownValueError):
                    await repo.update_error(leads[2]["id"], "scraping", "bad stage")
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_update_phase_moves_forward_only(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session)
                repo = LeadEnrichmentRepository(session)
                lead_id = leads[0]["id"]

                # pending status only allows the pending phase
                with pytest.raises(InvalidTransitionError):
                    await repo.update_phase(lead_id, "scraping")

                await repo.update_status(lead_id, "findymail_enriched")
                assert (await repo.update_phase(lead_id, "scraping"))["current_phase"] == "scraping"
                assert (await repo.update_phase(lead_id, "qualifying"))["current_phase"] == "qualifying"
                with pytest.raises(InvalidTransitionError):
                    await repo.update_phase(lead_id, "researching")

                # A failed lead starts the stage over
                await repo.update_error(lead_id, "ai_enrichment", "rate limited")
                assert (await repo.update_phase(lead_id, "scraping"))["current_phase"] == "scraping"
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_increment_retry_count_adds_exactly_one(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session)
                repo = LeadEnrichmentRepository(session)
                lead_id = leads[0]["id"]

                assert await repo.increment_retry_count(lead_id) == 1
                assert await repo.increment_retry_count(lead_id) == 2
                assert await repo.increment_retry_count(lead_id) == 3
                assert (await repo.get_by_id(lead_id))["retry_count"] == 3

                with pytest.raises(EntityNotFoundError):
                    await repo.increment_retry_count(999)
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_restart_phase_rewinds_an_in_progress_lead(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session)
                repo = LeadEnrichmentRepository(session)
                lead_id = leads[0]["id"]

                await repo.update_status(lead_id, "findymail_enriched")
                await repo.update_phase(lead_id, "researching")

                restarted = await repo.restart_phase(lead_id)
                assert restarted["status"] == "findymail_enriched"
                assert restarted["current_phase"] == "pending"
                assert (await repo.update_phase(lead_id, "scraping"))["current_phase"] == "scraping"

                # ai_enriched is only ever paired with 'completed'
                await repo.update_status(lead_id, "ai_enriched")
                with pytest.raises(InvalidTransitionError):
                    await repo.restart_phase(lead_id)
                with pytest.raises(EntityNotFoundError):
                    await repo.restart_phase(999)
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_find_retryable_leads(make_database, seed_leads):
    """Only failed leads with retry_count below the maximum, oldest first."""
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                _, leads = await seed_leads(session, count=5)
                _, other_client = await seed_leads(session, client="globex", count=1)
                repo = LeadEnrichmentRepository(session)
                ids = [lead["id"] for lead in leads]

                await repo.update_error(ids[0], "findymail", "not found")
                await repo.update_error(ids[1], "findymail", "not found")
                await repo.update_status(ids[2], "findymail_enriched")
                await repo.update_error(ids[3], "findymail", "not found")
                await repo.update_error(other_client[0]["id"], "findymail", "not found")

                # ids[1] has used up its retries
                await session.execute(
                    update(LeadEnrichment).where(LeadEnrichment.id == ids[1]).values(retry_count=3)
                )
                await session.commit()

                retryable = await repo.find_retryable_leads("acme", max_retries=3, limit=10)
                assert [lead["id"] for lead in retryable] == [ids[0], ids[3]]

                assert len(await repo.find_retryable_leads("acme", max_retries=3, limit=1)) == 1
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_find_by_phase_and_job(make_database, seed_leads):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                job, leads = await seed_leads(session, count=5)
                repo = LeadEnrichmentRepository(session)

                await repo.update_status(leads[0]["id"], "findymail_enriched")
                await repo.update_phase(leads[0]["id"], "generating")

                generating = await repo.find_by_phase("acme", "generating")
                assert [lead["id"] for lead in generating] == [leads[0]["id"]]
                assert len(await repo.find_by_phase("acme", "pending")) == 4

                page = await repo.find_by_job_id(job["id"], limit=2, offset=0)
                assert page["total"] == 5
                assert page["has_more"] is True
                assert [lead["id"] for lead in page["leads"]] == [leads[0]["id"], leads[1]["id"]]

                last = await repo.find_by_job_id(job["id"], limit=2, offset=4)
                assert len(last["leads"]) == 1
                assert last["has_more"] is False

                assert await repo.count_by_status("acme", "pending") == 4
                assert await repo.count_by_status("acme", "findymail_enriched") == 1
        finally:
            await database.dispose()

    asyncio.run(test_logic())
