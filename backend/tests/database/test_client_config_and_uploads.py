import asyncio

import pytest

from leadflow.modules.enrichment.repositories.client_config_repository import ClientConfigRepository
from leadflow.modules.enrichment.repositories.file_upload_repository import FileUploadRepository
from leadflow.shared.utils.exceptions import (
    ConfigurationError,
    EntityNotFoundError,
    UnknownValueError,
)


def test_api_key_resolved_from_client_prefix(make_database):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                repo = ClientConfigRepository(session)
                await repo.create({
                    "client": "acme",
                    "findymail_api_key": "ACME",
                    "folder_incoming": "/data/acme/incoming",
                })
                environ = {"ACME_FINDYMAIL": "fm-acme", "LEADWRAITH_AI": "ai-shared"}

                assert await repo.get_api_key("acme", "findymail", environ=environ) == "fm-acme"
                # No prefix for AI: falls back to the shared key
                assert await repo.get_api_key("acme", "ai", environ=environ) == "ai-shared"

                with pytest.raises(ConfigurationError) as exc_info:
                    await repo.get_api_key("acme", "upload", environ=environ)
                assert "LEADWRAITH_UPLOAD" in str(exc_info.value)

                with pytest.raises(UnknownValueError):
                    await repo.get_api_key("acme", "apollo", environ=environ)
                with pytest.raises(EntityNotFoundError):
                    await repo.get_api_key("globex", "findymail", environ=environ)
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_get_api_key_reads_process_environment(make_database, monkeypatch):
    monkeypatch.setenv("ACME_AI", "ai-from-env")

    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                repo = ClientConfigRepository(session)
                await repo.create({"client": "acme", "ai_api_key": "ACME"})
                assert await repo.get_api_key("acme", "ai") == "ai-from-env"
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_folder_paths(make_database):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                repo = ClientConfigRepository(session)
                await repo.create({
                    "client": "acme",
                    "folder_incoming": "/data/acme/incoming",
                    "folder_failed": "/data/acme/failed",
                })

                assert await repo.get_folder_path("acme", "incoming") == "/data/acme/incoming"
                assert await repo.get_folder_path("acme", "failed") == "/data/acme/failed"
                assert await repo.get_folder_path("acme", "processed") is None
                with pytest.raises(UnknownValueError):
                    await repo.get_folder_path("acme", "archive")
        finally:
            await database.dispose()

    asyncio.run(test_logic())


def test_file_upload_status_updates(make_database):
    async def test_logic():
        database = await make_database()
        try:
            async with database.session() as session:
                repo = FileUploadRepository(session)
                upload = await repo.create({"client": "acme", "file_name": "leads_october.csv"})
                assert upload["status"] == "uploaded"

                processing = await repo.update_status(upload["id"], "processing", job_id=7)
                assert processing["status"] == "processing"
                assert processing["job_id"] == 7

                processed = await repo.update_status(upload["id"], "processed", row_count=1250)
                assert processed["row_count"] == 1250
                assert (await repo.get_by_id(upload["id"]))["status"] == "processed"

                with pytest.raises(UnknownValueError):
                    await repo.update_status(upload["id"], "archived")
                with pytest.raises(EntityNotFoundError):
                    await repo.update_status(999, "failed", error_message="missing")
        finally:
            await database.dispose()

    asyncio.run(test_logic())
