"""
File Upload Repository
Tracks source files handed to ingestion.
"""
import logging
from typing import Dict, Optional

from sqlalchemy import insert, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from leadflow.modules.enrichment.constants import FileUploadStatus
from leadflow.modules.enrichment.models.file_upload import FILE_UPLOAD_FIELDS, FileUpload
from leadflow.shared.core.constants import MAX_ERROR_MESSAGE_LENGTH
from leadflow.shared.db.base import utcnow
from leadflow.shared.utils.exceptions import (
    EntityNotFoundError,
    LeadflowValidationError,
    PersistenceError,
    UnknownValueError,
)

logger = logging.getLogger("file_upload_repository")

FILE_UPLOAD_COLUMNS = tuple(FileUpload.__table__.c)


def _parse_upload_status(status) -> FileUploadStatus:
    try:
        return FileUploadStatus(getattr(status, "value", status))
    except ValueError:
        raise UnknownValueError("file upload status", status, [s.value for s in FileUploadStatus]) from None


class FileUploadRepository:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def create(self, file_data: Dict) -> Dict:
        """Register an uploaded file. Starts in 'uploaded' status."""
        unknown = set(file_data) - FILE_UPLOAD_FIELDS
        if unknown:
            raise UnknownValueError("file upload field", sorted(unknown)[0], sorted(FILE_UPLOAD_FIELDS))
        if not file_data.get("client") or not file_data.get("file_name"):
            raise LeadflowValidationError("A file upload needs a client and a file_name")

        stmt = (
            insert(FileUpload)
            .values(**file_data, status=FileUploadStatus.UPLOADED.value, created_at=utcnow())
            .returning(*FILE_UPLOAD_COLUMNS)
        )
        try:
            result = await self.db.execute(stmt)
            upload = dict(result.mappings().one())
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("create file upload", str(exc)) from exc

        logger.info(f"Registered file upload {upload['id']}: {upload['file_name']}")
        return upload

    async def get_by_id(self, upload_id: int) -> Optional[Dict]:
        query = select(*FILE_UPLOAD_COLUMNS).where(FileUpload.id == upload_id)
        try:
            result = await self.db.execute(query)
            row = result.mappings().first()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("get file upload", str(exc)) from exc
        return dict(row) if row else None

    async def update_status(self, upload_id: int, status: str, **extra) -> Dict:
        """
        Set a file's status along with any extra columns
        (job_id, row_count, error_message, ...).
        """
        target = _parse_upload_status(status)
        unknown = set(extra) - FILE_UPLOAD_FIELDS
        if unknown:
            raise UnknownValueError("file upload field", sorted(unknown)[0], sorted(FILE_UPLOAD_FIELDS))
        if extra.get("error_message"):
            extra["error_message"] = str(extra["error_message"])[:MAX_ERROR_MESSAGE_LENGTH]

        stmt = (
            update(FileUpload)
            .where(FileUpload.id == upload_id)
            .values(status=target.value, **extra)
            .returning(*FILE_UPLOAD_COLUMNS)
            .execution_options(synchronize_session=False)
        )
        try:
            result = await self.db.execute(stmt)
            row = result.mappings().first()
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            raise PersistenceError("update file upload", str(exc)) from exc

        if row is None:
            raise EntityNotFoundError("FileUpload", upload_id)

        logger.info(f"File upload {upload_id} is now {target.value}")
        return dict(row)
