"""
File Upload ORM Model
One row per source file handed to ingestion.
"""
from sqlalchemy import Column, Index, Integer, Text

from leadflow.shared.db.base import Base, BigIntegerId, TimestampMixin
from leadflow.modules.enrichment.constants import FileUploadStatus


class FileUpload(Base, TimestampMixin):
    __tablename__ = "file_uploads"

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    client = Column(Text, nullable=False)
    job_id = Column(BigIntegerId, nullable=True)
    file_name = Column(Text, nullable=False)
    storage_path = Column(Text, nullable=True)
    # Status: uploaded, processing, processed, failed
    status = Column(Text, nullable=False, default=FileUploadStatus.UPLOADED.value)
    row_count = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)

    __table_args__ = (
        Index("idx_file_uploads_client", "client"),
    )

    def __repr__(self):
        return f"<FileUpload(id={self.id}, file='{self.file_name}', status='{self.status}')>"


FILE_UPLOAD_FIELDS = frozenset({"client", "job_id", "file_name", "storage_path", "row_count", "error_message"})
