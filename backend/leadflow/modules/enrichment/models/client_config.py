"""
Client Config ORM Model
Per-tenant settings: which environment variable prefix holds each API key,
and where the client's files live.
"""
from sqlalchemy import Column, Text

from leadflow.shared.db.base import Base, BigIntegerId, TimestampMixin


class ClientConfig(Base, TimestampMixin):
    __tablename__ = "client_config"

    id = Column(BigIntegerId, primary_key=True, autoincrement=True)
    client = Column(Text, unique=True, nullable=False)

    # ============================================
    # API KEY PREFIXES
    # ============================================
    # The key itself is read from the environment as <PREFIX>_<KEY_TYPE>,
    # e.g. ACME_FINDYMAIL. Secrets never live in this table.
    findymail_api_key = Column(Text, nullable=True)
    ai_api_key = Column(Text, nullable=True)
    upload_api_key = Column(Text, nullable=True)

    # ============================================
    # FOLDERS
    # ============================================
    folder_incoming = Column(Text, nullable=True)
    folder_processed = Column(Text, nullable=True)
    folder_failed = Column(Text, nullable=True)

    def __repr__(self):
        return f"<ClientConfig(client='{self.client}')>"
