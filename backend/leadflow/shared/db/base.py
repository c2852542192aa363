"""
Base class for all SQLAlchemy ORM models.
All table models should inherit from Base.
"""
from datetime import datetime, timezone

from sqlalchemy import BigInteger, Column, DateTime, Integer, JSON
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql import func

# BIGINT on Postgres; SQLite only autoincrements a plain INTEGER primary key
BigIntegerId = BigInteger().with_variant(Integer(), "sqlite")

# JSONB on Postgres, JSON text elsewhere. Python None is stored as SQL NULL.
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def utcnow() -> datetime:
    """Timezone-aware current UTC time. All timestamps are written from Python."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """
    Base class for all ORM models.
    This is used by Alembic to detect schema changes.
    """
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at columns to any model.
    Usage: class MyModel(Base, TimestampMixin):
    """
    created_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        onupdate=utcnow
    )
