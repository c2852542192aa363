"""
Database layer: declarative base and the async engine/session handle.
"""
from leadflow.shared.db.base import Base, utcnow
from leadflow.shared.db.session import Database, normalize_database_url

__all__ = ["Base", "utcnow", "Database", "normalize_database_url"]
