"""Database package."""

from flowops.db.base import Base, BaseModel
from flowops.db.session import DBSession, get_db_session, get_session_factory

__all__ = ["Base", "BaseModel", "DBSession", "get_db_session", "get_session_factory"]
