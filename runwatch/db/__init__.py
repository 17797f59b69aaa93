"""Runwatch database layer: Base, engine, session, exceptions."""

from runwatch.db.base import Base
from runwatch.db.engine import DATABASE_URL_ENV, create_engine, normalize_url
from runwatch.db.exceptions import ConfigurationError, DatabaseError
from runwatch.db.session import create_session_factory, session_scope

__all__ = [
    "Base",
    "DATABASE_URL_ENV",
    "create_engine",
    "normalize_url",
    "create_session_factory",
    "session_scope",
    "DatabaseError",
    "ConfigurationError",
]
