"""Database-related exceptions for runwatch.

Messages never include credentials from the connection URL.
"""

from runwatch import errors


class DatabaseError(Exception):
    """Base exception for database operations."""


class ConfigurationError(DatabaseError, errors.ConfigurationError):
    """Database URL is missing or uses an unsupported driver."""
