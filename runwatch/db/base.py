"""Declarative base for runwatch ORM models."""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all runwatch ORM models. Exposes metadata for table creation."""
