"""
SQLAlchemy declarative base.

All stage engine models inherit from this Base class so Alembic and the test
suite can create every table from one metadata object.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass
