"""
Base models with common fields.

Every engine table gets:
- id (UUID primary key)
- created_at (when the record was created)
- updated_at (when the record was last modified)

Company-owned tables additionally carry a non-null company_id, the tenant key
every query filters on.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.db.base import Base
from jobflow.utils.time import utc_now


# JSONB on PostgreSQL, plain JSON elsewhere (the test suite runs on SQLite)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class TimestampedModel(Base):
    """
    Abstract base class for engine tables.

    This is not a real table, it's a template that other models inherit from.
    """

    __abstract__ = True

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        nullable=False,
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        server_default=func.now(),
        onupdate=utc_now,
        nullable=False,
    )


class CompanyScopedModel(TimestampedModel):
    """Abstract base class for tables that always belong to one company."""

    __abstract__ = True

    # Company (tenant) that owns this row; indexed because every lookup filters on it
    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )
