"""
Base Pydantic schemas with common fields.

These are templates that other schemas inherit from.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class TimestampedRead(BaseModel):
    """
    Base schema for reading engine records.

    Includes the auto-generated id and timestamps.
    """

    id: UUID
    created_at: datetime
    updated_at: datetime

    # Lets Pydantic read SQLAlchemy models directly
    model_config = ConfigDict(from_attributes=True)


class CompanyScopedRead(TimestampedRead):
    """Base schema for records that always belong to one company."""

    company_id: UUID
