"""
StageTransition Pydantic schemas.
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel

from jobflow.schemas.base import TimestampedRead
from jobflow.schemas.conditions import TransitionCondition


class TransitionCreate(BaseModel):
    """Schema for creating an edge between two stages of the same scope."""

    from_stage_id: UUID
    to_stage_id: UUID
    trigger_question_id: Optional[UUID] = None
    trigger_response: Optional[str] = None
    conditions: List[TransitionCondition] = []
    is_automatic: bool = True
    requires_admin_override: bool = False
    sequence_order: int = 0


class TransitionUpdate(BaseModel):
    """Schema for updating an edge. All fields optional."""

    to_stage_id: Optional[UUID] = None
    trigger_question_id: Optional[UUID] = None
    trigger_response: Optional[str] = None
    conditions: Optional[List[TransitionCondition]] = None
    is_automatic: Optional[bool] = None
    requires_admin_override: Optional[bool] = None
    sequence_order: Optional[int] = None


class TransitionRead(TimestampedRead):
    from_stage_id: UUID
    to_stage_id: UUID
    trigger_question_id: Optional[UUID]
    trigger_response: Optional[str]
    conditions: List[TransitionCondition]
    is_automatic: bool
    requires_admin_override: bool
    sequence_order: int
