"""
JobStage Pydantic schemas.
"""

from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from jobflow.models.enums import JobStatus, StageType
from jobflow.schemas.base import TimestampedRead
from jobflow.schemas.question import QuestionRead
from jobflow.schemas.transition import TransitionRead

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"


def _check_durations(min_hours: Optional[int], max_hours: Optional[int]) -> None:
    if max_hours is not None and min_hours is not None and max_hours <= min_hours:
        raise ValueError("max_duration_hours must be greater than min_duration_hours")


class StageCreate(BaseModel):
    """Schema for creating a stage. company_id None targets the platform default set."""

    company_id: Optional[UUID] = None
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    color: str = Field("#6B7280", pattern=HEX_COLOR)
    sequence_order: int = Field(ge=1)
    maps_to_status: JobStatus = JobStatus.PLANNING
    stage_type: StageType = StageType.STANDARD
    min_duration_hours: int = Field(0, ge=0)
    max_duration_hours: Optional[int] = None
    requires_approval: bool = False
    is_initial: bool = False

    @model_validator(mode="after")
    def durations_are_ordered(self):
        _check_durations(self.min_duration_hours, self.max_duration_hours)
        return self


class StageUpdate(BaseModel):
    """Schema for updating a stage. All fields optional."""

    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    color: Optional[str] = Field(None, pattern=HEX_COLOR)
    sequence_order: Optional[int] = Field(None, ge=1)
    maps_to_status: Optional[JobStatus] = None
    stage_type: Optional[StageType] = None
    min_duration_hours: Optional[int] = Field(None, ge=0)
    max_duration_hours: Optional[int] = None
    requires_approval: Optional[bool] = None
    is_initial: Optional[bool] = None

    @model_validator(mode="after")
    def durations_are_ordered(self):
        _check_durations(self.min_duration_hours, self.max_duration_hours)
        return self


class StageBulkItem(StageUpdate):
    id: UUID


class StageBulkUpdate(BaseModel):
    """Bulk reorder/update of one scope's stages, applied atomically."""

    company_id: Optional[UUID] = None
    stages: List[StageBulkItem] = Field(min_length=1)


class StageRead(TimestampedRead):
    """Schema for reading stage data (API response)."""

    company_id: Optional[UUID]
    name: str
    description: Optional[str]
    color: str
    sequence_order: int
    maps_to_status: JobStatus
    stage_type: StageType
    min_duration_hours: int
    max_duration_hours: Optional[int]
    requires_approval: bool
    is_initial: bool
    created_by: Optional[UUID]


class StageWithConfigRead(StageRead):
    questions: List[QuestionRead] = []
    transitions: List[TransitionRead] = []


class EffectiveStagesRead(BaseModel):
    """The stage set a company actually uses, with questions and outgoing edges."""

    company_id: Optional[UUID]
    scope: Literal["company", "platform"]
    stages: List[StageWithConfigRead]


class CopyGlobalRequest(BaseModel):
    company_id: UUID


class CopyGlobalResult(BaseModel):
    company_id: UUID
    stages_copied: int
    questions_copied: int
    transitions_copied: int
    stages: List[StageRead]


class ConfigurationReport(BaseModel):
    company_id: Optional[UUID]
    valid: bool
    problems: List[str]


class StageDeletionResult(BaseModel):
    stage_id: UUID
    jobs_cleared: int
    questions_deleted: int
    transitions_deleted: int
