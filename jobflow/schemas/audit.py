"""
Audit log and timeline Pydantic schemas.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, computed_field

from jobflow.models.enums import JobStatus, TriggerSource
from jobflow.schemas.base import CompanyScopedRead


class AuditEntryRead(CompanyScopedRead):
    job_id: UUID
    sequence_number: int
    from_stage_id: Optional[UUID]
    to_stage_id: UUID
    from_status: Optional[JobStatus]
    to_status: JobStatus
    trigger_source: TriggerSource
    triggered_by: Optional[UUID]
    transition_id: Optional[UUID]
    question_id: Optional[UUID]
    response_value: Optional[str]
    trigger_details: Dict[str, Any]
    duration_in_previous_stage_seconds: int

    @computed_field
    @property
    def duration_in_previous_stage_hours(self) -> float:
        return round(self.duration_in_previous_stage_seconds / 3600, 2)


class TimelineEntry(BaseModel):
    """
    One step of a job's stage history.

    Synthetic entries (no audit row behind them) have id None.
    """

    id: Optional[UUID] = None
    sequence_number: int
    from_stage_id: Optional[UUID]
    from_stage_name: Optional[str]
    to_stage_id: UUID
    to_stage_name: Optional[str]
    to_status: Optional[JobStatus]
    trigger_source: Optional[TriggerSource]
    triggered_by: Optional[UUID]
    changed_at: datetime
    duration_in_previous_stage_seconds: int
    is_current: bool = False
    is_synthetic: bool = False


class EnhancedTimeline(BaseModel):
    job_id: UUID
    entries: List[TimelineEntry]
    current_stage_id: Optional[UUID]
    current_stage_name: Optional[str]
    completed_stage_count: int
    total_stage_count: int
    progress_percentage: int


class StageMetric(BaseModel):
    """Dwell time of one visit to a stage."""

    stage_id: UUID
    stage_name: Optional[str]
    entered_at: datetime
    exited_at: Optional[datetime]
    duration_hours: float
    min_duration_hours: Optional[int]
    max_duration_hours: Optional[int]
    within_expected: Optional[bool]
    is_current: bool
