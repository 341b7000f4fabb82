"""
Job Pydantic schemas.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from jobflow.models.enums import JobStatus
from jobflow.schemas.audit import AuditEntryRead
from jobflow.schemas.base import CompanyScopedRead
from jobflow.schemas.question import QuestionRead
from jobflow.schemas.stage import StageRead


class JobCreate(BaseModel):
    """
    Schema for creating a job.

    company_id is only honoured for site admins; everyone else creates jobs
    in their own company.
    """

    title: str = Field(min_length=1, max_length=200)
    job_type: str = Field("standard", min_length=1, max_length=50)
    company_id: Optional[UUID] = None


class JobRead(CompanyScopedRead):
    title: str
    job_type: str
    current_stage_id: Optional[UUID]
    initial_stage_id: Optional[UUID]
    stage_entered_at: Optional[datetime]
    status: JobStatus
    created_by: Optional[UUID]
    version: int


class QuestionFlowState(BaseModel):
    """Where a job stands inside its current stage."""

    job_id: UUID
    current_stage: Optional[StageRead]
    current_question: Optional[QuestionRead]
    remaining_questions: List[QuestionRead]
    answered_question_ids: List[UUID]
    skipped_question_ids: List[UUID]
    can_proceed: bool
    next_stage_preview: Optional[StageRead]


class AdvanceRequest(BaseModel):
    transition_id: UUID


class OverrideRequest(BaseModel):
    target_stage_id: UUID
    reason: str = Field(min_length=1, max_length=500)


class TransitionOutcome(BaseModel):
    """Result of an explicit advance, override or re-evaluation."""

    job: JobRead
    transitioned: bool
    audit_entry: Optional[AuditEntryRead] = None
    message: str
