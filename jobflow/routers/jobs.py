"""
Job router - job progression endpoints.
"""

from typing import List, Union
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.dependencies import get_actor, get_db
from jobflow.schemas.actor import Actor
from jobflow.schemas.audit import AuditEntryRead, EnhancedTimeline, StageMetric, TimelineEntry
from jobflow.schemas.job import (
    AdvanceRequest,
    JobCreate,
    JobRead,
    OverrideRequest,
    QuestionFlowState,
    TransitionOutcome,
)
from jobflow.schemas.response import ResponseSubmit, SubmissionResult
from jobflow.services.job_service import JobService
from jobflow.services.response_service import ResponseService
from jobflow.services.timeline_service import TimelineService

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobRead, status_code=status.HTTP_201_CREATED)
async def create_job(
    data: JobCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create a job on the initial stage of the company's workflow."""
    service = JobService(db)
    job = await service.create_job(data, actor)
    await db.commit()
    return job


@router.get("/{job_id}", response_model=JobRead)
async def get_job(
    job_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = JobService(db)
    return await service.get_job(job_id, actor)


@router.get("/{job_id}/current-question", response_model=QuestionFlowState)
async def get_current_question(
    job_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Next question of the current stage, the remaining ones and the next stage if ready."""
    service = ResponseService(db)
    return await service.current_question(job_id, actor)


@router.post("/{job_id}/responses", response_model=SubmissionResult)
async def submit_response(
    job_id: UUID,
    data: ResponseSubmit,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Answer a question of the job's current stage.

    When no required question is left, the job moves along the first
    matching transition and the audit entry is returned with the job.
    """
    service = ResponseService(db)
    result = await service.submit_response(job_id, data, actor)
    await db.commit()
    return result


@router.get("/{job_id}/audit-history", response_model=List[AuditEntryRead])
async def get_audit_history(
    job_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = TimelineService(db)
    return await service.audit_history(job_id, actor)


@router.get("/{job_id}/timeline", response_model=Union[EnhancedTimeline, List[TimelineEntry]])
async def get_timeline(
    job_id: UUID,
    enhanced: bool = Query(False),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Stage history; enhanced=true adds progress through the workflow."""
    service = TimelineService(db)
    if enhanced:
        return await service.enhanced_timeline(job_id, actor)
    return await service.timeline(job_id, actor)


@router.get("/{job_id}/stage-metrics", response_model=List[StageMetric])
async def get_stage_metrics(
    job_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = TimelineService(db)
    return await service.stage_metrics(job_id, actor)


@router.post("/{job_id}/advance", response_model=TransitionOutcome)
async def advance_job(
    job_id: UUID,
    data: AdvanceRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Take a manual transition out of a completed stage."""
    service = JobService(db)
    outcome = await service.advance_manually(job_id, data, actor)
    await db.commit()
    return outcome


@router.post("/{job_id}/override-stage", response_model=TransitionOutcome)
async def override_stage(
    job_id: UUID,
    data: OverrideRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Move a job to any stage of its workflow (owners and admins). Audited."""
    service = JobService(db)
    outcome = await service.override_stage(job_id, data, actor)
    await db.commit()
    return outcome


@router.post("/{job_id}/evaluate", response_model=TransitionOutcome)
async def evaluate_job(
    job_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Re-run transition matching for a job whose stage is complete."""
    service = JobService(db)
    outcome = await service.evaluate_job(job_id, actor)
    await db.commit()
    return outcome
