"""
Stage router - stage configuration endpoints.
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.dependencies import get_actor, get_db
from jobflow.core.permissions import can_access_company
from jobflow.errors import PermissionDeniedError
from jobflow.schemas.actor import Actor
from jobflow.schemas.question import QuestionCreate, QuestionRead, QuestionReorder
from jobflow.schemas.stage import (
    ConfigurationReport,
    CopyGlobalRequest,
    CopyGlobalResult,
    EffectiveStagesRead,
    StageBulkUpdate,
    StageCreate,
    StageDeletionResult,
    StageRead,
    StageUpdate,
)
from jobflow.services.stage_admin_service import StageAdminService
from jobflow.services.stage_config_service import StageConfigService

router = APIRouter(prefix="/stages", tags=["stages"])


@router.get("/effective", response_model=EffectiveStagesRead)
async def get_effective_stages(
    company_id: Optional[UUID] = Query(None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Effective stage set of a company with embedded questions and transitions.

    Defaults to the caller's company.
    """
    company_id = company_id or actor.company_id
    if company_id is not None and not can_access_company(actor, company_id):
        raise PermissionDeniedError("Cannot read another company's stages", {"company_id": str(company_id)})
    service = StageConfigService(db)
    return await service.effective_workflow(company_id)


@router.post("", response_model=StageRead, status_code=status.HTTP_201_CREATED)
async def create_stage(
    data: StageCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create a stage. Omit company_id to add to the platform defaults (site admins)."""
    service = StageAdminService(db)
    stage = await service.create_stage(data, actor)
    await db.commit()
    return stage


@router.put("", response_model=List[StageRead])
async def bulk_update_stages(
    data: StageBulkUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Reorder/update several stages of one scope at once."""
    service = StageAdminService(db)
    stages = await service.bulk_update_stages(data, actor)
    await db.commit()
    return stages


@router.post("/copy-global", response_model=CopyGlobalResult, status_code=status.HTTP_201_CREATED)
async def copy_global_stages(
    data: CopyGlobalRequest,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Copy the platform stage set into a company so it can be customized."""
    service = StageAdminService(db)
    result = await service.copy_global_stages(data.company_id, actor)
    await db.commit()
    return result


@router.post("/validate", response_model=ConfigurationReport)
async def validate_stages(
    company_id: Optional[UUID] = Query(None),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Check a scope's stage graph. Company users validate their own company."""
    if company_id is None and actor.company_id is not None and not actor.is_site_admin:
        company_id = actor.company_id
    service = StageAdminService(db)
    return await service.validate_configuration(company_id, actor)


@router.patch("/{stage_id}", response_model=StageRead)
async def update_stage(
    stage_id: UUID,
    data: StageUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = StageAdminService(db)
    stage = await service.update_stage(stage_id, data, actor)
    await db.commit()
    return stage


@router.delete("/{stage_id}", response_model=StageDeletionResult)
async def delete_stage(
    stage_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Delete a stage with its questions and transitions; jobs in it are detached."""
    service = StageAdminService(db)
    result = await service.delete_stage(stage_id, actor)
    await db.commit()
    return result


@router.post("/{stage_id}/questions", response_model=QuestionRead, status_code=status.HTTP_201_CREATED)
async def add_question(
    stage_id: UUID,
    data: QuestionCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = StageAdminService(db)
    question = await service.add_question(stage_id, data, actor)
    await db.commit()
    return question


@router.put("/{stage_id}/questions/order", response_model=List[QuestionRead])
async def reorder_questions(
    stage_id: UUID,
    data: QuestionReorder,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Replace the question order of a stage; every question must be listed."""
    service = StageAdminService(db)
    questions = await service.reorder_questions(stage_id, data, actor)
    await db.commit()
    return questions
