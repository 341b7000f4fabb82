"""
Transition router - stage-to-stage edges.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.dependencies import get_actor, get_db
from jobflow.schemas.actor import Actor
from jobflow.schemas.transition import TransitionCreate, TransitionRead, TransitionUpdate
from jobflow.services.stage_admin_service import StageAdminService

router = APIRouter(prefix="/transitions", tags=["transitions"])


@router.post("", response_model=TransitionRead, status_code=status.HTTP_201_CREATED)
async def create_transition(
    data: TransitionCreate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create an edge. Self-transitions are rejected."""
    service = StageAdminService(db)
    transition = await service.create_transition(data, actor)
    await db.commit()
    return transition


@router.put("/{transition_id}", response_model=TransitionRead)
async def update_transition(
    transition_id: UUID,
    data: TransitionUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = StageAdminService(db)
    transition = await service.update_transition(transition_id, data, actor)
    await db.commit()
    return transition


@router.delete("/{transition_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_transition(
    transition_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = StageAdminService(db)
    await service.delete_transition(transition_id, actor)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
