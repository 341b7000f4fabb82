"""
Question router - edit and delete stage questions.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.dependencies import get_actor, get_db
from jobflow.schemas.actor import Actor
from jobflow.schemas.question import QuestionRead, QuestionUpdate
from jobflow.services.stage_admin_service import StageAdminService

router = APIRouter(prefix="/questions", tags=["questions"])


@router.patch("/{question_id}", response_model=QuestionRead)
async def update_question(
    question_id: UUID,
    data: QuestionUpdate,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    service = StageAdminService(db)
    question = await service.update_question(question_id, data, actor)
    await db.commit()
    return question


@router.delete("/{question_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_question(
    question_id: UUID,
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Delete a question. Fails while skip conditions or transitions reference it."""
    service = StageAdminService(db)
    await service.delete_question(question_id, actor)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
