"""
Question repository - database operations for StageQuestion.
"""

from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.question import StageQuestion


class QuestionRepository:
    """Repository for StageQuestion database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_stage(self, stage_id: UUID) -> List[StageQuestion]:
        """Questions of a stage in sequence order."""
        result = await self.db.execute(
            select(StageQuestion)
            .where(StageQuestion.stage_id == stage_id)
            .order_by(StageQuestion.sequence_order)
        )
        return list(result.scalars().all())

    async def list_for_stages(self, stage_ids: Sequence[UUID]) -> List[StageQuestion]:
        if not stage_ids:
            return []
        result = await self.db.execute(
            select(StageQuestion)
            .where(StageQuestion.stage_id.in_(list(stage_ids)))
            .order_by(StageQuestion.stage_id, StageQuestion.sequence_order)
        )
        return list(result.scalars().all())

    async def get_by_id(self, question_id: UUID) -> Optional[StageQuestion]:
        return await self.db.get(StageQuestion, question_id)

    async def create(self, stage_id: UUID, data: Dict[str, Any]) -> StageQuestion:
        """Create a new question."""
        question = StageQuestion(stage_id=stage_id, **data)
        self.db.add(question)
        await self.db.flush()
        await self.db.refresh(question)
        return question

    async def update(self, question: StageQuestion, data: Dict[str, Any]) -> StageQuestion:
        for field, value in data.items():
            setattr(question, field, value)
        await self.db.flush()
        await self.db.refresh(question)
        return question

    async def delete(self, question: StageQuestion) -> None:
        await self.db.delete(question)
        await self.db.flush()

    async def delete_for_stage(self, stage_id: UUID) -> int:
        result = await self.db.execute(
            delete(StageQuestion)
            .where(StageQuestion.stage_id == stage_id)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
