"""
Transition repository - database operations for StageTransition.
"""

from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.transition import StageTransition


class TransitionRepository:
    """Repository for StageTransition database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_from_stage(self, stage_id: UUID) -> List[StageTransition]:
        """Outgoing edges of a stage in configuration order."""
        result = await self.db.execute(
            select(StageTransition)
            .where(StageTransition.from_stage_id == stage_id)
            .order_by(StageTransition.sequence_order, StageTransition.created_at)
        )
        return list(result.scalars().all())

    async def list_for_stages(self, stage_ids: Sequence[UUID]) -> List[StageTransition]:
        """Edges leaving any of the given stages."""
        if not stage_ids:
            return []
        result = await self.db.execute(
            select(StageTransition)
            .where(StageTransition.from_stage_id.in_(list(stage_ids)))
            .order_by(StageTransition.sequence_order, StageTransition.created_at)
        )
        return list(result.scalars().all())

    async def list_triggered_by(self, question_id: UUID) -> List[StageTransition]:
        result = await self.db.execute(
            select(StageTransition).where(StageTransition.trigger_question_id == question_id)
        )
        return list(result.scalars().all())

    async def get_by_id(self, transition_id: UUID) -> Optional[StageTransition]:
        return await self.db.get(StageTransition, transition_id)

    async def create(self, data: Dict[str, Any], created_by: Optional[UUID] = None) -> StageTransition:
        """Create a new edge."""
        transition = StageTransition(created_by=created_by, **data)
        self.db.add(transition)
        await self.db.flush()
        await self.db.refresh(transition)
        return transition

    async def update(self, transition: StageTransition, data: Dict[str, Any]) -> StageTransition:
        for field, value in data.items():
            setattr(transition, field, value)
        await self.db.flush()
        await self.db.refresh(transition)
        return transition

    async def delete(self, transition: StageTransition) -> None:
        await self.db.delete(transition)
        await self.db.flush()

    async def delete_touching_stage(self, stage_id: UUID) -> int:
        """Delete every edge into or out of a stage."""
        result = await self.db.execute(
            delete(StageTransition)
            .where(
                or_(
                    StageTransition.from_stage_id == stage_id,
                    StageTransition.to_stage_id == stage_id,
                )
            )
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
