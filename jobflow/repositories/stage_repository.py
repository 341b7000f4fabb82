"""
Stage repository - database operations for JobStage.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.stage import JobStage


def _scope_filter(company_id: Optional[UUID]):
    if company_id is None:
        return JobStage.company_id.is_(None)
    return JobStage.company_id == company_id


class StageRepository:
    """Repository for JobStage database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_scope(self, company_id: Optional[UUID]) -> List[JobStage]:
        """Stages of one scope (company, or platform when None) in sequence order."""
        result = await self.db.execute(
            select(JobStage)
            .where(_scope_filter(company_id))
            .order_by(JobStage.sequence_order, JobStage.created_at)
        )
        return list(result.scalars().all())

    async def count_for_scope(self, company_id: Optional[UUID]) -> int:
        result = await self.db.execute(
            select(func.count(JobStage.id)).where(_scope_filter(company_id))
        )
        return result.scalar_one()

    async def get_by_id(self, stage_id: UUID) -> Optional[JobStage]:
        return await self.db.get(JobStage, stage_id)

    async def get_initial(self, company_id: Optional[UUID]) -> List[JobStage]:
        """All stages flagged initial in a scope (a valid scope has exactly one)."""
        result = await self.db.execute(
            select(JobStage).where(_scope_filter(company_id), JobStage.is_initial.is_(True))
        )
        return list(result.scalars().all())

    async def create(self, company_id: Optional[UUID], data: Dict[str, Any], created_by: Optional[UUID] = None) -> JobStage:
        """Create a new stage."""
        stage = JobStage(company_id=company_id, created_by=created_by, **data)
        self.db.add(stage)
        await self.db.flush()
        await self.db.refresh(stage)
        return stage

    async def update(self, stage: JobStage, data: Dict[str, Any]) -> JobStage:
        for field, value in data.items():
            setattr(stage, field, value)
        await self.db.flush()
        await self.db.refresh(stage)
        return stage

    async def delete(self, stage: JobStage) -> None:
        await self.db.delete(stage)
        await self.db.flush()

    async def get_many(self, stage_ids) -> Dict[UUID, JobStage]:
        """Stages by id; unknown and None ids are ignored."""
        wanted = {stage_id for stage_id in stage_ids if stage_id is not None}
        if not wanted:
            return {}
        result = await self.db.execute(select(JobStage).where(JobStage.id.in_(wanted)))
        return {stage.id: stage for stage in result.scalars().all()}
