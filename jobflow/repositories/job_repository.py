"""
Job repository - database operations for Job.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.job import Job


class JobRepository:
    """Repository for Job database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, job_id: UUID) -> Optional[Job]:
        result = await self.db.execute(select(Job).where(Job.id == job_id))
        return result.scalar_one_or_none()

    async def get_for_update(self, job_id: UUID) -> Optional[Job]:
        """
        Load a job holding its row lock until the transaction ends.

        populate_existing refreshes an instance already in the identity map, so
        the version seen here is the committed one.
        """
        result = await self.db.execute(
            select(Job)
            .where(Job.id == job_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        company_id: UUID,
        title: str,
        job_type: str,
        stage_id: UUID,
        status: str,
        entered_at: datetime,
        created_by: Optional[UUID] = None,
    ) -> Job:
        """Create a job placed on its starting stage."""
        job = Job(
            company_id=company_id,
            title=title,
            job_type=job_type,
            current_stage_id=stage_id,
            initial_stage_id=stage_id,
            stage_entered_at=entered_at,
            status=status,
            created_by=created_by,
        )
        self.db.add(job)
        await self.db.flush()
        await self.db.refresh(job)
        return job

    async def clear_stage(self, stage_id: UUID) -> int:
        """Detach every job currently sitting in a stage; bumps their version."""
        result = await self.db.execute(
            update(Job)
            .where(Job.current_stage_id == stage_id)
            .values(current_stage_id=None, version=Job.version + 1)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount or 0
