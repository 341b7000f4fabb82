"""
Response repository - database operations for JobResponse.
"""

from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.response import JobResponse


class ResponseRepository:
    """Repository for JobResponse database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_job(self, job_id: UUID) -> List[JobResponse]:
        """Every active response and skip marker of a job."""
        result = await self.db.execute(
            select(JobResponse)
            .where(JobResponse.job_id == job_id)
            .order_by(JobResponse.created_at)
        )
        return list(result.scalars().all())

    async def get(self, job_id: UUID, question_id: UUID) -> Optional[JobResponse]:
        result = await self.db.execute(
            select(JobResponse).where(
                JobResponse.job_id == job_id,
                JobResponse.question_id == question_id,
            )
        )
        return result.scalar_one_or_none()

    async def create(self, data: Dict[str, Any]) -> JobResponse:
        response = JobResponse(**data)
        self.db.add(response)
        await self.db.flush()
        await self.db.refresh(response)
        return response

    async def update(self, response: JobResponse, data: Dict[str, Any]) -> JobResponse:
        for field, value in data.items():
            setattr(response, field, value)
        await self.db.flush()
        await self.db.refresh(response)
        return response
