"""
Audit repository - append-only access to StageAuditEntry.
"""

from typing import List
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.audit import StageAuditEntry


class AuditRepository:
    """Repository for StageAuditEntry database operations. There is no update or delete."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_job(self, job_id: UUID) -> List[StageAuditEntry]:
        result = await self.db.execute(
            select(StageAuditEntry)
            .where(StageAuditEntry.job_id == job_id)
            .order_by(StageAuditEntry.sequence_number)
        )
        return list(result.scalars().all())

    async def next_sequence_number(self, job_id: UUID) -> int:
        result = await self.db.execute(
            select(func.max(StageAuditEntry.sequence_number)).where(StageAuditEntry.job_id == job_id)
        )
        current = result.scalar_one_or_none()
        return (current or 0) + 1

    async def count_referencing_stage(self, stage_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(StageAuditEntry.id)).where(
                or_(
                    StageAuditEntry.from_stage_id == stage_id,
                    StageAuditEntry.to_stage_id == stage_id,
                )
            )
        )
        return result.scalar_one()

    async def append(self, entry: StageAuditEntry) -> StageAuditEntry:
        self.db.add(entry)
        await self.db.flush()
        await self.db.refresh(entry)
        return entry
