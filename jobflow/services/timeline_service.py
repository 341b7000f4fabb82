"""
Audit and timeline reader.

Rebuilds a job's stage history from the append-only audit log. Pure reads.
"""

import logging
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.audit import StageAuditEntry
from jobflow.models.job import Job
from jobflow.models.stage import JobStage
from jobflow.repositories.audit_repository import AuditRepository
from jobflow.repositories.job_repository import JobRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.schemas.actor import Actor
from jobflow.schemas.audit import EnhancedTimeline, StageMetric, TimelineEntry
from jobflow.services.job_service import load_job
from jobflow.services.stage_config_service import StageConfigService
from jobflow.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class TimelineService:
    """Service for reading a job's stage history."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.jobs = JobRepository(db)
        self.audit = AuditRepository(db)
        self.stages = StageRepository(db)
        self.config = StageConfigService(db)

    async def audit_history(self, job_id: UUID, actor: Actor) -> List[StageAuditEntry]:
        job = await load_job(self.jobs, job_id, actor)
        return await self.audit.list_for_job(job.id)

    async def timeline(self, job_id: UUID, actor: Actor) -> List[TimelineEntry]:
        job = await load_job(self.jobs, job_id, actor)
        return await self._build_timeline(job)

    async def enhanced_timeline(self, job_id: UUID, actor: Actor) -> EnhancedTimeline:
        """
        Timeline plus progress through the company's effective stage set.

        A stage counts as completed once the job has left it.
        """
        job = await load_job(self.jobs, job_id, actor)
        entries = await self._build_timeline(job)
        total = len(await self.config.resolve_stages(job.company_id))

        exited = {entry.from_stage_id for entry in entries if entry.from_stage_id is not None}
        completed = min(len(exited), total)
        percentage = round(completed / total * 100) if total else 0

        names = await self._stage_names([job.current_stage_id])
        return EnhancedTimeline(
            job_id=job.id,
            entries=entries,
            current_stage_id=job.current_stage_id,
            current_stage_name=names.get(job.current_stage_id),
            completed_stage_count=completed,
            total_stage_count=total,
            progress_percentage=percentage,
        )

    async def stage_metrics(self, job_id: UUID, actor: Actor) -> List[StageMetric]:
        """One record per stage visit: when entered, when left, hours spent, within expectations."""
        job = await load_job(self.jobs, job_id, actor)
        entries = await self.audit.list_for_job(job.id)

        visits = []
        if entries:
            first_stage = entries[0].from_stage_id or job.initial_stage_id
        else:
            first_stage = job.current_stage_id
        if first_stage is not None:
            visits.append([first_stage, ensure_utc(job.created_at), None])
        for entry in entries:
            changed_at = ensure_utc(entry.created_at)
            if visits:
                visits[-1][2] = changed_at
            visits.append([entry.to_stage_id, changed_at, None])

        stages = await self.stages.get_many([visit[0] for visit in visits])
        now = utc_now()
        metrics = []
        for index, (stage_id, entered_at, exited_at) in enumerate(visits):
            stage = stages.get(stage_id)
            hours = round(((exited_at or now) - entered_at).total_seconds() / 3600, 2)
            is_current = index == len(visits) - 1 and stage_id == job.current_stage_id
            metrics.append(
                StageMetric(
                    stage_id=stage_id,
                    stage_name=stage.name if stage else None,
                    entered_at=entered_at,
                    exited_at=exited_at,
                    duration_hours=hours,
                    min_duration_hours=stage.min_duration_hours if stage else None,
                    max_duration_hours=stage.max_duration_hours if stage else None,
                    within_expected=_within_expected(stage, hours, exited_at is not None),
                    is_current=is_current,
                )
            )
        return metrics

    async def _build_timeline(self, job: Job) -> List[TimelineEntry]:
        entries = await self.audit.list_for_job(job.id)

        if not entries:
            if job.current_stage_id is None:
                return []
            names = await self._stage_names([job.current_stage_id])
            return [
                TimelineEntry(
                    sequence_number=0,
                    from_stage_id=None,
                    from_stage_name=None,
                    to_stage_id=job.current_stage_id,
                    to_stage_name=names.get(job.current_stage_id),
                    to_status=job.status,
                    trigger_source=None,
                    triggered_by=job.created_by,
                    changed_at=ensure_utc(job.stage_entered_at or job.created_at),
                    duration_in_previous_stage_seconds=0,
                    is_current=True,
                    is_synthetic=True,
                )
            ]

        stage_ids = [job.initial_stage_id]
        for entry in entries:
            stage_ids.extend([entry.from_stage_id, entry.to_stage_id])
        names = await self._stage_names(stage_ids)

        timeline = []
        for index, entry in enumerate(entries):
            from_stage_id = entry.from_stage_id
            if index == 0 and from_stage_id is None:
                from_stage_id = job.initial_stage_id
            timeline.append(
                TimelineEntry(
                    id=entry.id,
                    sequence_number=entry.sequence_number,
                    from_stage_id=from_stage_id,
                    from_stage_name=names.get(from_stage_id),
                    to_stage_id=entry.to_stage_id,
                    to_stage_name=names.get(entry.to_stage_id),
                    to_status=entry.to_status,
                    trigger_source=entry.trigger_source,
                    triggered_by=entry.triggered_by,
                    changed_at=ensure_utc(entry.created_at),
                    duration_in_previous_stage_seconds=entry.duration_in_previous_stage_seconds,
                    is_current=index == len(entries) - 1 and entry.to_stage_id == job.current_stage_id,
                )
            )
        return timeline

    async def _stage_names(self, stage_ids) -> Dict[UUID, str]:
        return {stage_id: stage.name for stage_id, stage in (await self.stages.get_many(stage_ids)).items()}


def _within_expected(stage: Optional[JobStage], hours: float, finished: bool) -> Optional[bool]:
    """
    Finished visits: between min and max. Running visits: only known once
    they overrun max.
    """
    if stage is None:
        return None
    over_max = stage.max_duration_hours is not None and hours > stage.max_duration_hours
    if not finished:
        return False if over_max else None
    return hours >= stage.min_duration_hours and not over_max
