"""
Job business logic service.

Job creation and the explicit stage moves: manual advance along an edge,
privileged override, and re-evaluation of a complete stage.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.permissions import Roles, can_access_company, raise_if_not_roles
from jobflow.errors import NotFoundError, PermissionDeniedError, ValidationError
from jobflow.models.enums import TriggerSource
from jobflow.models.job import Job
from jobflow.models.response import JobResponse
from jobflow.repositories.job_repository import JobRepository
from jobflow.repositories.response_repository import ResponseRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.repositories.transition_repository import TransitionRepository
from jobflow.schemas.actor import Actor
from jobflow.schemas.audit import AuditEntryRead
from jobflow.schemas.job import AdvanceRequest, JobCreate, JobRead, OverrideRequest, TransitionOutcome
from jobflow.services.concurrency import run_with_retry, translate_conflicts
from jobflow.services.question_bank import QuestionBank, active_answers
from jobflow.services.stage_config_service import StageConfigService
from jobflow.services.transition_engine import TransitionEngine, guards_hold
from jobflow.utils.time import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Roles that may move a job along a manual edge
ADVANCERS = [Roles.SITE_ADMIN, Roles.OWNER, Roles.ADMIN, Roles.FOREMAN, Roles.WORKER]


async def load_job(jobs: JobRepository, job_id: UUID, actor: Actor, lock: bool = False) -> Job:
    """Fetch a job the actor may see; other companies' jobs look missing."""
    job = await (jobs.get_for_update(job_id) if lock else jobs.get_by_id(job_id))
    if job is None or not can_access_company(actor, job.company_id):
        raise NotFoundError(f"Job {job_id} not found", {"job_id": str(job_id)})
    return job


def latest_stage_answer(responses, question_ids) -> Optional[JobResponse]:
    """Most recently written real answer among question_ids."""
    candidates = [
        response
        for response in responses
        if response.question_id in question_ids and not response.is_skipped and response.value is not None
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda response: ensure_utc(response.updated_at))


class JobService:
    """Service for job lifecycle operations outside plain question answering."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.jobs = JobRepository(db)
        self.stages = StageRepository(db)
        self.transitions = TransitionRepository(db)
        self.responses = ResponseRepository(db)
        self.config = StageConfigService(db)
        self.bank = QuestionBank(db)
        self.engine = TransitionEngine(db)

    async def create_job(self, data: JobCreate, actor: Actor) -> Job:
        """Create a job on the initial stage of its company's effective stage set."""
        raise_if_not_roles(actor.role, ADVANCERS, "create jobs")
        company_id = actor.company_id
        if actor.role == Roles.SITE_ADMIN and data.company_id is not None:
            company_id = data.company_id
        if company_id is None:
            raise ValidationError("company_id is required", {"field": "company_id"})
        if data.company_id is not None and data.company_id != company_id:
            raise PermissionDeniedError("Cannot create jobs for another company", {"company_id": str(data.company_id)})

        initial = await self.config.initial_stage(company_id)
        job = await self.jobs.create(
            company_id=company_id,
            title=data.title,
            job_type=data.job_type.strip(),
            stage_id=initial.id,
            status=initial.maps_to_status,
            entered_at=utc_now(),
            created_by=actor.user_id,
        )
        # Job-type exclusions can already skip questions of the first stage
        await self.bank.sync_skips(job, initial.id)
        logger.info("Created job %s in stage %s for company %s", job.id, initial.id, company_id)
        return job

    async def get_job(self, job_id: UUID, actor: Actor) -> Job:
        return await load_job(self.jobs, job_id, actor)

    async def advance_manually(self, job_id: UUID, data: AdvanceRequest, actor: Actor) -> TransitionOutcome:
        raise_if_not_roles(actor.role, ADVANCERS, "advance jobs")
        return await run_with_retry(self.db, lambda: self._advance_once(job_id, data, actor), job_id)

    async def _advance_once(self, job_id: UUID, data: AdvanceRequest, actor: Actor) -> TransitionOutcome:
        job = await load_job(self.jobs, job_id, actor, lock=True)
        edge = await self.transitions.get_by_id(data.transition_id)
        if edge is None:
            raise NotFoundError(f"Transition {data.transition_id} not found", {"transition_id": str(data.transition_id)})
        if edge.from_stage_id != job.current_stage_id:
            raise ValidationError(
                "Transition does not leave the job's current stage",
                {"transition_id": str(edge.id), "current_stage_id": str(job.current_stage_id)},
            )
        if edge.requires_admin_override and actor.role not in Roles.OVERRIDERS:
            raise PermissionDeniedError("Transition requires an administrator", {"transition_id": str(edge.id)})
        if not guards_hold(edge, job):
            raise ValidationError(
                "Transition does not apply to this job type",
                {"transition_id": str(edge.id), "job_type": job.job_type},
            )

        progress = await self.bank.sync_skips(job, edge.from_stage_id)
        if not progress.is_complete:
            raise ValidationError(
                "Required questions are still unanswered",
                {"remaining_question_ids": [str(q.id) for q in progress.remaining if q.is_required]},
            )

        to_stage = await self.stages.get_by_id(edge.to_stage_id)
        entry = await self.engine.apply_transition(
            job, to_stage, actor, TriggerSource.MANUAL, transition=edge
        )
        await self._enter_stage(job, entry.to_stage_id)
        return self._outcome(job, entry, f"Job moved to {to_stage.name}")

    async def override_stage(self, job_id: UUID, data: OverrideRequest, actor: Actor) -> TransitionOutcome:
        raise_if_not_roles(actor.role, Roles.OVERRIDERS, "override job stages")
        return await run_with_retry(self.db, lambda: self._override_once(job_id, data, actor), job_id)

    async def _override_once(self, job_id: UUID, data: OverrideRequest, actor: Actor) -> TransitionOutcome:
        job = await load_job(self.jobs, job_id, actor, lock=True)
        if not await self.config.is_in_effective_set(job.company_id, data.target_stage_id):
            raise ValidationError(
                "Target stage is not part of this job's workflow",
                {"target_stage_id": str(data.target_stage_id)},
            )
        if data.target_stage_id == job.current_stage_id:
            raise ValidationError("Job is already in that stage", {"target_stage_id": str(data.target_stage_id)})

        to_stage = await self.stages.get_by_id(data.target_stage_id)
        entry = await self.engine.apply_transition(
            job,
            to_stage,
            actor,
            TriggerSource.ADMIN_OVERRIDE,
            details={"reason": data.reason, "role": actor.role},
        )
        await self._enter_stage(job, entry.to_stage_id)
        return self._outcome(job, entry, f"Job moved to {to_stage.name} by override")

    async def evaluate_job(self, job_id: UUID, actor: Actor) -> TransitionOutcome:
        """Re-run transition evaluation, e.g. after an edge was added to a complete stage."""
        raise_if_not_roles(actor.role, ADVANCERS, "evaluate jobs")
        return await run_with_retry(self.db, lambda: self._evaluate_once(job_id, actor), job_id)

    async def _evaluate_once(self, job_id: UUID, actor: Actor) -> TransitionOutcome:
        job = await load_job(self.jobs, job_id, actor, lock=True)
        if job.current_stage_id is None:
            return self._outcome(job, None, "Job has no current stage")

        stage = await self.stages.get_by_id(job.current_stage_id)
        progress = await self.bank.sync_skips(job, stage.id)
        if not progress.is_complete:
            return self._outcome(job, None, "Stage is not complete; awaiting further input")

        responses = await self.responses.list_for_job(job.id)
        trigger = latest_stage_answer(responses, {q.id for q in progress.questions})
        entry = await self.engine.attempt_transition(
            job,
            stage,
            actor,
            trigger_question_id=trigger.question_id if trigger else None,
            trigger_value=trigger.value if trigger else None,
            answers=active_answers(responses),
            trigger_source=TriggerSource.SYSTEM_AUTO,
        )
        if entry is None:
            return self._outcome(job, None, "Still in current stage, awaiting further input")
        await self._enter_stage(job, entry.to_stage_id)
        return self._outcome(job, entry, "Job moved to the next stage")

    async def _enter_stage(self, job: Job, stage_id: UUID) -> None:
        async with translate_conflicts(job.id):
            await self.bank.sync_skips(job, stage_id)

    @staticmethod
    def _outcome(job: Job, entry, message: str) -> TransitionOutcome:
        return TransitionOutcome(
            job=JobRead.model_validate(job),
            transitioned=entry is not None,
            audit_entry=AuditEntryRead.model_validate(entry) if entry is not None else None,
            message=message,
        )
