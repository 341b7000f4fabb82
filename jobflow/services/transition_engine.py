"""
Transition engine.

Matches a stage's outgoing edges against a job and moves the job. This is
the only code that changes Job.current_stage_id (stage deletion aside, which
detaches jobs); every move appends one audit entry in the same flush.
"""

import logging
from typing import Any, Dict, Mapping, Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.errors import ConfigurationError
from jobflow.models.audit import StageAuditEntry
from jobflow.models.enums import TriggerSource
from jobflow.models.job import Job
from jobflow.models.stage import JobStage
from jobflow.models.transition import StageTransition
from jobflow.repositories.audit_repository import AuditRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.repositories.transition_repository import TransitionRepository
from jobflow.schemas.actor import Actor
from jobflow.schemas.conditions import JobTypeIn, NumericThreshold, parse_transition_conditions
from jobflow.services.concurrency import translate_conflicts
from jobflow.services.response_validation import parse_number
from jobflow.services.skip_conditions import normalize_job_type
from jobflow.utils.time import seconds_between, utc_now

logger = logging.getLogger(__name__)


def _normalize_answer(value: str) -> str:
    return value.strip().casefold()


def guards_hold(edge: StageTransition, job: Job) -> bool:
    """Every JobTypeIn guard on the edge admits the job's type."""
    job_type = normalize_job_type(job.job_type)
    for condition in parse_transition_conditions(edge.conditions):
        if isinstance(condition, JobTypeIn):
            if job_type not in {normalize_job_type(t) for t in condition.job_types}:
                return False
    return True


def edge_matches(
    edge: StageTransition,
    job: Job,
    trigger_question_id: Optional[UUID],
    trigger_value: Optional[str],
    answers: Mapping[UUID, str],
) -> bool:
    """
    Whether edge fires for job.

    - requires_admin_override edges never fire on their own.
    - JobTypeIn guards must all hold.
    - An edge without trigger fires only if it is automatic.
    - A trigger keyed to a question is tested against the job's active
      answer to it; otherwise against the value just submitted.
    - trigger_response (case-insensitive) and numeric thresholds are
      alternatives: either one matching is enough.
    """
    if edge.requires_admin_override:
        return False
    if not guards_hold(edge, job):
        return False

    thresholds = [
        condition
        for condition in parse_transition_conditions(edge.conditions)
        if isinstance(condition, NumericThreshold)
    ]
    has_value_trigger = edge.trigger_response is not None or bool(thresholds)

    if edge.trigger_question_id is None and not has_value_trigger:
        return edge.is_automatic

    if edge.trigger_question_id is not None:
        tested = answers.get(edge.trigger_question_id)
        if edge.trigger_question_id == trigger_question_id and trigger_value is not None:
            tested = trigger_value
    else:
        tested = trigger_value

    if tested is None:
        return False
    if not has_value_trigger:
        # Keyed to a question with no expected value: any answer fires it
        return True

    if edge.trigger_response is not None and _normalize_answer(tested) == _normalize_answer(edge.trigger_response):
        return True
    number = parse_number(tested)
    if number is not None and any(threshold.holds(float(number)) for threshold in thresholds):
        return True
    return False


def select_edge(
    edges: Sequence[StageTransition],
    job: Job,
    trigger_question_id: Optional[UUID] = None,
    trigger_value: Optional[str] = None,
    answers: Optional[Mapping[UUID, str]] = None,
) -> Optional[StageTransition]:
    """First matching edge in configuration order; more than one match is logged."""
    matching = [
        edge
        for edge in edges
        if edge_matches(edge, job, trigger_question_id, trigger_value, answers or {})
    ]
    if len(matching) > 1:
        logger.warning(
            "Ambiguous transition configuration for job %s: %s edges match, taking %s",
            job.id,
            len(matching),
            matching[0].id,
        )
    return matching[0] if matching else None


class TransitionEngine:
    """Moves jobs between stages and writes their audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.stages = StageRepository(db)
        self.transitions = TransitionRepository(db)
        self.audit = AuditRepository(db)

    async def attempt_transition(
        self,
        job: Job,
        from_stage: JobStage,
        actor: Actor,
        trigger_question_id: Optional[UUID] = None,
        trigger_value: Optional[str] = None,
        answers: Optional[Mapping[UUID, str]] = None,
        trigger_source: TriggerSource = TriggerSource.QUESTION_RESPONSE,
    ) -> Optional[StageAuditEntry]:
        """
        Take the first matching outgoing edge of from_stage, if any.

        Returns the audit entry, or None when the job stays where it is
        (terminal, or awaiting manual action).
        """
        edges = await self.transitions.list_from_stage(from_stage.id)
        edge = select_edge(edges, job, trigger_question_id, trigger_value, answers)
        if edge is None:
            logger.info("Job %s stays in stage %s: no matching transition", job.id, from_stage.id)
            return None

        to_stage = await self.stages.get_by_id(edge.to_stage_id)
        if to_stage is None:
            logger.error("Transition %s points at missing stage %s", edge.id, edge.to_stage_id)
            raise ConfigurationError(
                "Transition target stage does not exist",
                {"transition_id": str(edge.id), "to_stage_id": str(edge.to_stage_id)},
            )

        return await self.apply_transition(
            job,
            to_stage,
            actor,
            trigger_source,
            transition=edge,
            question_id=trigger_question_id,
            response_value=trigger_value,
            from_stage=from_stage,
        )

    async def apply_transition(
        self,
        job: Job,
        to_stage: JobStage,
        actor: Actor,
        trigger_source: TriggerSource,
        transition: Optional[StageTransition] = None,
        question_id: Optional[UUID] = None,
        response_value: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        from_stage: Optional[JobStage] = None,
    ) -> StageAuditEntry:
        """Move job into to_stage and append the audit entry."""
        if to_stage.id == job.current_stage_id:
            raise ConfigurationError(
                "A job cannot transition into the stage it is already in",
                {"job_id": str(job.id), "stage_id": str(to_stage.id)},
            )
        if from_stage is None and job.current_stage_id is not None:
            from_stage = await self.stages.get_by_id(job.current_stage_id)

        now = utc_now()
        entry = StageAuditEntry(
            company_id=job.company_id,
            job_id=job.id,
            sequence_number=await self.audit.next_sequence_number(job.id),
            from_stage_id=job.current_stage_id,
            to_stage_id=to_stage.id,
            from_status=from_stage.maps_to_status if from_stage is not None else job.status,
            to_status=to_stage.maps_to_status,
            trigger_source=trigger_source.value,
            triggered_by=actor.user_id,
            transition_id=transition.id if transition is not None else None,
            question_id=question_id,
            response_value=response_value,
            trigger_details=details or {},
            duration_in_previous_stage_seconds=seconds_between(job.stage_entered_at, now),
            created_at=now,
            updated_at=now,
        )

        job.current_stage_id = to_stage.id
        job.stage_entered_at = now
        job.status = to_stage.maps_to_status

        async with translate_conflicts(job.id):
            await self.db.flush()
            await self.audit.append(entry)

        logger.info(
            "Job %s moved %s -> %s (%s, entry %s)",
            job.id,
            entry.from_stage_id,
            entry.to_stage_id,
            trigger_source.value,
            entry.sequence_number,
        )
        return entry
