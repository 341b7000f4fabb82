"""
Response processor.

Records an answer, recomputes the stage's remaining questions and hands a
complete stage to the transition engine. One submission is one unit of
work per job: it commits whole or is retried whole.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.permissions import Roles
from jobflow.errors import InvalidQuestionError, NotFoundError
from jobflow.models.audit import StageAuditEntry
from jobflow.models.enums import ResponseSource
from jobflow.models.job import Job
from jobflow.models.response import JobResponse
from jobflow.repositories.job_repository import JobRepository
from jobflow.repositories.question_repository import QuestionRepository
from jobflow.repositories.response_repository import ResponseRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.repositories.transition_repository import TransitionRepository
from jobflow.schemas.actor import Actor
from jobflow.schemas.audit import AuditEntryRead
from jobflow.schemas.job import JobRead, QuestionFlowState
from jobflow.schemas.question import QuestionRead
from jobflow.schemas.response import ResponseRead, ResponseSubmit, SubmissionResult
from jobflow.schemas.stage import StageRead
from jobflow.services.concurrency import run_with_retry, translate_conflicts
from jobflow.services.job_service import latest_stage_answer, load_job
from jobflow.services.question_bank import QuestionBank, StageProgress, active_answers
from jobflow.services.response_validation import is_same_answer, validate_response_value
from jobflow.services.transition_engine import TransitionEngine, select_edge
from jobflow.utils.time import utc_now

logger = logging.getLogger(__name__)


class ResponseService:
    """Service for answering stage questions."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.jobs = JobRepository(db)
        self.questions = QuestionRepository(db)
        self.responses = ResponseRepository(db)
        self.stages = StageRepository(db)
        self.transitions = TransitionRepository(db)
        self.bank = QuestionBank(db)
        self.engine = TransitionEngine(db)

    async def submit_response(self, job_id: UUID, data: ResponseSubmit, actor: Actor) -> SubmissionResult:
        """
        Record an answer and move the job if its stage is now complete.

        Concurrency conflicts are retried; the last one is raised.
        """
        return await run_with_retry(self.db, lambda: self._submit_once(job_id, data, actor), job_id)

    async def _submit_once(self, job_id: UUID, data: ResponseSubmit, actor: Actor) -> SubmissionResult:
        job = await load_job(self.jobs, job_id, actor, lock=True)
        question = await self.questions.get_by_id(data.question_id)
        if question is None:
            raise NotFoundError(f"Question {data.question_id} not found", {"question_id": str(data.question_id)})

        existing = await self.responses.get(job.id, question.id)

        if question.stage_id != job.current_stage_id:
            if existing is not None and not existing.is_skipped and is_same_answer(question, existing.value, data.value):
                progress = await self._current_progress(job)
                return self._result(
                    job,
                    existing,
                    None,
                    progress,
                    "Answer already applied; the job has moved on",
                    already_applied=True,
                )
            raise InvalidQuestionError(
                "Question does not belong to the job's current stage",
                {"question_id": str(question.id), "current_stage_id": str(job.current_stage_id)},
            )

        progress = await self.bank.progress(job, question.stage_id)
        if question.id in progress.skipped_ids:
            raise InvalidQuestionError(
                "Question is skipped for this job",
                {"question_id": str(question.id)},
            )

        value = validate_response_value(question, data.value)
        unchanged = existing is not None and existing.value == value
        if unchanged:
            response = existing
        else:
            fields = {
                "value": value,
                "response_metadata": data.metadata,
                "responded_by": actor.user_id,
                "source": data.source.value,
                "is_client_response": data.source == ResponseSource.CLIENT_PORTAL or actor.role == Roles.CLIENT,
            }
            async with translate_conflicts(job.id):
                if existing is None:
                    response = await self.responses.create(
                        {"company_id": job.company_id, "job_id": job.id, "question_id": question.id, **fields}
                    )
                else:
                    response = await self.responses.update(existing, fields)
                # Touching the job bumps its version, so a concurrent submission conflicts
                job.updated_at = utc_now()
                await self.db.flush()

        # Unchanged answers skip the write but are still evaluated
        async with translate_conflicts(job.id):
            progress = await self.bank.sync_skips(job, question.stage_id)

        entry: Optional[StageAuditEntry] = None
        if progress.is_complete:
            stage = await self.stages.get_by_id(question.stage_id)
            answers = active_answers(await self.responses.list_for_job(job.id))
            entry = await self.engine.attempt_transition(
                job,
                stage,
                actor,
                trigger_question_id=question.id,
                trigger_value=value,
                answers=answers,
            )

        if entry is not None:
            async with translate_conflicts(job.id):
                progress = await self.bank.sync_skips(job, entry.to_stage_id)
            to_stage = await self.stages.get_by_id(entry.to_stage_id)
            message = f"Stage complete; job moved to {to_stage.name}"
        elif unchanged:
            message = "Answer unchanged"
        elif progress.is_complete:
            message = "Stage complete; still in current stage, awaiting further input"
        else:
            message = "Answer recorded"

        return self._result(job, response, entry, progress, message)

    async def current_question(self, job_id: UUID, actor: Actor) -> QuestionFlowState:
        """The job's next question, what is left, and where it would go next."""
        job = await load_job(self.jobs, job_id, actor)
        if job.current_stage_id is None:
            return QuestionFlowState(
                job_id=job.id,
                current_stage=None,
                current_question=None,
                remaining_questions=[],
                answered_question_ids=[],
                skipped_question_ids=[],
                can_proceed=False,
                next_stage_preview=None,
            )

        stage = await self.stages.get_by_id(job.current_stage_id)
        progress = await self.bank.progress(job, stage.id)

        preview = None
        if progress.is_complete:
            responses = await self.responses.list_for_job(job.id)
            trigger = latest_stage_answer(responses, {q.id for q in progress.questions})
            edge = select_edge(
                await self.transitions.list_from_stage(stage.id),
                job,
                trigger.question_id if trigger else None,
                trigger.value if trigger else None,
                active_answers(responses),
            )
            if edge is not None:
                preview = await self.stages.get_by_id(edge.to_stage_id)

        current = progress.current_question
        return QuestionFlowState(
            job_id=job.id,
            current_stage=StageRead.model_validate(stage),
            current_question=QuestionRead.model_validate(current) if current is not None else None,
            remaining_questions=[QuestionRead.model_validate(q) for q in progress.remaining],
            answered_question_ids=progress.answered_ids,
            skipped_question_ids=progress.skipped_ids,
            can_proceed=progress.is_complete,
            next_stage_preview=StageRead.model_validate(preview) if preview is not None else None,
        )

    async def _current_progress(self, job: Job) -> Optional[StageProgress]:
        if job.current_stage_id is None:
            return None
        return await self.bank.progress(job, job.current_stage_id)

    @staticmethod
    def _result(
        job: Job,
        response: JobResponse,
        entry: Optional[StageAuditEntry],
        progress: Optional[StageProgress],
        message: str,
        already_applied: bool = False,
    ) -> SubmissionResult:
        return SubmissionResult(
            job=JobRead.model_validate(job),
            response=ResponseRead.model_validate(response),
            transitioned=entry is not None,
            already_applied=already_applied,
            audit_entry=AuditEntryRead.model_validate(entry) if entry is not None else None,
            remaining_questions=[QuestionRead.model_validate(q) for q in progress.remaining] if progress else [],
            message=message,
        )
