"""
Question bank.

Ordered questions per stage, and the per-job view of which of them are
answered, skipped or still remaining.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Set
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.models.enums import ResponseSource
from jobflow.models.job import Job
from jobflow.models.question import StageQuestion
from jobflow.models.response import JobResponse
from jobflow.repositories.question_repository import QuestionRepository
from jobflow.repositories.response_repository import ResponseRepository
from jobflow.services.skip_conditions import should_skip

logger = logging.getLogger(__name__)


@dataclass
class StageProgress:
    """A job's position inside one stage."""

    questions: List[StageQuestion]
    remaining: List[StageQuestion] = field(default_factory=list)
    answered_ids: List[UUID] = field(default_factory=list)
    skipped_ids: List[UUID] = field(default_factory=list)
    # Skips that hold now but have no persisted marker yet
    newly_skipped: List[StageQuestion] = field(default_factory=list)

    @property
    def current_question(self) -> Optional[StageQuestion]:
        return self.remaining[0] if self.remaining else None

    @property
    def is_complete(self) -> bool:
        """Complete when nothing required is left; optional questions never block."""
        return not any(question.is_required for question in self.remaining)


def active_answers(responses: Iterable[JobResponse]) -> Dict[UUID, str]:
    """question_id -> answer for real responses (skip markers excluded)."""
    return {
        response.question_id: response.value
        for response in responses
        if not response.is_skipped and response.value is not None
    }


def plan_stage(questions: Sequence[StageQuestion], job: Job, responses: Iterable[JobResponse]) -> StageProgress:
    """
    Split a stage's questions into answered, skipped and remaining.

    A persisted skip marker always counts as skipped, whatever the
    conditions say now. An answered question stays answered even when a
    later answer would skip it.
    """
    responses = list(responses)
    answers = active_answers(responses)
    marked: Set[UUID] = {response.question_id for response in responses if response.is_skipped}

    progress = StageProgress(questions=list(questions))
    for question in progress.questions:
        if question.id in answers:
            progress.answered_ids.append(question.id)
        elif question.id in marked:
            progress.skipped_ids.append(question.id)
        elif should_skip(question, job, answers):
            progress.skipped_ids.append(question.id)
            progress.newly_skipped.append(question)
        else:
            progress.remaining.append(question)
    return progress


class QuestionBank:
    """Reads stage questions and keeps a job's skip markers in sync."""

    def __init__(self, db: AsyncSession):
        self.questions = QuestionRepository(db)
        self.responses = ResponseRepository(db)

    async def questions_for_stage(self, stage_id: UUID) -> List[StageQuestion]:
        return await self.questions.list_for_stage(stage_id)

    async def remaining_questions(self, stage_id: UUID, answered_question_ids: Iterable[UUID]) -> List[StageQuestion]:
        """Questions of the stage not in answered_question_ids, in order."""
        answered = set(answered_question_ids)
        return [q for q in await self.questions_for_stage(stage_id) if q.id not in answered]

    async def progress(self, job: Job, stage_id: UUID) -> StageProgress:
        """Read-only view; computed skips are not persisted."""
        questions = await self.questions_for_stage(stage_id)
        responses = await self.responses.list_for_job(job.id)
        return plan_stage(questions, job, responses)

    async def sync_skips(self, job: Job, stage_id: UUID) -> StageProgress:
        """
        Compute progress and persist a system marker for every new skip, so a
        skipped question never becomes current again for this job.
        """
        progress = await self.progress(job, stage_id)
        for question in progress.newly_skipped:
            await self.responses.create(
                {
                    "company_id": job.company_id,
                    "job_id": job.id,
                    "question_id": question.id,
                    "value": None,
                    "source": ResponseSource.SYSTEM.value,
                    "is_skipped": True,
                    "response_metadata": {"reason": "skip_condition"},
                }
            )
            logger.debug("Question %s skipped for job %s", question.id, job.id)
        progress.newly_skipped = []
        return progress
