"""
Stage configuration resolver.

Resolves the effective stage set of a company: its own stages when it has
any, otherwise the platform default set. The two are never merged.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.cache import STAGE_CONFIG_CACHE, StageConfigCache
from jobflow.errors import ConfigurationError
from jobflow.models.stage import JobStage
from jobflow.models.transition import StageTransition
from jobflow.repositories.question_repository import QuestionRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.repositories.transition_repository import TransitionRepository
from jobflow.schemas.conditions import PriorResponseEquals, parse_skip_conditions
from jobflow.schemas.question import QuestionRead
from jobflow.schemas.stage import (
    ConfigurationReport,
    EffectiveStagesRead,
    StageRead,
    StageWithConfigRead,
)
from jobflow.schemas.transition import TransitionRead

logger = logging.getLogger(__name__)


def is_terminal_stage(stage: JobStage, outgoing: List[StageTransition]) -> bool:
    """Terminal: maps to a final status, or has nowhere to go."""
    return stage.is_terminal_status or not outgoing


class StageConfigService:
    """Read side of the stage configuration."""

    def __init__(self, db: AsyncSession, cache: Optional[StageConfigCache] = None):
        self.stages = StageRepository(db)
        self.questions = QuestionRepository(db)
        self.transitions = TransitionRepository(db)
        self.cache = cache or STAGE_CONFIG_CACHE

    async def resolve_stages(self, company_id: Optional[UUID]) -> List[JobStage]:
        """
        Effective ordered stages for a company.

        Raises:
            ConfigurationError: neither company nor platform stages exist
        """
        if company_id is not None:
            own = await self.stages.list_for_scope(company_id)
            if own:
                return own

        platform = await self.stages.list_for_scope(None)
        if not platform:
            logger.error("No stage configuration for company %s and no platform defaults", company_id)
            raise ConfigurationError(
                "No stage configuration is available",
                {"company_id": str(company_id) if company_id else None},
            )
        return platform

    async def initial_stage(self, company_id: Optional[UUID]) -> JobStage:
        stages = await self.resolve_stages(company_id)
        initial = [stage for stage in stages if stage.is_initial]
        if len(initial) != 1:
            logger.error(
                "Scope of company %s has %s initial stages, expected exactly one",
                company_id,
                len(initial),
            )
            raise ConfigurationError(
                "Stage configuration has no unique initial stage",
                {"company_id": str(company_id) if company_id else None, "initial_count": len(initial)},
            )
        return initial[0]

    async def is_in_effective_set(self, company_id: Optional[UUID], stage_id: UUID) -> bool:
        return any(stage.id == stage_id for stage in await self.resolve_stages(company_id))

    async def effective_workflow(self, company_id: Optional[UUID]) -> EffectiveStagesRead:
        """Effective stages with their questions and outgoing edges, cached per company."""
        cached = self.cache.get(company_id)
        if cached is not None:
            return cached

        stages = await self.resolve_stages(company_id)
        stage_ids = [stage.id for stage in stages]

        questions_by_stage: Dict[UUID, List[QuestionRead]] = {stage_id: [] for stage_id in stage_ids}
        for question in await self.questions.list_for_stages(stage_ids):
            questions_by_stage[question.stage_id].append(QuestionRead.model_validate(question))

        transitions_by_stage: Dict[UUID, List[TransitionRead]] = {stage_id: [] for stage_id in stage_ids}
        for transition in await self.transitions.list_for_stages(stage_ids):
            transitions_by_stage[transition.from_stage_id].append(TransitionRead.model_validate(transition))

        workflow = EffectiveStagesRead(
            company_id=company_id,
            scope="company" if stages[0].company_id is not None else "platform",
            stages=[
                StageWithConfigRead(
                    **StageRead.model_validate(stage).model_dump(),
                    questions=questions_by_stage[stage.id],
                    transitions=transitions_by_stage[stage.id],
                )
                for stage in stages
            ],
        )
        self.cache.set(company_id, workflow)
        return workflow

    async def validate_configuration(self, company_id: Optional[UUID]) -> ConfigurationReport:
        """
        Check one scope's stage graph.

        Exactly one initial stage, at least one terminal stage, unique
        sequence orders, edges and skip references internal to the scope.
        """
        problems: List[str] = []
        stages = await self.stages.list_for_scope(company_id)
        if not stages:
            return ConfigurationReport(company_id=company_id, valid=False, problems=["scope has no stages"])

        stage_ids = {stage.id for stage in stages}
        questions = await self.questions.list_for_stages(list(stage_ids))
        question_stage = {question.id: question.stage_id for question in questions}
        transitions = await self.transitions.list_for_stages(list(stage_ids))

        initial = [stage for stage in stages if stage.is_initial]
        if len(initial) != 1:
            problems.append(f"expected exactly one initial stage, found {len(initial)}")

        outgoing: Dict[UUID, List[StageTransition]] = {stage_id: [] for stage_id in stage_ids}
        for transition in transitions:
            outgoing[transition.from_stage_id].append(transition)
        if not any(is_terminal_stage(stage, outgoing[stage.id]) for stage in stages):
            problems.append("no terminal stage")

        for order, count in Counter(stage.sequence_order for stage in stages).items():
            if count > 1:
                problems.append(f"sequence_order {order} is used by {count} stages")

        for transition in transitions:
            if transition.to_stage_id not in stage_ids:
                problems.append(f"transition {transition.id} leads outside the scope")
            if transition.from_stage_id == transition.to_stage_id:
                problems.append(f"transition {transition.id} is a self-transition")
            if (
                transition.trigger_question_id is not None
                and question_stage.get(transition.trigger_question_id) != transition.from_stage_id
            ):
                problems.append(f"transition {transition.id} is triggered by a question outside its stage")

        for question in questions:
            for condition in parse_skip_conditions(question.skip_conditions):
                if isinstance(condition, PriorResponseEquals) and condition.question_id not in question_stage:
                    problems.append(f"question {question.id} skip condition references an unknown question")

        return ConfigurationReport(company_id=company_id, valid=not problems, problems=problems)
