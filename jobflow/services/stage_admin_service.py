"""
Stage configuration administration.

Writes to stages, questions and transitions. Every write invalidates the
cached effective configuration of its scope; multi-row operations run in
the caller's transaction and are rolled back whole on failure.
"""

import logging
from collections import Counter
from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from jobflow.core.cache import STAGE_CONFIG_CACHE, StageConfigCache
from jobflow.core.permissions import raise_if_cannot_configure
from jobflow.errors import ConfigurationError, DependencyCleanupError, NotFoundError, ValidationError
from jobflow.models.question import StageQuestion
from jobflow.models.stage import JobStage
from jobflow.models.transition import StageTransition
from jobflow.repositories.audit_repository import AuditRepository
from jobflow.repositories.job_repository import JobRepository
from jobflow.repositories.question_repository import QuestionRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.repositories.transition_repository import TransitionRepository
from jobflow.schemas.actor import Actor
from jobflow.schemas.conditions import PriorResponseEquals, dump_conditions, parse_skip_conditions
from jobflow.schemas.question import QuestionCreate, QuestionReorder, QuestionUpdate, check_response_options
from jobflow.schemas.stage import (
    ConfigurationReport,
    CopyGlobalResult,
    StageBulkUpdate,
    StageCreate,
    StageDeletionResult,
    StageRead,
    StageUpdate,
)
from jobflow.schemas.transition import TransitionCreate, TransitionUpdate
from jobflow.services.response_validation import validate_response_value
from jobflow.services.stage_config_service import StageConfigService

logger = logging.getLogger(__name__)

# Stage columns copied when a company takes over the platform set
_COPIED_STAGE_FIELDS = (
    "name",
    "description",
    "color",
    "sequence_order",
    "maps_to_status",
    "stage_type",
    "min_duration_hours",
    "max_duration_hours",
    "requires_approval",
    "is_initial",
)


def _check_durations(min_hours: int, max_hours: Optional[int]) -> None:
    if max_hours is not None and max_hours <= min_hours:
        raise ValidationError(
            "max_duration_hours must be greater than min_duration_hours",
            {"min_duration_hours": min_hours, "max_duration_hours": max_hours},
        )


def _scope_label(company_id: Optional[UUID]) -> Optional[str]:
    return str(company_id) if company_id is not None else None


class StageAdminService:
    """Service for changing a scope's stage configuration."""

    def __init__(self, db: AsyncSession, cache: Optional[StageConfigCache] = None):
        self.db = db
        self.stages = StageRepository(db)
        self.questions = QuestionRepository(db)
        self.transitions = TransitionRepository(db)
        self.jobs = JobRepository(db)
        self.audit = AuditRepository(db)
        self.cache = cache or STAGE_CONFIG_CACHE
        self.config = StageConfigService(db, self.cache)

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def create_stage(self, data: StageCreate, actor: Actor) -> JobStage:
        raise_if_cannot_configure(actor, data.company_id)
        await self._check_stage_order_free(data.company_id, data.sequence_order)
        if data.is_initial:
            await self._check_no_other_initial(data.company_id)

        stage = await self.stages.create(
            data.company_id,
            data.model_dump(mode="json", exclude={"company_id"}),
            created_by=actor.user_id,
        )
        self._invalidate(data.company_id)
        logger.info("Created stage %s '%s' in scope %s", stage.id, stage.name, _scope_label(stage.company_id))
        return stage

    async def update_stage(self, stage_id: UUID, data: StageUpdate, actor: Actor) -> JobStage:
        stage = await self._get_stage(stage_id)
        raise_if_cannot_configure(actor, stage.company_id)

        fields = data.model_dump(mode="json", exclude_unset=True)
        if fields.get("sequence_order") not in (None, stage.sequence_order):
            await self._check_stage_order_free(stage.company_id, fields["sequence_order"])
        if fields.get("is_initial"):
            await self._check_no_other_initial(stage.company_id, exclude_id=stage.id)
        _check_durations(
            fields.get("min_duration_hours", stage.min_duration_hours),
            fields["max_duration_hours"] if "max_duration_hours" in fields else stage.max_duration_hours,
        )

        stage = await self.stages.update(stage, fields)
        self._invalidate(stage.company_id)
        return stage

    async def bulk_update_stages(self, data: StageBulkUpdate, actor: Actor) -> List[JobStage]:
        """
        Reorder and update a scope's stages atomically.

        Moved stages are parked on temporary sequence numbers first so the
        per-scope uniqueness holds after every statement. The resulting
        configuration must validate, otherwise nothing is kept.
        """
        raise_if_cannot_configure(actor, data.company_id)
        stages = {stage.id: stage for stage in await self.stages.list_for_scope(data.company_id)}

        ids = [item.id for item in data.stages]
        if len(set(ids)) != len(ids):
            raise ValidationError("Each stage may appear only once", {"stage_ids": [str(i) for i in ids]})
        unknown = [str(stage_id) for stage_id in ids if stage_id not in stages]
        if unknown:
            raise NotFoundError("Stages not found in this scope", {"stage_ids": unknown})

        final_orders = {stage_id: stage.sequence_order for stage_id, stage in stages.items()}
        for item in data.stages:
            if item.sequence_order is not None:
                final_orders[item.id] = item.sequence_order
        duplicated = [order for order, count in Counter(final_orders.values()).items() if count > 1]
        if duplicated:
            raise ValidationError("Stage sequence orders must be unique", {"sequence_orders": sorted(duplicated)})

        moved = [
            item for item in data.stages
            if item.sequence_order is not None and item.sequence_order != stages[item.id].sequence_order
        ]
        if moved:
            parking = max(list(final_orders.values()) + [s.sequence_order for s in stages.values()]) + 1
            for offset, item in enumerate(moved):
                stages[item.id].sequence_order = parking + offset
            await self.db.flush()

        for item in data.stages:
            stage = stages[item.id]
            fields = item.model_dump(mode="json", exclude_unset=True, exclude={"id"})
            _check_durations(
                fields.get("min_duration_hours", stage.min_duration_hours),
                fields["max_duration_hours"] if "max_duration_hours" in fields else stage.max_duration_hours,
            )
            await self.stages.update(stage, fields)

        report = await self.config.validate_configuration(data.company_id)
        if not report.valid:
            logger.error("Bulk stage update rejected for scope %s: %s", _scope_label(data.company_id), report.problems)
            raise ConfigurationError(
                "Stage configuration is invalid",
                {"company_id": _scope_label(data.company_id), "problems": report.problems},
            )

        self._invalidate(data.company_id)
        return await self.stages.list_for_scope(data.company_id)

    async def delete_stage(self, stage_id: UUID, actor: Actor) -> StageDeletionResult:
        """
        Delete a stage with its questions and edges, detaching jobs that sit in it.

        Refused when audit history or another stage's skip conditions still
        reference it.
        """
        stage = await self._get_stage(stage_id)
        raise_if_cannot_configure(actor, stage.company_id)

        referenced = await self.audit.count_referencing_stage(stage.id)
        if referenced:
            logger.error("Refusing to delete stage %s: %s audit entries reference it", stage.id, referenced)
            raise DependencyCleanupError(
                "Stage is referenced by job history",
                {"stage_id": str(stage.id), "audit_entries": referenced},
            )

        own_questions = await self.questions.list_for_stage(stage.id)
        blockers = await self._skip_references(
            stage.company_id, {q.id for q in own_questions}, exclude_stage_id=stage.id
        )
        if blockers:
            logger.error("Refusing to delete stage %s: questions %s depend on its questions", stage.id, blockers)
            raise DependencyCleanupError(
                "Questions of other stages depend on this stage's questions",
                {"stage_id": str(stage.id), "question_ids": [str(q) for q in blockers]},
            )

        try:
            jobs_cleared = await self.jobs.clear_stage(stage.id)
            transitions_deleted = await self.transitions.delete_touching_stage(stage.id)
            questions_deleted = await self.questions.delete_for_stage(stage.id)
            await self.stages.delete(stage)
        except SQLAlchemyError as exc:
            logger.error("Deleting stage %s failed: %s", stage_id, exc)
            raise DependencyCleanupError(
                "Stage could not be deleted",
                {"stage_id": str(stage_id)},
            ) from exc

        self._invalidate(stage.company_id)
        logger.info(
            "Deleted stage %s (%s jobs detached, %s questions, %s transitions)",
            stage_id,
            jobs_cleared,
            questions_deleted,
            transitions_deleted,
        )
        return StageDeletionResult(
            stage_id=stage_id,
            jobs_cleared=jobs_cleared,
            questions_deleted=questions_deleted,
            transitions_deleted=transitions_deleted,
        )

    async def copy_global_stages(self, company_id: UUID, actor: Actor) -> CopyGlobalResult:
        """Give a company its own copy of the platform stage set, questions and edges included."""
        raise_if_cannot_configure(actor, company_id)
        if await self.stages.count_for_scope(company_id):
            raise ValidationError("Company already has its own stages", {"company_id": str(company_id)})

        platform = await self.stages.list_for_scope(None)
        if not platform:
            logger.error("Cannot copy platform stages for company %s: none exist", company_id)
            raise ConfigurationError("No platform stages to copy", {"company_id": str(company_id)})

        stage_map: Dict[UUID, UUID] = {}
        copied_stages = []
        for stage in platform:
            copy = await self.stages.create(
                company_id,
                {field: getattr(stage, field) for field in _COPIED_STAGE_FIELDS},
                created_by=actor.user_id,
            )
            stage_map[stage.id] = copy.id
            copied_stages.append(copy)

        question_map: Dict[UUID, UUID] = {}
        pending_conditions = []
        for question in await self.questions.list_for_stages(list(stage_map)):
            copy = await self.questions.create(
                stage_map[question.stage_id],
                {
                    "question_text": question.question_text,
                    "response_type": question.response_type,
                    "response_options": question.response_options,
                    "sequence_order": question.sequence_order,
                    "is_required": question.is_required,
                    "help_text": question.help_text,
                    "skip_conditions": [],
                },
            )
            question_map[question.id] = copy.id
            if question.skip_conditions:
                pending_conditions.append((copy, parse_skip_conditions(question.skip_conditions)))

        # Skip conditions can point at questions copied later, so remap once all exist
        for copy, conditions in pending_conditions:
            remapped = [
                condition.model_copy(update={"question_id": question_map.get(condition.question_id, condition.question_id)})
                if isinstance(condition, PriorResponseEquals)
                else condition
                for condition in conditions
            ]
            await self.questions.update(copy, {"skip_conditions": dump_conditions(remapped)})

        transitions_copied = 0
        for edge in await self.transitions.list_for_stages(list(stage_map)):
            if edge.to_stage_id not in stage_map:
                continue
            await self.transitions.create(
                {
                    "from_stage_id": stage_map[edge.from_stage_id],
                    "to_stage_id": stage_map[edge.to_stage_id],
                    "trigger_question_id": question_map.get(edge.trigger_question_id) if edge.trigger_question_id else None,
                    "trigger_response": edge.trigger_response,
                    "conditions": list(edge.conditions or []),
                    "is_automatic": edge.is_automatic,
                    "requires_admin_override": edge.requires_admin_override,
                    "sequence_order": edge.sequence_order,
                },
                created_by=actor.user_id,
            )
            transitions_copied += 1

        self._invalidate(company_id)
        logger.info(
            "Copied %s platform stages, %s questions and %s transitions to company %s",
            len(copied_stages),
            len(question_map),
            transitions_copied,
            company_id,
        )
        return CopyGlobalResult(
            company_id=company_id,
            stages_copied=len(copied_stages),
            questions_copied=len(question_map),
            transitions_copied=transitions_copied,
            stages=[StageRead.model_validate(stage) for stage in copied_stages],
        )

    async def validate_configuration(self, company_id: Optional[UUID], actor: Actor) -> ConfigurationReport:
        raise_if_cannot_configure(actor, company_id, "validate stage configuration")
        return await self.config.validate_configuration(company_id)

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def add_question(self, stage_id: UUID, data: QuestionCreate, actor: Actor) -> StageQuestion:
        stage = await self._get_stage(stage_id)
        raise_if_cannot_configure(actor, stage.company_id)
        await self._check_question_order_free(stage.id, data.sequence_order)

        conditions = await self._prepare_skip_conditions(stage, data.skip_conditions)
        fields = data.model_dump(mode="json", exclude={"skip_conditions"})
        fields["skip_conditions"] = dump_conditions(conditions)

        question = await self.questions.create(stage.id, fields)
        self._invalidate(stage.company_id)
        return question

    async def update_question(self, question_id: UUID, data: QuestionUpdate, actor: Actor) -> StageQuestion:
        question = await self._get_question(question_id)
        stage = await self._get_stage(question.stage_id)
        raise_if_cannot_configure(actor, stage.company_id)

        fields = data.model_dump(mode="json", exclude_unset=True, exclude={"skip_conditions"})
        if fields.get("sequence_order") not in (None, question.sequence_order):
            await self._check_question_order_free(stage.id, fields["sequence_order"])
        try:
            check_response_options(
                fields.get("response_type", question.response_type),
                fields["response_options"] if "response_options" in fields else question.response_options,
            )
        except ValueError as exc:
            raise ValidationError(str(exc), {"question_id": str(question.id)}) from exc

        if "skip_conditions" in data.model_fields_set:
            conditions = await self._prepare_skip_conditions(stage, data.skip_conditions or [], question.id)
            fields["skip_conditions"] = dump_conditions(conditions)

        question = await self.questions.update(question, fields)
        self._invalidate(stage.company_id)
        return question

    async def delete_question(self, question_id: UUID, actor: Actor) -> None:
        """Delete a question nothing else depends on; its responses go with it."""
        question = await self._get_question(question_id)
        stage = await self._get_stage(question.stage_id)
        raise_if_cannot_configure(actor, stage.company_id)

        dependents = await self._skip_references(stage.company_id, {question.id})
        triggers = await self.transitions.list_triggered_by(question.id)
        if dependents or triggers:
            logger.error(
                "Refusing to delete question %s: skip conditions %s and transitions %s reference it",
                question.id,
                dependents,
                [edge.id for edge in triggers],
            )
            raise DependencyCleanupError(
                "Question is still referenced",
                {
                    "question_id": str(question.id),
                    "question_ids": [str(q) for q in dependents],
                    "transition_ids": [str(edge.id) for edge in triggers],
                },
            )

        await self.questions.delete(question)
        self._invalidate(stage.company_id)

    async def reorder_questions(self, stage_id: UUID, data: QuestionReorder, actor: Actor) -> List[StageQuestion]:
        """Apply a complete new question order for a stage atomically."""
        stage = await self._get_stage(stage_id)
        raise_if_cannot_configure(actor, stage.company_id)

        questions = {question.id: question for question in await self.questions.list_for_stage(stage.id)}
        requested = [item.id for item in data.questions]
        if len(set(requested)) != len(requested) or set(requested) != set(questions):
            raise ValidationError(
                "Reorder must list every question of the stage exactly once",
                {"stage_id": str(stage.id)},
            )
        orders = [item.sequence_order for item in data.questions]
        if len(set(orders)) != len(orders):
            raise ValidationError("Question sequence orders must be unique", {"sequence_orders": orders})

        parking = max(orders + [q.sequence_order for q in questions.values()]) + 1
        for offset, item in enumerate(data.questions):
            questions[item.id].sequence_order = parking + offset
        await self.db.flush()
        for item in data.questions:
            questions[item.id].sequence_order = item.sequence_order
        await self.db.flush()

        self._invalidate(stage.company_id)
        return await self.questions.list_for_stage(stage.id)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create_transition(self, data: TransitionCreate, actor: Actor) -> StageTransition:
        self._reject_self_transition(data.from_stage_id, data.to_stage_id)
        from_stage = await self._get_stage(data.from_stage_id)
        raise_if_cannot_configure(actor, from_stage.company_id)
        await self._check_same_scope(from_stage, data.to_stage_id)
        await self._check_trigger_question(from_stage, data.trigger_question_id)

        fields = data.model_dump(exclude={"conditions"})
        fields["conditions"] = dump_conditions(data.conditions)
        transition = await self.transitions.create(fields, created_by=actor.user_id)
        self._invalidate(from_stage.company_id)
        logger.info("Created transition %s: %s -> %s", transition.id, data.from_stage_id, data.to_stage_id)
        return transition

    async def update_transition(self, transition_id: UUID, data: TransitionUpdate, actor: Actor) -> StageTransition:
        transition = await self._get_transition(transition_id)
        from_stage = await self._get_stage(transition.from_stage_id)
        raise_if_cannot_configure(actor, from_stage.company_id)

        fields = data.model_dump(exclude_unset=True, exclude={"conditions"})
        if "to_stage_id" in fields:
            if fields["to_stage_id"] is None:
                raise ValidationError("to_stage_id cannot be empty", {"transition_id": str(transition.id)})
            self._reject_self_transition(transition.from_stage_id, fields["to_stage_id"])
            await self._check_same_scope(from_stage, fields["to_stage_id"])
        if fields.get("trigger_question_id") is not None:
            await self._check_trigger_question(from_stage, fields["trigger_question_id"])
        if "conditions" in data.model_fields_set:
            fields["conditions"] = dump_conditions(data.conditions or [])

        transition = await self.transitions.update(transition, fields)
        self._invalidate(from_stage.company_id)
        return transition

    async def delete_transition(self, transition_id: UUID, actor: Actor) -> None:
        transition = await self._get_transition(transition_id)
        from_stage = await self._get_stage(transition.from_stage_id)
        raise_if_cannot_configure(actor, from_stage.company_id)
        await self.transitions.delete(transition)
        self._invalidate(from_stage.company_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _invalidate(self, company_id: Optional[UUID]) -> None:
        self.cache.invalidate(company_id)
        self.cache.invalidate_on_commit(self.db.sync_session, company_id)

    async def _get_stage(self, stage_id: UUID) -> JobStage:
        stage = await self.stages.get_by_id(stage_id)
        if stage is None:
            raise NotFoundError(f"Stage {stage_id} not found", {"stage_id": str(stage_id)})
        return stage

    async def _get_question(self, question_id: UUID) -> StageQuestion:
        question = await self.questions.get_by_id(question_id)
        if question is None:
            raise NotFoundError(f"Question {question_id} not found", {"question_id": str(question_id)})
        return question

    async def _get_transition(self, transition_id: UUID) -> StageTransition:
        transition = await self.transitions.get_by_id(transition_id)
        if transition is None:
            raise NotFoundError(f"Transition {transition_id} not found", {"transition_id": str(transition_id)})
        return transition

    async def _check_stage_order_free(self, company_id: Optional[UUID], sequence_order: int) -> None:
        if any(stage.sequence_order == sequence_order for stage in await self.stages.list_for_scope(company_id)):
            raise ValidationError(
                f"Sequence order {sequence_order} is already used in this scope",
                {"company_id": _scope_label(company_id), "sequence_order": sequence_order},
            )

    async def _check_no_other_initial(self, company_id: Optional[UUID], exclude_id: Optional[UUID] = None) -> None:
        others = [stage for stage in await self.stages.get_initial(company_id) if stage.id != exclude_id]
        if others:
            logger.error("Scope %s already has initial stage %s", _scope_label(company_id), others[0].id)
            raise ConfigurationError(
                "Scope already has an initial stage",
                {"company_id": _scope_label(company_id), "initial_stage_id": str(others[0].id)},
            )

    async def _check_question_order_free(self, stage_id: UUID, sequence_order: int) -> None:
        if any(q.sequence_order == sequence_order for q in await self.questions.list_for_stage(stage_id)):
            raise ValidationError(
                f"Sequence order {sequence_order} is already used in this stage",
                {"stage_id": str(stage_id), "sequence_order": sequence_order},
            )

    @staticmethod
    def _reject_self_transition(from_stage_id: UUID, to_stage_id: UUID) -> None:
        if from_stage_id == to_stage_id:
            logger.error("Rejected self-transition on stage %s", from_stage_id)
            raise ConfigurationError(
                "A stage cannot transition to itself",
                {"from_stage_id": str(from_stage_id), "to_stage_id": str(to_stage_id)},
            )

    async def _check_same_scope(self, from_stage: JobStage, to_stage_id: UUID) -> None:
        to_stage = await self._get_stage(to_stage_id)
        if to_stage.company_id != from_stage.company_id:
            logger.error("Rejected transition %s -> %s across scopes", from_stage.id, to_stage.id)
            raise ConfigurationError(
                "Transitions must stay within one stage set",
                {"from_stage_id": str(from_stage.id), "to_stage_id": str(to_stage.id)},
            )

    async def _check_trigger_question(self, from_stage: JobStage, question_id: Optional[UUID]) -> None:
        if question_id is None:
            return
        question = await self._get_question(question_id)
        if question.stage_id != from_stage.id:
            raise ValidationError(
                "Trigger question must belong to the transition's source stage",
                {"question_id": str(question_id), "from_stage_id": str(from_stage.id)},
            )

    async def _prepare_skip_conditions(
        self,
        stage: JobStage,
        conditions: Sequence,
        question_id: Optional[UUID] = None,
    ) -> list:
        """
        Check prior-response references and store expected values in the
        canonical form answers are stored in (e.g. "yes" becomes "Yes").
        """
        prepared = []
        for condition in conditions:
            if isinstance(condition, PriorResponseEquals):
                if condition.question_id == question_id:
                    raise ValidationError("A question cannot skip on its own answer", {"question_id": str(question_id)})
                referenced = await self.questions.get_by_id(condition.question_id)
                if referenced is None:
                    raise ValidationError(
                        "Skip condition references an unknown question",
                        {"question_id": str(condition.question_id)},
                    )
                referenced_stage = await self._get_stage(referenced.stage_id)
                if referenced_stage.company_id != stage.company_id:
                    raise ValidationError(
                        "Skip condition references a question of another stage set",
                        {"question_id": str(condition.question_id)},
                    )
                condition = condition.model_copy(
                    update={"value": validate_response_value(referenced, condition.value)}
                )
            prepared.append(condition)
        return prepared

    async def _skip_references(
        self,
        company_id: Optional[UUID],
        question_ids,
        exclude_stage_id: Optional[UUID] = None,
    ) -> List[UUID]:
        """Questions of the scope whose skip conditions point at any of question_ids."""
        question_ids = set(question_ids)
        if not question_ids:
            return []
        stage_ids = [
            stage.id for stage in await self.stages.list_for_scope(company_id) if stage.id != exclude_stage_id
        ]
        dependents = []
        for question in await self.questions.list_for_stages(stage_ids):
            if question.id in question_ids:
                continue
            for condition in parse_skip_conditions(question.skip_conditions):
                if isinstance(condition, PriorResponseEquals) and condition.question_id in question_ids:
                    dependents.append(question.id)
                    break
        return dependents
