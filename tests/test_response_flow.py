"""
Answering questions: skips, stage completion, transitions and concurrency.

The shared workflow is built in conftest.build_workflow.
"""

import pytest

from jobflow.core.config import settings
from jobflow.errors import (
    ConcurrencyConflictError,
    InvalidQuestionError,
    NotFoundError,
    ValidationError,
)
from jobflow.models.enums import ResponseSource, TriggerSource
from jobflow.repositories.audit_repository import AuditRepository
from jobflow.repositories.job_repository import JobRepository
from jobflow.repositories.question_repository import QuestionRepository
from jobflow.repositories.response_repository import ResponseRepository
from jobflow.repositories.stage_repository import StageRepository
from jobflow.schemas.job import JobCreate
from jobflow.schemas.response import ResponseSubmit
from jobflow.schemas.transition import TransitionCreate
from jobflow.services.job_service import JobService
from jobflow.services.question_bank import QuestionBank
from jobflow.services.response_service import ResponseService
from jobflow.services.stage_admin_service import StageAdminService
from jobflow.services.transition_engine import TransitionEngine

pytestmark = pytest.mark.db


async def create_job(db, actor, job_type="standard"):
    job = await JobService(db).create_job(JobCreate(title="Kitchen refit", job_type=job_type), actor)
    await db.commit()
    return job.id


async def answer(db, job_id, question_id, value, actor, **extra):
    result = await ResponseService(db).submit_response(
        job_id, ResponseSubmit(question_id=question_id, value=value, **extra), actor
    )
    await db.commit()
    return result


async def audit_path(db, job_id):
    return [(e.from_stage_id, e.to_stage_id) for e in await AuditRepository(db).list_for_job(job_id)]


# ---------------------------------------------------------------------------
# Basic progression
# ---------------------------------------------------------------------------


async def test_new_job_starts_on_initial_stage(db, platform_flow, owner):
    job_id = await create_job(db, owner)

    state = await ResponseService(db).current_question(job_id, owner)

    assert state.current_stage.id == platform_flow.stages["lead"]
    assert state.current_question.id == platform_flow.questions["qualified"]
    assert state.can_proceed is False
    assert state.next_stage_preview is None


async def test_yes_moves_job_along_platform_default(db, platform_flow, owner):
    job_id = await create_job(db, owner)

    result = await answer(db, job_id, platform_flow.questions["qualified"], "Yes", owner)

    assert result.transitioned is True
    assert result.job.current_stage_id == platform_flow.stages["decision"]
    entry = result.audit_entry
    assert entry.sequence_number == 1
    assert entry.from_stage_id == platform_flow.stages["lead"]
    assert entry.to_stage_id == platform_flow.stages["decision"]
    assert entry.trigger_source == TriggerSource.QUESTION_RESPONSE
    assert entry.transition_id == platform_flow.transitions["lead_yes"]
    assert entry.question_id == platform_flow.questions["qualified"]
    assert entry.response_value == "Yes"
    assert [q.id for q in result.remaining_questions] == [
        platform_flow.questions["accepted"],
        platform_flow.questions["changes"],
        platform_flow.questions["site_notes"],
    ]
    assert await audit_path(db, job_id) == [(platform_flow.stages["lead"], platform_flow.stages["decision"])]


async def test_no_takes_the_other_edge(db, platform_flow, owner):
    job_id = await create_job(db, owner)

    result = await answer(db, job_id, platform_flow.questions["qualified"], "n", owner)

    assert result.job.current_stage_id == platform_flow.stages["lost"]
    assert result.job.status == "cancelled"
    assert result.response.value == "No"


async def test_accepting_quote_skips_requested_changes(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner)
    await answer(db, job_id, q["qualified"], "Yes", owner)

    result = await answer(db, job_id, q["accepted"], "Yes", owner)

    # Site notes still required for a standard job
    assert result.transitioned is False
    assert [question.id for question in result.remaining_questions] == [q["site_notes"]]
    state = await ResponseService(db).current_question(job_id, owner)
    assert state.current_question.id == q["site_notes"]
    assert q["changes"] in state.skipped_question_ids

    marker = await ResponseRepository(db).get(job_id, q["changes"])
    assert marker.is_skipped is True
    assert marker.value is None
    assert marker.source == ResponseSource.SYSTEM.value

    result = await answer(db, job_id, q["site_notes"], "Terraced house, rear access", owner)

    assert result.transitioned is True
    assert result.job.current_stage_id == platform_flow.stages["contract"]
    assert result.audit_entry.transition_id == platform_flow.transitions["accepted_yes"]


async def test_declined_quote_asks_for_changes_then_moves_to_lost(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner)
    await answer(db, job_id, q["qualified"], "Yes", owner)

    result = await answer(db, job_id, q["accepted"], "No", owner)
    assert result.transitioned is False
    assert result.remaining_questions[0].id == q["changes"]

    await answer(db, job_id, q["changes"], "Wants oak worktops", owner)
    result = await answer(db, job_id, q["site_notes"], "Detached", owner)

    # Keyed to the accepted question, not to the last answer
    assert result.job.current_stage_id == platform_flow.stages["lost"]
    assert result.audit_entry.transition_id == platform_flow.transitions["accepted_no"]
    assert result.audit_entry.question_id == q["site_notes"]


async def test_emergency_jobs_never_see_excluded_questions(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner, job_type="emergency_repair")

    result = await answer(db, job_id, q["qualified"], "Yes", owner)
    assert [question.id for question in result.remaining_questions] == [q["accepted"], q["changes"]]

    result = await answer(db, job_id, q["accepted"], "Yes", owner)

    assert result.transitioned is True
    assert result.job.current_stage_id == platform_flow.stages["contract"]
    bank = QuestionBank(db)
    job = await JobRepository(db).get_by_id(job_id)
    progress = await bank.progress(job, platform_flow.stages["decision"])
    assert set(progress.skipped_ids) == {q["changes"], q["site_notes"]}


async def test_numeric_threshold_and_optional_questions(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner)
    await answer(db, job_id, q["qualified"], "Yes", owner)
    await answer(db, job_id, q["accepted"], "Yes", owner)
    await answer(db, job_id, q["site_notes"], "Flat", owner)

    result = await answer(db, job_id, q["deposit"], 10, owner)

    # Only the optional question is left; no edge matches a 10% deposit
    assert result.transitioned is False
    assert [question.id for question in result.remaining_questions] == [q["notes"]]
    assert result.message == "Stage complete; still in current stage, awaiting further input"

    result = await answer(db, job_id, q["deposit"], "45", owner)

    assert result.transitioned is True
    assert result.job.current_stage_id == platform_flow.stages["closed"]
    assert result.job.status == "completed"


# ---------------------------------------------------------------------------
# Invariants
# ---------------------------------------------------------------------------


async def test_incomplete_stage_never_transitions(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner)
    await answer(db, job_id, q["qualified"], "Yes", owner)

    # Matches the accepted_no edge, but two questions are still open
    result = await answer(db, job_id, q["accepted"], "No", owner)

    assert result.transitioned is False
    assert result.job.current_stage_id == platform_flow.stages["decision"]
    assert len(await audit_path(db, job_id)) == 1


async def test_skipped_question_stays_skipped_when_answer_changes(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner)
    await answer(db, job_id, q["qualified"], "Yes", owner)
    await answer(db, job_id, q["accepted"], "Yes", owner)

    result = await answer(db, job_id, q["accepted"], "No", owner)

    assert result.message == "Answer recorded"
    state = await ResponseService(db).current_question(job_id, owner)
    assert state.current_question.id == q["site_notes"]
    assert q["changes"] in state.skipped_question_ids

    with pytest.raises(InvalidQuestionError):
        await answer(db, job_id, q["changes"], "Too late", owner)
    await db.rollback()

    result = await answer(db, job_id, q["site_notes"], "Bungalow", owner)
    assert result.job.current_stage_id == platform_flow.stages["lost"]


async def test_audit_path_is_contiguous(db, platform_flow, owner):
    q = platform_flow.questions
    s = platform_flow.stages
    job_id = await create_job(db, owner)
    for question_id, value in [
        (q["qualified"], "Yes"),
        (q["accepted"], "Yes"),
        (q["site_notes"], "Semi"),
        (q["deposit"], 30),
    ]:
        result = await answer(db, job_id, question_id, value, owner)

    path = await audit_path(db, job_id)
    assert path == [
        (s["lead"], s["decision"]),
        (s["decision"], s["contract"]),
        (s["contract"], s["closed"]),
    ]
    for previous, current in zip(path, path[1:]):
        assert previous[1] == current[0]
    assert path[-1][1] == result.job.current_stage_id
    entries = await AuditRepository(db).list_for_job(job_id)
    assert [entry.sequence_number for entry in entries] == [1, 2, 3]


# ---------------------------------------------------------------------------
# Idempotence and rejected submissions
# ---------------------------------------------------------------------------


async def test_resubmitting_after_transition_is_a_no_op(db, platform_flow, owner):
    job_id = await create_job(db, owner)
    await answer(db, job_id, platform_flow.questions["qualified"], "Yes", owner)

    result = await answer(db, job_id, platform_flow.questions["qualified"], "yes", owner)

    assert result.already_applied is True
    assert result.transitioned is False
    assert result.job.current_stage_id == platform_flow.stages["decision"]
    assert len(await audit_path(db, job_id)) == 1


async def test_changing_an_answer_of_a_left_stage_is_rejected(db, platform_flow, owner):
    job_id = await create_job(db, owner)
    await answer(db, job_id, platform_flow.questions["qualified"], "Yes", owner)

    with pytest.raises(InvalidQuestionError):
        await answer(db, job_id, platform_flow.questions["qualified"], "No", owner)


async def test_same_answer_in_current_stage_is_unchanged(db, platform_flow, owner):
    q = platform_flow.questions
    job_id = await create_job(db, owner)
    await answer(db, job_id, q["qualified"], "Yes", owner)
    first = await answer(db, job_id, q["accepted"], "No", owner)

    second = await answer(db, job_id, q["accepted"], "NO", owner)

    assert second.message == "Answer unchanged"
    assert second.response.id == first.response.id
    assert second.job.version == first.job.version


async def test_same_answer_moves_a_job_that_re_entered_a_complete_stage(db, platform_flow, site_admin, owner):
    q, s = platform_flow.questions, platform_flow.stages
    await StageAdminService(db).create_transition(
        TransitionCreate(
            from_stage_id=s["decision"],
            to_stage_id=s["lead"],
            trigger_question_id=q["accepted"],
            trigger_response="No",
            sequence_order=0,
        ),
        site_admin,
    )
    await db.commit()
    job_id = await create_job(db, owner, job_type="emergency_repair")
    await answer(db, job_id, q["qualified"], "Yes", owner)
    await answer(db, job_id, q["changes"], "Wants a larger window", owner)
    sent_back = await answer(db, job_id, q["accepted"], "No", owner)
    assert sent_back.job.current_stage_id == s["lead"]

    state = await ResponseService(db).current_question(job_id, owner)
    assert state.can_proceed is True
    assert state.next_stage_preview.id == s["decision"]

    result = await answer(db, job_id, q["qualified"], "Yes", owner)

    assert result.transitioned is True
    assert result.response.question_id == q["qualified"]
    assert result.job.current_stage_id == s["decision"]
    assert await audit_path(db, job_id) == [
        (s["lead"], s["decision"]),
        (s["decision"], s["lead"]),
        (s["lead"], s["decision"]),
    ]


async def test_question_of_another_stage_is_rejected(db, platform_flow, owner):
    job_id = await create_job(db, owner)

    with pytest.raises(InvalidQuestionError) as exc_info:
        await answer(db, job_id, platform_flow.questions["deposit"], 50, owner)

    assert exc_info.value.details["current_stage_id"] == str(platform_flow.stages["lead"])


async def test_invalid_value_records_nothing(db, platform_flow, owner):
    job_id = await create_job(db, owner)

    with pytest.raises(ValidationError):
        await answer(db, job_id, platform_flow.questions["qualified"], "maybe", owner)
    await db.rollback()

    assert await ResponseRepository(db).get(job_id, platform_flow.questions["qualified"]) is None


async def test_unknown_question_and_foreign_job(db, platform_flow, owner, other_owner):
    job_id = await create_job(db, owner)

    with pytest.raises(NotFoundError):
        await answer(db, job_id, platform_flow.stages["lead"], "Yes", owner)
    await db.rollback()
    with pytest.raises(NotFoundError):
        await answer(db, job_id, platform_flow.questions["qualified"], "Yes", other_owner)


async def test_client_portal_answers_are_flagged(db, platform_flow, owner):
    job_id = await create_job(db, owner)

    result = await answer(
        db,
        job_id,
        platform_flow.questions["qualified"],
        True,
        owner,
        source=ResponseSource.CLIENT_PORTAL,
        metadata={"ip": "203.0.113.7"},
    )

    assert result.response.is_client_response is True
    assert result.response.response_metadata == {"ip": "203.0.113.7"}
    assert result.response.value == "Yes"


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


async def test_stale_job_version_is_a_conflict(db, session_factory, platform_flow, owner):
    job_id = await create_job(db, owner)

    async with session_factory() as other:
        stale_job = await JobRepository(other).get_by_id(job_id)
        lost = await StageRepository(other).get_by_id(platform_flow.stages["lost"])

        await answer(db, job_id, platform_flow.questions["qualified"], "Yes", owner)

        with pytest.raises(ConcurrencyConflictError):
            await TransitionEngine(other).apply_transition(stale_job, lost, owner, TriggerSource.MANUAL)
        await other.rollback()

    assert await audit_path(db, job_id) == [(platform_flow.stages["lead"], platform_flow.stages["decision"])]


async def test_conflicting_submission_is_retried(db, platform_flow, owner, monkeypatch):
    job_id = await create_job(db, owner)
    original = ResponseService._submit_once
    calls = []

    async def flaky_submit(self, job_id, data, actor):
        calls.append(job_id)
        if len(calls) == 1:
            raise ConcurrencyConflictError("Job was modified by another request", {"job_id": str(job_id)})
        return await original(self, job_id, data, actor)

    monkeypatch.setattr(ResponseService, "_submit_once", flaky_submit)

    result = await answer(db, job_id, platform_flow.questions["qualified"], "Yes", owner)

    assert len(calls) == 2
    assert result.transitioned is True
    assert len(await audit_path(db, job_id)) == 1


async def test_retries_are_bounded(db, platform_flow, owner, monkeypatch):
    job_id = await create_job(db, owner)
    calls = []

    async def always_conflicts(self, job_id, data, actor):
        calls.append(job_id)
        raise ConcurrencyConflictError("Job was modified by another request", {"job_id": str(job_id)})

    monkeypatch.setattr(ResponseService, "_submit_once", always_conflicts)

    with pytest.raises(ConcurrencyConflictError):
        await answer(db, job_id, platform_flow.questions["qualified"], "Yes", owner)

    assert len(calls) == settings.CONCURRENCY_MAX_RETRIES


async def test_concurrent_answers_to_the_last_question_move_the_job_once(
    db, session_factory, platform_flow, owner, monkeypatch
):
    job_id = await create_job(db, owner)
    question_id = platform_flow.questions["qualified"]
    original = QuestionRepository.get_by_id
    started = []
    competing = []

    async def get_with_competing_submission(self, requested_id):
        # The first lookup happens after the job row was read; finish a rival
        # submission in its own session before continuing
        if not started:
            started.append(True)
            async with session_factory() as other:
                competing.append(await answer(other, job_id, question_id, "Yes", owner))
        return await original(self, requested_id)

    monkeypatch.setattr(QuestionRepository, "get_by_id", get_with_competing_submission)

    try:
        result = await answer(db, job_id, question_id, "Yes", owner)
    except ConcurrencyConflictError:
        await db.rollback()
        result = None

    assert competing[0].transitioned is True
    assert result is None or (result.already_applied is True and result.transitioned is False)
    assert await audit_path(db, job_id) == [(platform_flow.stages["lead"], platform_flow.stages["decision"])]
