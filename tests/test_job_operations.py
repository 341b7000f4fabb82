"""Job creation, manual advance, override and re-evaluation."""

import uuid

import pytest

from jobflow.core.permissions import Roles
from jobflow.errors import (
    ConfigurationError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from jobflow.models.enums import TriggerSource
from jobflow.schemas.actor import Actor
from jobflow.schemas.conditions import NumericThreshold
from jobflow.schemas.job import AdvanceRequest, JobCreate, OverrideRequest
from jobflow.schemas.response import ResponseSubmit
from jobflow.schemas.transition import TransitionCreate
from jobflow.services.job_service import JobService
from jobflow.services.response_service import ResponseService
from jobflow.services.stage_admin_service import StageAdminService
from tests.conftest import COMPANY_ID

pytestmark = pytest.mark.db


async def new_job(db, actor, **fields):
    job = await JobService(db).create_job(JobCreate(title="Loft conversion", **fields), actor)
    await db.commit()
    return job.id


async def move_to_contract_with_low_deposit(db, flow, actor, job_id):
    """Leaves the job in a complete contract stage that no edge leaves."""
    q = flow.questions
    service = ResponseService(db)
    for question_id, value in [
        (q["qualified"], "Yes"),
        (q["accepted"], "Yes"),
        (q["site_notes"], "Loft"),
        (q["deposit"], 5),
    ]:
        await service.submit_response(job_id, ResponseSubmit(question_id=question_id, value=value), actor)
    await db.commit()


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def test_worker_creates_job_in_own_company(db, platform_flow, worker):
    job = await JobService(db).create_job(JobCreate(title="Porch"), worker)

    assert job.company_id == COMPANY_ID
    assert job.current_stage_id == platform_flow.stages["lead"]
    assert job.initial_stage_id == platform_flow.stages["lead"]
    assert job.status == "planning"
    assert job.created_by == worker.user_id


async def test_clients_cannot_create_jobs(db, platform_flow):
    client = Actor(user_id=uuid.uuid4(), role=Roles.CLIENT, company_id=COMPANY_ID)

    with pytest.raises(PermissionDeniedError):
        await JobService(db).create_job(JobCreate(title="Porch"), client)


async def test_site_admin_must_name_the_company(db, platform_flow, site_admin):
    with pytest.raises(ValidationError):
        await JobService(db).create_job(JobCreate(title="Porch"), site_admin)

    job = await JobService(db).create_job(JobCreate(title="Porch", company_id=COMPANY_ID), site_admin)
    assert job.company_id == COMPANY_ID


async def test_job_creation_without_configuration_fails(db, owner):
    with pytest.raises(ConfigurationError):
        await JobService(db).create_job(JobCreate(title="Porch"), owner)


async def test_other_companies_jobs_look_missing(db, platform_flow, owner, other_owner):
    job_id = await new_job(db, owner)

    with pytest.raises(NotFoundError):
        await JobService(db).get_job(job_id, other_owner)


# ---------------------------------------------------------------------------
# Manual advance
# ---------------------------------------------------------------------------


async def test_manual_edge_moves_a_complete_job(db, platform_flow, site_admin, worker):
    job_id = await new_job(db, worker)
    await move_to_contract_with_low_deposit(db, platform_flow, worker, job_id)
    manual = await StageAdminService(db).create_transition(
        TransitionCreate(
            from_stage_id=platform_flow.stages["contract"],
            to_stage_id=platform_flow.stages["lost"],
            is_automatic=False,
        ),
        site_admin,
    )
    await db.commit()

    outcome = await JobService(db).advance_manually(job_id, AdvanceRequest(transition_id=manual.id), worker)

    assert outcome.transitioned is True
    assert outcome.job.current_stage_id == platform_flow.stages["lost"]
    assert outcome.audit_entry.trigger_source == TriggerSource.MANUAL
    assert outcome.audit_entry.transition_id == manual.id


async def test_advance_requires_complete_stage(db, platform_flow, worker):
    job_id = await new_job(db, worker)

    with pytest.raises(ValidationError) as exc_info:
        await JobService(db).advance_manually(
            job_id, AdvanceRequest(transition_id=platform_flow.transitions["lead_yes"]), worker
        )

    assert exc_info.value.details["remaining_question_ids"] == [str(platform_flow.questions["qualified"])]


async def test_advance_along_edge_of_another_stage_is_rejected(db, platform_flow, worker):
    job_id = await new_job(db, worker)

    with pytest.raises(ValidationError):
        await JobService(db).advance_manually(
            job_id, AdvanceRequest(transition_id=platform_flow.transitions["deposit_paid"]), worker
        )


async def test_admin_only_edges(db, platform_flow, site_admin, owner, worker):
    job_id = await new_job(db, worker)
    await move_to_contract_with_low_deposit(db, platform_flow, worker, job_id)
    guarded = await StageAdminService(db).create_transition(
        TransitionCreate(
            from_stage_id=platform_flow.stages["contract"],
            to_stage_id=platform_flow.stages["closed"],
            requires_admin_override=True,
        ),
        site_admin,
    )
    await db.commit()

    with pytest.raises(PermissionDeniedError):
        await JobService(db).advance_manually(job_id, AdvanceRequest(transition_id=guarded.id), worker)

    outcome = await JobService(db).advance_manually(job_id, AdvanceRequest(transition_id=guarded.id), owner)
    assert outcome.job.current_stage_id == platform_flow.stages["closed"]


# ---------------------------------------------------------------------------
# Override
# ---------------------------------------------------------------------------


async def test_override_moves_job_anywhere_and_records_reason(db, platform_flow, owner):
    job_id = await new_job(db, owner)

    outcome = await JobService(db).override_stage(
        job_id,
        OverrideRequest(target_stage_id=platform_flow.stages["contract"], reason="Client signed on site"),
        owner,
    )

    assert outcome.job.current_stage_id == platform_flow.stages["contract"]
    assert outcome.job.status == "active"
    entry = outcome.audit_entry
    assert entry.trigger_source == TriggerSource.ADMIN_OVERRIDE
    assert entry.transition_id is None
    assert entry.trigger_details == {"reason": "Client signed on site", "role": Roles.OWNER}


async def test_override_needs_an_admin_role(db, platform_flow, worker):
    job_id = await new_job(db, worker)

    with pytest.raises(PermissionDeniedError):
        await JobService(db).override_stage(
            job_id, OverrideRequest(target_stage_id=platform_flow.stages["closed"], reason="Done"), worker
        )


async def test_override_target_must_be_in_workflow_and_elsewhere(db, platform_flow, owner):
    job_id = await new_job(db, owner)
    service = JobService(db)

    with pytest.raises(ValidationError):
        await service.override_stage(job_id, OverrideRequest(target_stage_id=uuid.uuid4(), reason="Typo"), owner)
    with pytest.raises(ValidationError):
        await service.override_stage(
            job_id, OverrideRequest(target_stage_id=platform_flow.stages["lead"], reason="Again"), owner
        )


# ---------------------------------------------------------------------------
# Re-evaluation
# ---------------------------------------------------------------------------


async def test_evaluate_after_new_edge_is_added(db, platform_flow, site_admin, owner):
    job_id = await new_job(db, owner)
    await move_to_contract_with_low_deposit(db, platform_flow, owner, job_id)

    outcome = await JobService(db).evaluate_job(job_id, owner)
    assert outcome.transitioned is False

    await StageAdminService(db).create_transition(
        TransitionCreate(
            from_stage_id=platform_flow.stages["contract"],
            to_stage_id=platform_flow.stages["lost"],
            trigger_question_id=platform_flow.questions["deposit"],
            conditions=[NumericThreshold(operator="<", threshold=10)],
        ),
        site_admin,
    )
    await db.commit()

    state = await ResponseService(db).current_question(job_id, owner)
    assert state.can_proceed is True
    assert state.next_stage_preview.id == platform_flow.stages["lost"]

    outcome = await JobService(db).evaluate_job(job_id, owner)

    assert outcome.transitioned is True
    assert outcome.job.current_stage_id == platform_flow.stages["lost"]
    assert outcome.audit_entry.trigger_source == TriggerSource.SYSTEM_AUTO
    assert outcome.audit_entry.question_id == platform_flow.questions["deposit"]


async def test_evaluate_incomplete_stage_does_nothing(db, platform_flow, owner):
    job_id = await new_job(db, owner)

    outcome = await JobService(db).evaluate_job(job_id, owner)

    assert outcome.transitioned is False
    assert outcome.audit_entry is None
    assert outcome.job.current_stage_id == platform_flow.stages["lead"]
