"""Audit history, timelines and per-stage metrics."""

import pytest

from jobflow.repositories.job_repository import JobRepository
from jobflow.schemas.job import JobCreate, OverrideRequest
from jobflow.schemas.response import ResponseSubmit
from jobflow.services.job_service import JobService
from jobflow.services.response_service import ResponseService
from jobflow.services.timeline_service import TimelineService

pytestmark = pytest.mark.db


async def job_in_contract(db, flow, actor):
    q = flow.questions
    job = await JobService(db).create_job(JobCreate(title="Extension"), actor)
    job_id = job.id
    service = ResponseService(db)
    for question_id, value in [(q["qualified"], "Yes"), (q["accepted"], "Yes"), (q["site_notes"], "Corner plot")]:
        await service.submit_response(job_id, ResponseSubmit(question_id=question_id, value=value), actor)
    await db.commit()
    return job_id


async def test_timeline_of_new_job_is_one_synthetic_entry(db, platform_flow, owner):
    job = await JobService(db).create_job(JobCreate(title="Shed"), owner)

    timeline = await TimelineService(db).timeline(job.id, owner)

    assert len(timeline) == 1
    entry = timeline[0]
    assert entry.is_synthetic is True
    assert entry.id is None
    assert entry.sequence_number == 0
    assert entry.to_stage_id == platform_flow.stages["lead"]
    assert entry.to_stage_name == "Lead Qualification"
    assert entry.duration_in_previous_stage_seconds == 0
    assert entry.is_current is True


async def test_timeline_follows_audit_order(db, platform_flow, owner):
    job_id = await job_in_contract(db, platform_flow, owner)

    timeline = await TimelineService(db).timeline(job_id, owner)

    assert [entry.sequence_number for entry in timeline] == [1, 2]
    assert [(e.from_stage_name, e.to_stage_name) for e in timeline] == [
        ("Lead Qualification", "Client Decision"),
        ("Client Decision", "Contract & Deposit"),
    ]
    assert [entry.is_current for entry in timeline] == [False, True]
    history = await TimelineService(db).audit_history(job_id, owner)
    assert [entry.id for entry in history] == [entry.id for entry in timeline]


async def test_first_entry_without_source_falls_back_to_initial_stage(db, platform_flow, owner):
    job = await JobService(db).create_job(JobCreate(title="Garage"), owner)
    job_id = job.id
    # Detached, as after its stage was deleted
    await JobRepository(db).clear_stage(platform_flow.stages["lead"])
    await db.commit()

    await JobService(db).override_stage(
        job_id, OverrideRequest(target_stage_id=platform_flow.stages["decision"], reason="Reattach"), owner
    )
    await db.commit()

    history = await TimelineService(db).audit_history(job_id, owner)
    timeline = await TimelineService(db).timeline(job_id, owner)

    assert history[0].from_stage_id is None
    assert timeline[0].from_stage_id == platform_flow.stages["lead"]
    assert timeline[0].from_stage_name == "Lead Qualification"


async def test_enhanced_timeline_progress(db, platform_flow, owner):
    job_id = await job_in_contract(db, platform_flow, owner)

    enhanced = await TimelineService(db).enhanced_timeline(job_id, owner)

    assert enhanced.current_stage_id == platform_flow.stages["contract"]
    assert enhanced.current_stage_name == "Contract & Deposit"
    assert enhanced.completed_stage_count == 2
    assert enhanced.total_stage_count == 5
    assert enhanced.progress_percentage == 40
    assert len(enhanced.entries) == 2


async def test_enhanced_timeline_of_new_job(db, platform_flow, owner):
    job = await JobService(db).create_job(JobCreate(title="Shed"), owner)

    enhanced = await TimelineService(db).enhanced_timeline(job.id, owner)

    assert enhanced.completed_stage_count == 0
    assert enhanced.progress_percentage == 0
    assert enhanced.entries[0].is_synthetic is True


async def test_stage_metrics_cover_every_visit(db, platform_flow, owner):
    job_id = await job_in_contract(db, platform_flow, owner)

    metrics = await TimelineService(db).stage_metrics(job_id, owner)

    assert [metric.stage_id for metric in metrics] == [
        platform_flow.stages["lead"],
        platform_flow.stages["decision"],
        platform_flow.stages["contract"],
    ]
    lead, decision, contract = metrics
    assert lead.exited_at is not None
    assert lead.within_expected is True
    assert decision.exited_at == contract.entered_at
    assert contract.exited_at is None
    assert contract.is_current is True
    # Still running and under its 48h maximum
    assert contract.within_expected is None
    assert contract.max_duration_hours == 48
