"""Edge matching and selection rules."""

import logging
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from jobflow.services.transition_engine import edge_matches, guards_hold, select_edge

pytestmark = pytest.mark.unit

QUESTION_ID = uuid.uuid4()
BASE_TIME = datetime(2024, 5, 1, tzinfo=timezone.utc)


def make_edge(
    trigger_response=None,
    trigger_question_id=None,
    conditions=None,
    is_automatic=True,
    requires_admin_override=False,
    order=0,
):
    return SimpleNamespace(
        id=uuid.uuid4(),
        to_stage_id=uuid.uuid4(),
        trigger_response=trigger_response,
        trigger_question_id=trigger_question_id,
        conditions=conditions or [],
        is_automatic=is_automatic,
        requires_admin_override=requires_admin_override,
        sequence_order=order,
        created_at=BASE_TIME + timedelta(minutes=order),
    )


def make_job(job_type="standard"):
    return SimpleNamespace(id=uuid.uuid4(), job_type=job_type)


def test_trigger_response_is_case_insensitive():
    edge = make_edge(trigger_response=" yes ")

    assert edge_matches(edge, make_job(), QUESTION_ID, "Yes", {}) is True
    assert edge_matches(edge, make_job(), QUESTION_ID, "No", {}) is False


def test_untriggered_edge_fires_only_when_automatic():
    assert edge_matches(make_edge(), make_job(), None, None, {}) is True
    assert edge_matches(make_edge(is_automatic=False), make_job(), None, None, {}) is False


def test_admin_override_edges_never_fire():
    edge = make_edge(trigger_response="Yes", requires_admin_override=True)

    assert edge_matches(edge, make_job(), QUESTION_ID, "Yes", {}) is False


def test_triggered_edge_fires_even_when_not_automatic():
    edge = make_edge(trigger_response="No", is_automatic=False)

    assert edge_matches(edge, make_job(), QUESTION_ID, "No", {}) is True


def test_trigger_question_uses_the_jobs_answer_to_that_question():
    edge = make_edge(trigger_response="Yes", trigger_question_id=QUESTION_ID)
    other_question = uuid.uuid4()

    # The last answer was to another question; the keyed answer decides
    assert edge_matches(edge, make_job(), other_question, "free text", {QUESTION_ID: "Yes"}) is True
    assert edge_matches(edge, make_job(), other_question, "Yes", {QUESTION_ID: "No"}) is False
    # Unanswered trigger question never fires
    assert edge_matches(edge, make_job(), other_question, "Yes", {}) is False


def test_submitted_value_wins_for_the_trigger_question_itself():
    edge = make_edge(trigger_response="Yes", trigger_question_id=QUESTION_ID)

    assert edge_matches(edge, make_job(), QUESTION_ID, "Yes", {QUESTION_ID: "No"}) is True


def test_trigger_question_without_expected_value_fires_on_any_answer():
    edge = make_edge(trigger_question_id=QUESTION_ID)

    assert edge_matches(edge, make_job(), None, None, {QUESTION_ID: "anything"}) is True
    assert edge_matches(edge, make_job(), None, None, {}) is False


def test_numeric_threshold():
    edge = make_edge(
        trigger_question_id=QUESTION_ID,
        conditions=[{"kind": "numeric_threshold", "operator": ">=", "threshold": 90}],
    )

    assert edge_matches(edge, make_job(), QUESTION_ID, "90", {}) is True
    assert edge_matches(edge, make_job(), QUESTION_ID, "89.5", {}) is False
    assert edge_matches(edge, make_job(), QUESTION_ID, "not a number", {}) is False


def test_response_and_threshold_are_alternatives():
    edge = make_edge(
        trigger_response="Done",
        conditions=[{"kind": "numeric_threshold", "operator": ">", "threshold": 0}],
    )

    assert edge_matches(edge, make_job(), QUESTION_ID, "done", {}) is True
    assert edge_matches(edge, make_job(), QUESTION_ID, "3", {}) is True
    assert edge_matches(edge, make_job(), QUESTION_ID, "-1", {}) is False


def test_job_type_guard():
    edge = make_edge(
        trigger_response="Yes",
        conditions=[{"kind": "job_type_in", "job_types": ["Emergency_Repair"]}],
    )

    assert guards_hold(edge, make_job("emergency_repair")) is True
    assert edge_matches(edge, make_job("emergency_repair"), QUESTION_ID, "Yes", {}) is True
    assert edge_matches(edge, make_job("standard"), QUESTION_ID, "Yes", {}) is False


def test_select_edge_takes_first_match_and_warns(caplog):
    first = make_edge(trigger_response="Yes", order=1)
    second = make_edge(trigger_response="yes", order=2)
    job = make_job()

    with caplog.at_level(logging.WARNING, logger="jobflow.services.transition_engine"):
        chosen = select_edge([first, second], job, QUESTION_ID, "Yes")

    assert chosen is first
    assert "Ambiguous transition configuration" in caplog.text


def test_select_edge_returns_none_without_match():
    edges = [make_edge(trigger_response="Yes"), make_edge(trigger_response="Maybe")]

    assert select_edge(edges, make_job(), QUESTION_ID, "No") is None
    assert select_edge([], make_job()) is None
