"""
Skip-condition evaluation.

Pure functions: no session, no clock. Safe to re-run after every response.
"""

from typing import Mapping, Optional
from uuid import UUID

from jobflow.schemas.conditions import JobTypeExclusion, PriorResponseEquals, parse_skip_conditions


def normalize_job_type(job_type: Optional[str]) -> str:
    return (job_type or "").strip().casefold()


def should_skip(question, job, prior_responses: Mapping[UUID, str]) -> bool:
    """
    Decide whether question is omitted from the flow for job.

    Job-type exclusions are checked first, then prior-response conditions.
    prior_responses maps question id to the job's active answer (skip
    markers excluded). Any one satisfied condition skips the question.
    """
    conditions = parse_skip_conditions(question.skip_conditions)
    if not conditions:
        return False

    job_type = normalize_job_type(job.job_type)
    for condition in conditions:
        if isinstance(condition, JobTypeExclusion):
            if job_type in {normalize_job_type(t) for t in condition.job_types}:
                return True

    for condition in conditions:
        if isinstance(condition, PriorResponseEquals):
            answered = prior_responses.get(condition.question_id)
            if answered is not None and answered == condition.value:
                return True

    return False
