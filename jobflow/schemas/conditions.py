"""
Closed condition vocabularies stored in JSON columns.

Skip conditions (on questions) and transition conditions (on edges) are
tagged unions discriminated by ``kind``. The stored form is a list of these
documents; parsing goes through a TypeAdapter so unknown kinds are rejected
at configuration-write time instead of being ignored at evaluation time.
"""

from typing import Annotated, List, Literal, Union
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator


class _Condition(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class JobTypeExclusion(_Condition):
    """Skip the question for jobs of any listed type."""

    kind: Literal["job_type_exclusion"] = "job_type_exclusion"
    job_types: List[str] = Field(min_length=1)


class PriorResponseEquals(_Condition):
    """Skip the question when the job answered question_id with exactly value."""

    kind: Literal["prior_response_equals"] = "prior_response_equals"
    question_id: UUID
    value: str


SkipCondition = Annotated[
    Union[JobTypeExclusion, PriorResponseEquals],
    Field(discriminator="kind"),
]


class NumericThreshold(_Condition):
    """Trigger when the tested answer compares true against threshold."""

    kind: Literal["numeric_threshold"] = "numeric_threshold"
    operator: Literal[">=", ">", "<=", "<", "="]
    threshold: float

    def holds(self, number: float) -> bool:
        if self.operator == ">=":
            return number >= self.threshold
        if self.operator == ">":
            return number > self.threshold
        if self.operator == "<=":
            return number <= self.threshold
        if self.operator == "<":
            return number < self.threshold
        return number == self.threshold


class JobTypeIn(_Condition):
    """Guard: the edge only applies to jobs of the listed types."""

    kind: Literal["job_type_in"] = "job_type_in"
    job_types: List[str] = Field(min_length=1)

    @field_validator("job_types")
    @classmethod
    def strip_job_types(cls, value: List[str]) -> List[str]:
        return [job_type.strip() for job_type in value]


TransitionCondition = Annotated[
    Union[NumericThreshold, JobTypeIn],
    Field(discriminator="kind"),
]

skip_conditions_adapter = TypeAdapter(List[SkipCondition])
transition_conditions_adapter = TypeAdapter(List[TransitionCondition])


def parse_skip_conditions(raw) -> List[Union[JobTypeExclusion, PriorResponseEquals]]:
    """Parse the stored skip condition list; None and {} mean no conditions."""
    if not raw:
        return []
    return skip_conditions_adapter.validate_python(raw)


def parse_transition_conditions(raw) -> List[Union[NumericThreshold, JobTypeIn]]:
    if not raw:
        return []
    return transition_conditions_adapter.validate_python(raw)


def dump_conditions(conditions) -> list:
    """JSON-ready form for storage."""
    return [condition.model_dump(mode="json") for condition in conditions]
