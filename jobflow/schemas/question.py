"""
StageQuestion Pydantic schemas.
"""

from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from jobflow.models.enums import ResponseType
from jobflow.schemas.base import TimestampedRead
from jobflow.schemas.conditions import SkipCondition


def check_response_options(response_type: Optional[ResponseType], options: Optional[List[str]]) -> None:
    if response_type is None:
        return
    if response_type == ResponseType.MULTIPLE_CHOICE:
        if not options:
            raise ValueError("multiple_choice questions need response_options")
        if len({option.strip().casefold() for option in options}) != len(options):
            raise ValueError("response_options must be unique")
    elif options:
        raise ValueError("response_options only apply to multiple_choice questions")


class QuestionCreate(BaseModel):
    """Schema for adding a question to a stage."""

    question_text: str = Field(min_length=1)
    response_type: ResponseType
    response_options: Optional[List[str]] = None
    sequence_order: int = Field(ge=1)
    is_required: bool = True
    help_text: Optional[str] = None
    skip_conditions: List[SkipCondition] = []

    @model_validator(mode="after")
    def options_match_type(self):
        check_response_options(self.response_type, self.response_options)
        return self


class QuestionUpdate(BaseModel):
    """Schema for updating a question. All fields optional."""

    question_text: Optional[str] = Field(None, min_length=1)
    response_type: Optional[ResponseType] = None
    response_options: Optional[List[str]] = None
    sequence_order: Optional[int] = Field(None, ge=1)
    is_required: Optional[bool] = None
    help_text: Optional[str] = None
    skip_conditions: Optional[List[SkipCondition]] = None


class QuestionOrderItem(BaseModel):
    id: UUID
    sequence_order: int = Field(ge=1)


class QuestionReorder(BaseModel):
    questions: List[QuestionOrderItem] = Field(min_length=1)


class QuestionRead(TimestampedRead):
    stage_id: UUID
    question_text: str
    response_type: ResponseType
    response_options: Optional[List[str]]
    sequence_order: int
    is_required: bool
    help_text: Optional[str]
    skip_conditions: List[SkipCondition]
