"""
JobResponse Pydantic schemas.
"""

from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from pydantic import BaseModel, StrictBool, StrictFloat, StrictInt, StrictStr, field_validator

from jobflow.models.enums import ResponseSource
from jobflow.schemas.audit import AuditEntryRead
from jobflow.schemas.base import CompanyScopedRead
from jobflow.schemas.job import JobRead
from jobflow.schemas.question import QuestionRead


class ResponseSubmit(BaseModel):
    """
    Schema for answering a question.

    value is kept as sent (string, number or boolean); it is checked against
    the question's response type by the response processor.
    """

    question_id: UUID
    value: Union[StrictBool, StrictInt, StrictFloat, StrictStr]
    metadata: Dict[str, Any] = {}
    source: ResponseSource = ResponseSource.WEB_APP

    @field_validator("source")
    @classmethod
    def source_is_not_system(cls, value: ResponseSource) -> ResponseSource:
        if value == ResponseSource.SYSTEM:
            raise ValueError("system is reserved for skip markers")
        return value


class ResponseRead(CompanyScopedRead):
    job_id: UUID
    question_id: UUID
    value: Optional[str]
    response_metadata: Dict[str, Any]
    responded_by: Optional[UUID]
    source: ResponseSource
    is_client_response: bool
    is_skipped: bool


class SubmissionResult(BaseModel):
    """Outcome of one submitted answer."""

    job: JobRead
    response: ResponseRead
    transitioned: bool
    already_applied: bool = False
    audit_entry: Optional[AuditEntryRead] = None
    remaining_questions: List[QuestionRead] = []
    message: str
