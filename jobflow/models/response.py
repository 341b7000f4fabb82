"""
JobResponse model.

Stores the active answer for each (job, question) pair.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.models.base_model import JSONType, CompanyScopedModel
from jobflow.models.enums import ResponseSource


class JobResponse(CompanyScopedModel):
    """
    JobResponse table - one user's answer to one question for one job.

    At most one row exists per (job, question); resubmission replaces it.
    Rows with is_skipped=True are system markers for questions whose skip
    condition held, and carry no value.
    """

    __tablename__ = "job_responses"

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    question_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("stage_questions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Canonical text form of the answer (Yes/No, 2024-05-01, 1250.5, ...)
    value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    response_metadata: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    responded_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    source: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default=ResponseSource.WEB_APP.value,
    )

    is_client_response: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    is_skipped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("job_id", "question_id", name="uq_job_responses_job_question"),
    )
