"""
StageQuestion model.

Represents one question asked while a job sits in a stage.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.models.base_model import JSONType, TimestampedModel


class StageQuestion(TimestampedModel):
    """
    StageQuestion table - an ordered question asked while a job is in a stage.

    skip_conditions holds a list of tagged condition documents
    (job_type_exclusion / prior_response_equals); an empty list never skips.
    """

    __tablename__ = "stage_questions"

    stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    question_text: Mapped[str] = mapped_column(Text, nullable=False)

    response_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Allowed answers for multiple_choice questions
    response_options: Mapped[Optional[list]] = mapped_column(JSONType, nullable=True)

    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    help_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    skip_conditions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    __table_args__ = (
        UniqueConstraint("stage_id", "sequence_order", name="uq_stage_questions_order"),
        CheckConstraint(
            "response_type IN ('yes_no', 'number', 'date', 'text', 'file_upload', 'multiple_choice')",
            name="ck_stage_questions_response_type",
        ),
    )
