"""
StageTransition model.

Represents a configured edge from one stage to another.
"""

import uuid
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.models.base_model import JSONType, TimestampedModel


class StageTransition(TimestampedModel):
    """
    StageTransition table - a directed edge between two stages.

    An edge fires when its trigger (trigger_response and/or a numeric
    threshold condition) matches, or unconditionally on stage completion when
    it is automatic and has no trigger.
    """

    __tablename__ = "stage_transitions"

    from_stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    to_stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Question whose active answer is tested; NULL tests the value just submitted
    trigger_question_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("stage_questions.id"),
        nullable=True,
    )

    trigger_response: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Tagged condition documents (numeric_threshold / job_type_in)
    conditions: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    is_automatic: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    requires_admin_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Configuration order; the first matching edge wins
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        CheckConstraint("from_stage_id <> to_stage_id", name="ck_stage_transitions_no_self"),
    )
