"""
StageAuditEntry model.

Append-only record of every realized stage change.
"""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.models.base_model import JSONType, CompanyScopedModel


class StageAuditEntry(CompanyScopedModel):
    """
    StageAuditEntry table - one realized transition for one job.

    Rows are written once by the transition engine and never updated.
    sequence_number counts a job's transitions from 1; the unique constraint
    on (job_id, sequence_number) rejects a second writer racing for the same
    step. Stage references are plain foreign keys (no cascade) so history
    blocks deletion of the stages it mentions.
    """

    __tablename__ = "stage_audit_log"

    job_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("jobs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)

    from_stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id"),
        nullable=True,
    )

    to_stage_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id"),
        nullable=False,
    )

    from_status: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    to_status: Mapped[str] = mapped_column(String(20), nullable=False)

    # question_response, manual, admin_override, system_auto
    trigger_source: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    triggered_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Edge taken; NULL for admin overrides
    transition_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Triggering question and value, kept as plain values so deleting a question never rewrites history
    question_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    response_value: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    trigger_details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    duration_in_previous_stage_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("job_id", "sequence_number", name="uq_stage_audit_log_job_sequence"),
        Index("ix_stage_audit_log_job_created", "job_id", "created_at"),
    )
