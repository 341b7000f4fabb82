"""
JobStage model.

Represents one ordered step in a job's lifecycle (e.g., Lead Qualification,
Client Decision, Handover & Close).
"""

import uuid
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.models.base_model import TimestampedModel
from jobflow.models.enums import JobStatus, StageType


class JobStage(TimestampedModel):
    """
    JobStage table - one step of a configurable job lifecycle.

    A stage belongs either to the platform default set (company_id is NULL)
    or to exactly one company. sequence_order is unique within that scope and
    exactly one stage per scope carries is_initial.
    """

    __tablename__ = "job_stages"

    # NULL means the stage belongs to the platform default set
    company_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Hex color used by progress displays (#RRGGBB)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#6B7280")

    # Position of the stage inside its scope (1, 2, 3, ...)
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)

    # Coarse status a job reports while it sits in this stage
    maps_to_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.PLANNING.value,
    )

    stage_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=StageType.STANDARD.value,
    )

    min_duration_hours: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_duration_hours: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    requires_approval: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Jobs created in this scope start here
    is_initial: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    __table_args__ = (
        UniqueConstraint("company_id", "sequence_order", name="uq_job_stages_company_sequence"),
        # NULLs never collide in a unique constraint, so the platform scope needs its own index
        Index(
            "uq_job_stages_platform_sequence",
            "sequence_order",
            unique=True,
            postgresql_where=text("company_id IS NULL"),
            sqlite_where=text("company_id IS NULL"),
        ),
        CheckConstraint(
            "maps_to_status IN ('planning', 'active', 'on_hold', 'completed', 'cancelled')",
            name="ck_job_stages_status",
        ),
        CheckConstraint(
            "stage_type IN ('standard', 'milestone', 'approval')",
            name="ck_job_stages_type",
        ),
        CheckConstraint(
            "max_duration_hours IS NULL OR max_duration_hours > min_duration_hours",
            name="ck_job_stages_duration",
        ),
    )

    @property
    def is_terminal_status(self) -> bool:
        return self.maps_to_status in {s.value for s in JobStatus.terminal_statuses()}
