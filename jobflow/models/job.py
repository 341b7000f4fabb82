"""
Job model.

Only the subset of a job the stage engine needs: where it is, since when,
what kind of job it is and who owns it.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from jobflow.models.base_model import CompanyScopedModel
from jobflow.models.enums import JobStatus


class Job(CompanyScopedModel):
    """
    Job table - a unit of work moving through the company's stages.

    current_stage_id is only ever changed by the transition engine (and
    cleared when its stage is deleted). version is the optimistic lock that
    serializes writes per job.
    """

    __tablename__ = "jobs"

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    # Category used by skip conditions and transition guards (e.g. "emergency_repair")
    job_type: Mapped[str] = mapped_column(String(50), nullable=False, default="standard", index=True)

    current_stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Stage the job was created in; start of its audit path
    initial_stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("job_stages.id", ondelete="SET NULL"),
        nullable=True,
    )

    stage_entered_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Coarse status mirrored from the current stage
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=JobStatus.PLANNING.value,
    )

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}
