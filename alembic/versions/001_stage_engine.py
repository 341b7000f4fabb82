"""Stage progression engine tables

Revision ID: 001_stage_engine
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_stage_engine"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "job_stages",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), nullable=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("color", sa.String(length=7), nullable=False, server_default="#6B7280"),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("maps_to_status", sa.String(length=20), nullable=False, server_default="planning"),
        sa.Column("stage_type", sa.String(length=20), nullable=False, server_default="standard"),
        sa.Column("min_duration_hours", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_duration_hours", sa.Integer(), nullable=True),
        sa.Column("requires_approval", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_initial", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("company_id", "sequence_order", name="uq_job_stages_company_sequence"),
        sa.CheckConstraint(
            "maps_to_status IN ('planning', 'active', 'on_hold', 'completed', 'cancelled')",
            name="ck_job_stages_status",
        ),
        sa.CheckConstraint("stage_type IN ('standard', 'milestone', 'approval')", name="ck_job_stages_type"),
        sa.CheckConstraint(
            "max_duration_hours IS NULL OR max_duration_hours > min_duration_hours",
            name="ck_job_stages_duration",
        ),
    )
    op.create_index("ix_job_stages_company_id", "job_stages", ["company_id"])
    op.create_index(
        "uq_job_stages_platform_sequence",
        "job_stages",
        ["sequence_order"],
        unique=True,
        postgresql_where=sa.text("company_id IS NULL"),
        sqlite_where=sa.text("company_id IS NULL"),
    )

    op.create_table(
        "stage_questions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("stage_id", sa.Uuid(), sa.ForeignKey("job_stages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("question_text", sa.Text(), nullable=False),
        sa.Column("response_type", sa.String(length=20), nullable=False),
        sa.Column("response_options", JSON_TYPE, nullable=True),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("help_text", sa.Text(), nullable=True),
        sa.Column("skip_conditions", JSON_TYPE, nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("stage_id", "sequence_order", name="uq_stage_questions_order"),
        sa.CheckConstraint(
            "response_type IN ('yes_no', 'number', 'date', 'text', 'file_upload', 'multiple_choice')",
            name="ck_stage_questions_response_type",
        ),
    )
    op.create_index("ix_stage_questions_stage_id", "stage_questions", ["stage_id"])

    op.create_table(
        "stage_transitions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("from_stage_id", sa.Uuid(), sa.ForeignKey("job_stages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("to_stage_id", sa.Uuid(), sa.ForeignKey("job_stages.id", ondelete="CASCADE"), nullable=False),
        sa.Column("trigger_question_id", sa.Uuid(), sa.ForeignKey("stage_questions.id"), nullable=True),
        sa.Column("trigger_response", sa.Text(), nullable=True),
        sa.Column("conditions", JSON_TYPE, nullable=False),
        sa.Column("is_automatic", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("requires_admin_override", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("sequence_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("from_stage_id <> to_stage_id", name="ck_stage_transitions_no_self"),
    )
    op.create_index("ix_stage_transitions_from_stage_id", "stage_transitions", ["from_stage_id"])
    op.create_index("ix_stage_transitions_to_stage_id", "stage_transitions", ["to_stage_id"])

    op.create_table(
        "jobs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("job_type", sa.String(length=50), nullable=False, server_default="standard"),
        sa.Column(
            "current_stage_id",
            sa.Uuid(),
            sa.ForeignKey("job_stages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "initial_stage_id",
            sa.Uuid(),
            sa.ForeignKey("job_stages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("stage_entered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="planning"),
        sa.Column("created_by", sa.Uuid(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        *_timestamps(),
    )
    op.create_index("ix_jobs_company_id", "jobs", ["company_id"])
    op.create_index("ix_jobs_job_type", "jobs", ["job_type"])
    op.create_index("ix_jobs_current_stage_id", "jobs", ["current_stage_id"])

    op.create_table(
        "job_responses",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "question_id",
            sa.Uuid(),
            sa.ForeignKey("stage_questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("response_metadata", JSON_TYPE, nullable=False),
        sa.Column("responded_by", sa.Uuid(), nullable=True),
        sa.Column("source", sa.String(length=50), nullable=False, server_default="web_app"),
        sa.Column("is_client_response", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_skipped", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.UniqueConstraint("job_id", "question_id", name="uq_job_responses_job_question"),
    )
    op.create_index("ix_job_responses_company_id", "job_responses", ["company_id"])
    op.create_index("ix_job_responses_job_id", "job_responses", ["job_id"])
    op.create_index("ix_job_responses_question_id", "job_responses", ["question_id"])

    op.create_table(
        "stage_audit_log",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("job_id", sa.Uuid(), sa.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sequence_number", sa.Integer(), nullable=False),
        sa.Column("from_stage_id", sa.Uuid(), sa.ForeignKey("job_stages.id"), nullable=True),
        sa.Column("to_stage_id", sa.Uuid(), sa.ForeignKey("job_stages.id"), nullable=False),
        sa.Column("from_status", sa.String(length=20), nullable=True),
        sa.Column("to_status", sa.String(length=20), nullable=False),
        sa.Column("trigger_source", sa.String(length=50), nullable=False),
        sa.Column("triggered_by", sa.Uuid(), nullable=True),
        sa.Column("transition_id", sa.Uuid(), nullable=True),
        sa.Column("question_id", sa.Uuid(), nullable=True),
        sa.Column("response_value", sa.Text(), nullable=True),
        sa.Column("trigger_details", JSON_TYPE, nullable=False),
        sa.Column("duration_in_previous_stage_seconds", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("job_id", "sequence_number", name="uq_stage_audit_log_job_sequence"),
    )
    op.create_index("ix_stage_audit_log_company_id", "stage_audit_log", ["company_id"])
    op.create_index("ix_stage_audit_log_job_id", "stage_audit_log", ["job_id"])
    op.create_index("ix_stage_audit_log_trigger_source", "stage_audit_log", ["trigger_source"])
    op.create_index("ix_stage_audit_log_job_created", "stage_audit_log", ["job_id", "created_at"])


def downgrade() -> None:
    op.drop_table("stage_audit_log")
    op.drop_table("job_responses")
    op.drop_table("jobs")
    op.drop_table("stage_transitions")
    op.drop_table("stage_questions")
    op.drop_index("uq_job_stages_platform_sequence", table_name="job_stages")
    op.drop_index("ix_job_stages_company_id", table_name="job_stages")
    op.drop_table("job_stages")
