"""Initial runs, lane records, job queue, and call notes schema."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "arch_runs",
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("vision", sa.Text(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("project_name", sa.String(), nullable=True),
        sa.Column("wizard_data_json", sa.Text(), nullable=True),
        sa.Column("meta_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("run_id"),
    )
    op.create_index("ix_arch_runs_status", "arch_runs", ["status"], unique=False)

    op.create_table(
        "lane_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("run_id", sa.String(), nullable=False),
        sa.Column("lane", sa.String(), nullable=False),
        sa.Column("lane_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("output_json", sa.Text(), nullable=True),
        sa.Column("meta_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["run_id"], ["arch_runs.run_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("run_id", "lane", name="uq_lane_events_run_lane"),
    )
    op.create_index("ix_lane_events_run_id", "lane_events", ["run_id"], unique=False)
    op.create_index("ix_lane_events_lane", "lane_events", ["lane"], unique=False)
    op.create_index("ix_lane_events_status", "lane_events", ["status"], unique=False)

    op.create_table(
        "mcp_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("owner_id", sa.String(), nullable=False),
        sa.Column("tool", sa.String(), nullable=False),
        sa.Column("params_json", sa.Text(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("model", sa.String(), nullable=True),
        sa.Column("provider", sa.String(), nullable=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default=sa.text("3")),
        sa.Column("next_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("execution_ms", sa.Integer(), nullable=True),
        sa.Column("result_json", sa.Text(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("failure_class", sa.String(), nullable=True),
        sa.Column("metadata_json", sa.Text(), nullable=True),
        sa.Column("worker_id", sa.String(), nullable=True),
        sa.Column("claim_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index(
        "idx_mcp_jobs_queue",
        "mcp_jobs",
        ["status", "priority", "next_at", "created_at"],
        unique=False,
    )
    op.create_index("ix_mcp_jobs_owner_id", "mcp_jobs", ["owner_id"], unique=False)
    op.create_index("ix_mcp_jobs_tool", "mcp_jobs", ["tool"], unique=False)
    op.create_index("ix_mcp_jobs_priority", "mcp_jobs", ["priority"], unique=False)
    op.create_index("ix_mcp_jobs_status", "mcp_jobs", ["status"], unique=False)
    op.create_index("ix_mcp_jobs_failure_class", "mcp_jobs", ["failure_class"], unique=False)
    op.create_index("ix_mcp_jobs_worker_id", "mcp_jobs", ["worker_id"], unique=False)

    op.create_table(
        "job_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("event_type", sa.String(), nullable=False),
        sa.Column("status_from", sa.String(), nullable=True),
        sa.Column("status_to", sa.String(), nullable=True),
        sa.Column("details_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["job_id"], ["mcp_jobs.job_id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_job_events_job_time", "job_events", ["job_id", "created_at"])
    op.create_index("ix_job_events_job_id", "job_events", ["job_id"], unique=False)
    op.create_index("ix_job_events_event_type", "job_events", ["event_type"], unique=False)
    op.create_index("ix_job_events_status_from", "job_events", ["status_from"], unique=False)
    op.create_index("ix_job_events_status_to", "job_events", ["status_to"], unique=False)

    op.create_table(
        "call_notes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("note_id", sa.String(), nullable=False),
        sa.Column("model", sa.String(), nullable=False),
        sa.Column("provider", sa.String(), nullable=False),
        sa.Column("input_sha256", sa.String(), nullable=False),
        sa.Column("prompt_preview", sa.Text(), nullable=False),
        sa.Column("notes_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_call_notes_note_id", "call_notes", ["note_id"], unique=False)
    op.create_index("ix_call_notes_model", "call_notes", ["model"], unique=False)
    op.create_index("ix_call_notes_provider", "call_notes", ["provider"], unique=False)


def downgrade() -> None:
    op.drop_table("call_notes")
    op.drop_table("job_events")
    op.drop_table("mcp_jobs")
    op.drop_table("lane_events")
    op.drop_table("arch_runs")
