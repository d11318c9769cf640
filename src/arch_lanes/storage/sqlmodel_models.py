"""SQLModel ORM tables for runs, lane records, jobs, and call notes."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlmodel import Field, SQLModel


class ArchRun(SQLModel, table=True):
    __tablename__ = "arch_runs"  # type: ignore[bad-override]

    run_id: str = Field(primary_key=True)
    vision: str = Field(sa_column=Column(Text, nullable=False))
    status: str = Field(index=True)
    project_name: str | None = None
    wizard_data_json: str | None = Field(default=None, sa_column=Column(Text))
    meta_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class LaneEvent(SQLModel, table=True):
    __tablename__ = "lane_events"  # type: ignore[bad-override]
    __table_args__ = (UniqueConstraint("run_id", "lane", name="uq_lane_events_run_lane"),)

    id: int | None = Field(default=None, primary_key=True)
    run_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("arch_runs.run_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    lane: str = Field(index=True)
    lane_order: int
    status: str = Field(index=True)
    output_json: str | None = Field(default=None, sa_column=Column(Text))
    meta_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class McpJob(SQLModel, table=True):
    __tablename__ = "mcp_jobs"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_mcp_jobs_queue", "status", "priority", "next_at", "created_at"),)

    job_id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    tool: str = Field(index=True)
    params_json: str = Field(sa_column=Column(Text, nullable=False))
    priority: int = Field(default=0, index=True)
    model: str | None = None
    provider: str | None = None
    status: str = Field(index=True)
    attempts: int = Field(default=0)
    max_attempts: int = Field(default=3)
    next_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    started_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    completed_at: datetime | None = Field(default=None, sa_column=Column(DateTime(timezone=True)))
    execution_ms: int | None = None
    result_json: str | None = Field(default=None, sa_column=Column(Text))
    error: str | None = Field(default=None, sa_column=Column(Text))
    failure_class: str | None = Field(default=None, index=True)
    metadata_json: str | None = Field(default=None, sa_column=Column(Text))
    worker_id: str | None = Field(default=None, index=True)
    claim_id: str | None = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class JobEvent(SQLModel, table=True):
    __tablename__ = "job_events"  # type: ignore[bad-override]
    __table_args__ = (Index("idx_job_events_job_time", "job_id", "created_at"),)

    id: int | None = Field(default=None, primary_key=True)
    job_id: str = Field(
        sa_column=Column(
            String,
            ForeignKey("mcp_jobs.job_id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
    )
    event_type: str = Field(index=True)
    status_from: str | None = Field(default=None, index=True)
    status_to: str | None = Field(default=None, index=True)
    details_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class CallNote(SQLModel, table=True):
    __tablename__ = "call_notes"  # type: ignore[bad-override]

    id: int | None = Field(default=None, primary_key=True)
    note_id: str = Field(index=True)
    model: str = Field(index=True)
    provider: str = Field(index=True)
    input_sha256: str
    prompt_preview: str = Field(sa_column=Column(Text, nullable=False))
    notes_json: str | None = Field(default=None, sa_column=Column(Text))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
