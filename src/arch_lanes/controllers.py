"""Controllers for arch-lanes CLI commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from arch_lanes.config import Settings
from arch_lanes.orchestrator.models import JobStatus
from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.orchestrator.services import EnqueueJob
from arch_lanes.pipeline.models import RunStatus
from arch_lanes.pipeline.repository import RunRepository
from arch_lanes.wiring import Services, build_services

PREVIEW_CHARS = 160


@dataclass(slots=True)
class RunSubmitCommand:
    """CLI input for a synchronous pipeline run."""

    db_path: Path | None
    vision: str
    default_model: str | None
    project_name: str | None


@dataclass(slots=True)
class RunShowCommand:
    db_path: Path | None
    run_id: str
    full: bool = False


@dataclass(slots=True)
class RunListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class JobEnqueueCommand:
    """CLI input for job enqueue."""

    db_path: Path | None
    owner_id: str
    tool: str
    input_text: str
    model: str | None
    priority: int
    system: str | None
    models: tuple[str, ...]


@dataclass(slots=True)
class JobWorkerCommand:
    """CLI input for worker execution."""

    db_path: Path | None
    once: bool
    max_jobs: int | None
    max_idle_polls: int = 1


@dataclass(slots=True)
class JobListCommand:
    db_path: Path | None
    status: str | None
    limit: int


@dataclass(slots=True)
class JobInspectCommand:
    db_path: Path | None
    job_id: str


@dataclass(slots=True)
class JobHealCommand:
    db_path: Path | None
    stale_after_seconds: int | None


@dataclass(slots=True)
class DispatchCommand:
    """CLI input for one direct model call."""

    db_path: Path | None
    model: str
    input_text: str
    system: str | None
    max_tokens: int | None


class RunCliController:
    """Pipeline submission and run inspection."""

    def submit(self, command: RunSubmitCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            outcome = services.runner.start_run(
                command.vision,
                default_model=command.default_model,
                project_name=command.project_name,
            )
            details = services.runs.get_run(run_id=outcome.run_id)

        lines = [f"Run {outcome.run_id}: {outcome.status.value}"]
        if details is not None:
            lines.extend(_lane_lines(details.lanes, full=False))
        if outcome.error:
            lines.append(f"Error: {outcome.error}")
        return lines

    def show(self, command: RunShowCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _run_repository(settings) as repository:
            details = repository.get_run(run_id=command.run_id)
        if details is None:
            return [f"Run not found: {command.run_id}"]

        run = details.run
        lines = [
            f"Run: {run.run_id}",
            f"Status: {run.status.value}",
            f"Project: {run.project_name or '-'}",
            f"Created: {run.created_at.isoformat()}",
            f"Vision: {_preview(run.vision)}",
            "Lanes:",
        ]
        lines.extend(_lane_lines(details.lanes, full=command.full))
        return lines

    def list_runs(self, command: RunListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = RunStatus(command.status) if command.status else None
        with _run_repository(settings) as repository:
            runs = repository.list_runs(status=status, limit=command.limit)

        lines = [f"Runs: {len(runs)}"]
        for run in runs:
            lines.append(
                f"  {run.run_id} status={run.status.value} "
                f"created_at={run.created_at.isoformat()} vision={_preview(run.vision, 60)}",
            )
        return lines


class JobCliController:
    """Coordinates queue, worker, and inspection CLI operations."""

    def enqueue(self, command: JobEnqueueCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        params: dict[str, object] = {"input": command.input_text}
        if command.system:
            params["system"] = command.system
        if command.models:
            params["models"] = list(command.models)
        with _services(settings) as services:
            job = services.job_service.enqueue(
                EnqueueJob(
                    owner_id=command.owner_id,
                    tool=command.tool,
                    params=params,
                    model=command.model,
                    priority=command.priority,
                ),
            )
        return [
            f"Job enqueued: job_id={job.job_id} tool={job.tool.value} "
            f"status={job.status.value} priority={job.priority}",
        ]

    def run_worker(self, command: JobWorkerCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            worker = services.worker
            summary = (
                worker.run_once()
                if command.once
                else worker.run_loop(
                    max_jobs=command.max_jobs,
                    max_idle_polls=command.max_idle_polls,
                )
            )

        return [
            "Worker summary: "
            f"processed={summary.processed} completed={summary.completed} "
            f"failed={summary.failed} retried={summary.retried} "
            f"timeouts={summary.timeouts} healed={summary.healed} "
            f"idle_polls={summary.idle_polls}",
        ]

    def list_jobs(self, command: JobListCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        status = JobStatus(command.status) if command.status else None
        with _job_repository(settings) as repository:
            jobs = repository.list_jobs(status=status, limit=command.limit)

        lines = [f"Jobs: {len(jobs)}"]
        for job in jobs:
            next_at = job.next_at.isoformat() if job.next_at is not None else "-"
            lines.append(
                f"  {job.job_id} tool={job.tool.value} status={job.status.value} "
                f"priority={job.priority} attempts={job.attempts}/{job.max_attempts} "
                f"next_at={next_at}",
            )
        return lines

    def inspect(self, command: JobInspectCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _job_repository(settings) as repository:
            details = repository.get_job_details(job_id=command.job_id)
        if details is None:
            return [f"Job not found: {command.job_id}"]

        job = details.job
        lines = [
            f"Job: {job.job_id}",
            f"Owner: {job.owner_id}",
            f"Tool: {job.tool.value}",
            f"Model: {job.model or '-'} ({job.provider or '-'})",
            f"Status: {job.status.value}",
            f"Attempts: {job.attempts}/{job.max_attempts}",
            f"Next at: {job.next_at.isoformat() if job.next_at else '-'}",
            f"Failure class: {job.failure_class.value if job.failure_class else '-'}",
            f"Error: {job.error or '-'}",
            f"Execution ms: {job.execution_ms if job.execution_ms is not None else '-'}",
            f"Result: {_preview(json.dumps(job.result, ensure_ascii=False)) if job.result else '-'}",
            f"Events: {len(details.events)}",
        ]
        for event in details.events:
            lines.append(
                f"  {event.created_at.isoformat()} {event.event_type} "
                f"{event.status_from.value if event.status_from else '-'} -> "
                f"{event.status_to.value if event.status_to else '-'}",
            )
        return lines

    def heal(self, command: JobHealCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        stale_after = command.stale_after_seconds or settings.queue.heal_after_seconds
        with _job_repository(settings) as repository:
            healed = repository.heal_stuck_jobs(stale_after=timedelta(seconds=stale_after))
        return [f"Healed jobs: {healed} (stale_after={stale_after}s)"]


class DispatchCliController:
    def dispatch(self, command: DispatchCommand) -> list[str]:
        settings = Settings.from_env(db_path=command.db_path)
        with _services(settings) as services:
            result = services.dispatch.dispatch(
                model=command.model,
                input_text=command.input_text,
                system=command.system,
                max_tokens=command.max_tokens,
            )
        return [f"[{result.model} via {result.provider}]", result.output_text]


def _lane_lines(lanes, *, full: bool) -> list[str]:
    lines: list[str] = []
    for lane in lanes:
        model = lane.meta.get("model", "-")
        line = f"  {lane.lane.value:<5} {lane.status.value:<9} model={model}"
        if "error" in lane.meta:
            line += f" error={_preview(str(lane.meta['error']))}"
        lines.append(line)
        if full and lane.output is not None:
            lines.append(json.dumps(lane.output, ensure_ascii=False, indent=2))
    return lines


def _preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    compact = " ".join(text.split())
    if len(compact) <= limit:
        return compact
    return compact[: limit - 3] + "..."


@contextmanager
def _services(settings: Settings) -> Iterator[Services]:
    services = build_services(settings)
    try:
        yield services
    finally:
        services.close()


@contextmanager
def _job_repository(settings: Settings) -> Iterator[JobQueueRepository]:
    repository = JobQueueRepository(settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()


@contextmanager
def _run_repository(settings: Settings) -> Iterator[RunRepository]:
    repository = RunRepository(settings.db_path)
    repository.init_schema()
    try:
        yield repository
    finally:
        repository.close()
