"""Use-case services for the job queue."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from arch_lanes.errors import ConflictError, NotFoundError, ValidationError
from arch_lanes.gateway.models import ALLOWED_MODELS, is_allowed_model, provider_for
from arch_lanes.orchestrator.models import (
    JobCreate,
    JobDetails,
    JobStatus,
    JobTool,
    JobView,
)
from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.orchestrator.tools import resolve_job_model
from arch_lanes.orchestrator.worker import ExecutionReport, QueueWorker
from arch_lanes.storage.common import utc_now

ALLOWED_TOOLS: tuple[str, ...] = tuple(tool.value for tool in JobTool)


@dataclass(slots=True)
class EnqueueJob:
    """High-level command to enqueue a job on behalf of a caller."""

    owner_id: str
    tool: str
    params: Any
    model: str | None = None
    priority: Any = 0
    metadata: dict[str, Any] | None = None


class JobQueueService:
    """Validates caller input and applies ownership rules around the queue."""

    def __init__(
        self,
        *,
        repository: JobQueueRepository,
        worker: QueueWorker,
        max_attempts: int = 3,
    ) -> None:
        self.repository = repository
        self.worker = worker
        self.max_attempts = max_attempts

    def enqueue(self, command: EnqueueJob) -> JobView:
        """Validate and insert a queued job; priority is clamped to [-100, 100]."""

        if not command.tool or command.params is None:
            raise ValidationError("Missing fields: tool and params are required")
        if command.tool not in ALLOWED_TOOLS:
            raise ValidationError(
                f"Invalid tool: {command.tool}. Allowed: {', '.join(ALLOWED_TOOLS)}",
            )
        if not isinstance(command.params, dict):
            raise ValidationError("params must be an object")
        if command.model is not None and not is_allowed_model(command.model):
            raise ValidationError(
                f"Invalid model: {command.model}. Allowed: {', '.join(ALLOWED_MODELS)}",
            )
        priority = command.priority if command.priority is not None else 0
        if isinstance(priority, bool) or not isinstance(priority, int):
            raise ValidationError("priority must be an integer")

        tool = JobTool(command.tool)
        provider = provider_for(resolve_job_model(tool, command.model))
        return self.repository.enqueue(
            JobCreate(
                owner_id=command.owner_id,
                tool=tool,
                params=command.params,
                model=command.model,
                provider=provider.value if provider is not None else None,
                priority=priority,
                max_attempts=self.max_attempts,
                metadata=command.metadata,
            ),
        )

    def execute_job(self, *, owner_id: str, job_id: str) -> ExecutionReport:
        """Claim one of the caller's queued jobs and execute it now."""

        if not job_id:
            raise ValidationError("Missing field: job_id")
        job = self._get_owned_job(owner_id=owner_id, job_id=job_id)
        if job.status != JobStatus.QUEUED:
            raise ConflictError(f"Job is already {job.status.value}", status=job.status.value)
        if job.next_at is not None and job.next_at > utc_now():
            raise ConflictError(
                f"Job is not due until {job.next_at.isoformat()}",
                status=job.status.value,
            )

        claimed = self.repository.claim_job(job_id=job_id, worker_id=self.worker.worker_id)
        if claimed is None:
            raise ConflictError("Job already taken or not accessible")
        return self.worker.execute_claimed(claimed)

    def get_status(self, *, owner_id: str, job_id: str) -> JobView:
        if not job_id:
            raise ValidationError("Missing query parameter: job_id")
        return self._get_owned_job(owner_id=owner_id, job_id=job_id)

    def get_details(self, *, job_id: str) -> JobDetails:
        details = self.repository.get_job_details(job_id=job_id)
        if details is None:
            raise NotFoundError(f"Job not found: {job_id}")
        return details

    def _get_owned_job(self, *, owner_id: str, job_id: str) -> JobView:
        job = self.repository.get_job(job_id=job_id)
        if job is None or job.owner_id != owner_id:
            raise NotFoundError("Job not found or access denied")
        return job
