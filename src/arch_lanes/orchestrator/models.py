"""Domain models for the job queue."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from arch_lanes.gateway.models import CLAUDE_45_SONNET, GEMINI_25_PRO, GPT_5

PRIORITY_MIN = -100
PRIORITY_MAX = 100


class JobStatus(str, Enum):
    """Durable job lifecycle states."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


class FailureClass(str, Enum):
    """Normalized failure classes used by retry policy."""

    TIMEOUT = "timeout"
    PROVIDER_TRANSIENT = "provider_transient"
    PROVIDER_REJECTED = "provider_rejected"
    CREDENTIALS_MISSING = "credentials_missing"
    INPUT_CONTRACT_ERROR = "input_contract_error"
    INTERNAL_ERROR = "internal_error"


class JobTool(str, Enum):
    """Allow-listed job tools."""

    GEMINI_QUERY = "gemini-query"
    GPT_QUERY = "gpt-query"
    CLAUDE_QUERY = "claude-query"
    MULTI_MODEL_QUERY = "multi-model-query"


TOOL_DEFAULT_MODELS: dict[JobTool, str] = {
    JobTool.GEMINI_QUERY: GEMINI_25_PRO,
    JobTool.GPT_QUERY: GPT_5,
    JobTool.CLAUDE_QUERY: CLAUDE_45_SONNET,
    JobTool.MULTI_MODEL_QUERY: GPT_5,
}


def clamp_priority(value: int) -> int:
    return max(PRIORITY_MIN, min(PRIORITY_MAX, value))


@dataclass(slots=True)
class JobCreate:
    """Input payload for enqueuing a job."""

    owner_id: str
    tool: JobTool
    params: dict[str, Any]
    model: str
    provider: str
    job_id: str | None = None
    priority: int = 0
    max_attempts: int = 3
    metadata: dict[str, Any] | None = None


@dataclass(slots=True)
class JobView:
    """Readable job projection for API, CLI, and worker logic."""

    job_id: str
    owner_id: str
    tool: JobTool
    params: dict[str, Any]
    priority: int
    model: str | None
    provider: str | None
    status: JobStatus
    attempts: int
    max_attempts: int
    next_at: datetime | None
    started_at: datetime | None
    completed_at: datetime | None
    execution_ms: int | None
    result: Any
    error: str | None
    failure_class: FailureClass | None
    metadata: dict[str, Any]
    worker_id: str | None
    claim_id: str | None
    created_at: datetime
    updated_at: datetime

    def to_public_dict(self) -> dict[str, Any]:
        """Serialize the record without claim internals."""

        return {
            "job_id": self.job_id,
            "owner_id": self.owner_id,
            "tool": self.tool.value,
            "params": self.params,
            "priority": self.priority,
            "model": self.model,
            "provider": self.provider,
            "status": self.status.value,
            "attempts": self.attempts,
            "max_attempts": self.max_attempts,
            "next_at": _iso(self.next_at),
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "execution_ms": self.execution_ms,
            "result": self.result,
            "error": self.error,
            "failure_class": self.failure_class.value if self.failure_class else None,
            "metadata": self.metadata,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


@dataclass(slots=True)
class JobEventView:
    """Job event entry for audit trail."""

    event_id: int
    job_id: str
    event_type: str
    status_from: JobStatus | None
    status_to: JobStatus | None
    created_at: datetime
    details: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class JobDetails:
    """Job with event stream."""

    job: JobView
    events: list[JobEventView]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None
