from __future__ import annotations

import random
from collections.abc import Iterator
from datetime import timedelta
from pathlib import Path

import allure
import pytest
from sqlalchemy import update as sa_update
from sqlmodel import Session, col

from arch_lanes.errors import ConflictError
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.gateway.models import CLAUDE_45_SONNET, GEMINI_25_PRO, GPT_5
from arch_lanes.orchestrator.models import FailureClass, JobCreate, JobStatus, JobTool
from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.orchestrator.retry_policy import RetryPolicy
from arch_lanes.orchestrator.worker import COMPLETED, FAILED, REQUEUED, QueueWorker
from arch_lanes.storage.common import to_db_datetime, utc_now
from arch_lanes.storage.sqlmodel_models import McpJob
from conftest import FakeProviders

pytestmark = [
    allure.epic("Job Queue"),
    allure.feature("Worker Execution"),
]


@pytest.fixture()
def repository(tmp_path: Path) -> Iterator[JobQueueRepository]:
    repository = JobQueueRepository(tmp_path / "worker.db")
    repository.init_schema()
    yield repository
    repository.close()


def _worker(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
    *,
    tool_timeouts: dict[str, float] | None = None,
) -> QueueWorker:
    return QueueWorker(
        repository=repository,
        gateway=gateway,
        worker_id="worker-test",
        retry_policy=RetryPolicy(base_seconds=10, cap_seconds=300, jitter_seconds=5),
        tool_timeouts=tool_timeouts,
        heal_after_seconds=300,
        poll_interval_seconds=0.01,
        rng=random.Random(42),  # noqa: S311
    )


def _enqueue(
    repository: JobQueueRepository,
    *,
    tool: JobTool = JobTool.GPT_QUERY,
    params: dict[str, object] | None = None,
    model: str | None = None,
    metadata: dict[str, object] | None = None,
):
    return repository.enqueue(
        JobCreate(
            owner_id="alice",
            tool=tool,
            params=params if params is not None else {"input": "Plan the release"},
            model=model,
            provider=None,
            max_attempts=3,
            metadata=metadata,
        ),
    )


def _make_due(repository: JobQueueRepository, job_id: str) -> None:
    with Session(repository.engine) as session:
        session.exec(
            sa_update(McpJob)
            .where(col(McpJob.job_id) == job_id)
            .values(next_at=to_db_datetime(utc_now() - timedelta(seconds=1))),
        )
        session.commit()


def test_poll_once_completes_job_and_merges_execution_metadata(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
    fake_providers: FakeProviders,
) -> None:
    fake_providers.texts["openai"] = "release plan"
    job = _enqueue(repository, metadata={"source": "api"})

    outcome = _worker(repository, gateway).poll_once()

    assert outcome.message == "Job processed"
    assert outcome.job_id == job.job_id
    assert outcome.status == COMPLETED
    stored = repository.get_job(job_id=job.job_id)
    assert stored is not None
    assert stored.status == JobStatus.COMPLETED
    assert stored.attempts == 1
    assert stored.result == {"output": "release plan", "provider": "openai", "model": GPT_5}
    assert stored.provider == "openai"
    assert stored.model == GPT_5
    assert stored.execution_ms is not None
    assert stored.metadata["source"] == "api"
    assert stored.metadata["attempt"] == 1
    assert stored.metadata["provider"] == "openai"
    assert stored.metadata["model"] == GPT_5
    assert "completed_at" in stored.metadata
    assert "execution_ms" in stored.metadata


def test_poll_once_reports_idle_queue(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
) -> None:
    outcome = _worker(repository, gateway).poll_once()

    assert outcome.to_response_dict() == {
        "message": "No jobs to process",
        "job_id": None,
        "status": None,
        "healed": 0,
    }


def test_transient_failures_retry_with_backoff_until_exhausted(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
    fake_providers: FakeProviders,
) -> None:
    fake_providers.fail("openai", status=503, body="overloaded")
    job = _enqueue(repository)
    worker = _worker(repository, gateway)

    before = utc_now()
    first = worker.poll_once()

    assert first.status == REQUEUED
    requeued = repository.get_job(job_id=job.job_id)
    assert requeued is not None
    assert requeued.status == JobStatus.QUEUED
    assert requeued.attempts == 1
    assert requeued.failure_class == FailureClass.PROVIDER_TRANSIENT
    assert requeued.next_at is not None
    assert before + timedelta(seconds=10) <= requeued.next_at
    assert requeued.next_at < utc_now() + timedelta(seconds=15)
    assert worker.poll_once().message == "No jobs to process"

    _make_due(repository, job.job_id)
    assert worker.poll_once().status == REQUEUED
    _make_due(repository, job.job_id)
    last = worker.poll_once()

    assert last.status == FAILED
    assert last.report is not None
    assert last.report.attempts == 3
    failed = repository.get_job(job_id=job.job_id)
    assert failed is not None
    assert failed.status == JobStatus.FAILED
    assert failed.attempts == failed.max_attempts == 3
    assert failed.next_at is None
    assert failed.error == "OpenAI error: 503 overloaded"
    assert len(fake_providers.requests_for("openai")) == 3


def test_timeout_abandons_local_wait_and_schedules_retry(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
    fake_providers: FakeProviders,
) -> None:
    fake_providers.delays["anthropic"] = 0.5
    job = _enqueue(repository, tool=JobTool.CLAUDE_QUERY)
    worker = _worker(repository, gateway, tool_timeouts={"claude-query": 0.05})

    report = worker.execute_claimed(
        repository.claim_job(job_id=job.job_id, worker_id=worker.worker_id),
    )

    assert report.status == REQUEUED
    assert report.failure_class == FailureClass.TIMEOUT
    assert report.error == "Job execution timeout after 0.05s (tool=claude-query)"
    assert report.next_at is not None
    assert report.execution_ms < 500


def test_input_contract_errors_fail_without_retry(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
    fake_providers: FakeProviders,
) -> None:
    job = _enqueue(repository, params={"prompt": "wrong key"})

    outcome = _worker(repository, gateway).poll_once()

    assert outcome.status == FAILED
    failed = repository.get_job(job_id=job.job_id)
    assert failed is not None
    assert failed.status == JobStatus.FAILED
    assert failed.attempts == 1
    assert failed.failure_class == FailureClass.INPUT_CONTRACT_ERROR
    assert failed.error == "Missing or invalid 'input' parameter"
    assert fake_providers.requests == []


def test_multi_model_query_collects_independent_outcomes(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
    fake_providers: FakeProviders,
) -> None:
    fake_providers.fail("google", status=500, body="gemini down")
    job = _enqueue(
        repository,
        tool=JobTool.MULTI_MODEL_QUERY,
        params={"input": "Compare", "models": [GPT_5, GEMINI_25_PRO, CLAUDE_45_SONNET]},
    )

    outcome = _worker(repository, gateway).poll_once()

    assert outcome.status == COMPLETED
    stored = repository.get_job(job_id=job.job_id)
    assert stored is not None
    results = stored.result["results"]
    assert [item["model"] for item in results] == [GPT_5, GEMINI_25_PRO, CLAUDE_45_SONNET]
    assert [item["success"] for item in results] == [True, False, True]
    assert results[1]["error"] == "Gemini error: 500 gemini down"
    assert results[2]["provider"] == "anthropic"


def test_poll_once_heals_stale_job_before_claiming(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
) -> None:
    job = _enqueue(repository)
    assert repository.claim_next_ready_job(worker_id="dead-worker") is not None
    with Session(repository.engine) as session:
        session.exec(
            sa_update(McpJob)
            .where(col(McpJob.job_id) == job.job_id)
            .values(started_at=to_db_datetime(utc_now() - timedelta(hours=1))),
        )
        session.commit()

    outcome = _worker(repository, gateway).poll_once()

    assert outcome.healed == 1
    assert outcome.job_id == job.job_id
    assert outcome.status == COMPLETED


def test_lost_claim_is_reported_as_conflict(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
) -> None:
    job = _enqueue(repository)
    worker = _worker(repository, gateway)
    stale = repository.claim_job(job_id=job.job_id, worker_id="slow-worker")
    assert stale is not None
    with Session(repository.engine) as session:
        session.exec(
            sa_update(McpJob)
            .where(col(McpJob.job_id) == job.job_id)
            .values(claim_id="someone-else"),
        )
        session.commit()

    with pytest.raises(ConflictError, match="claim was lost"):
        worker.execute_claimed(stale)


def test_run_loop_drains_queue_and_stops_when_idle(
    repository: JobQueueRepository,
    gateway: ProviderGateway,
) -> None:
    _enqueue(repository)
    _enqueue(repository, tool=JobTool.GEMINI_QUERY)

    summary = _worker(repository, gateway).run_loop(max_idle_polls=1)

    assert summary.processed == 2
    assert summary.completed == 2
    assert summary.failed == 0
    assert summary.idle_polls == 1
