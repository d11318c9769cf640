from __future__ import annotations

import threading
from datetime import timedelta
from pathlib import Path

import allure
from sqlalchemy import text
from sqlalchemy import update as sa_update
from sqlmodel import Session, col

from arch_lanes.orchestrator.models import FailureClass, JobCreate, JobStatus, JobTool
from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.storage.common import to_db_datetime, utc_now
from arch_lanes.storage.sqlmodel_models import McpJob

pytestmark = [
    allure.epic("Job Queue"),
    allure.feature("Claim & Healing"),
]


def _repository(tmp_path: Path, name: str = "queue.db") -> JobQueueRepository:
    repository = JobQueueRepository(tmp_path / name)
    repository.init_schema()
    return repository


def _enqueue(repository: JobQueueRepository, *, priority: int = 0, job_id: str | None = None):
    return repository.enqueue(
        JobCreate(
            owner_id="alice",
            tool=JobTool.GPT_QUERY,
            params={"input": "hi"},
            model=None,
            provider="openai",
            job_id=job_id,
            priority=priority,
        ),
    )


def _backdate_start(repository: JobQueueRepository, job_id: str, *, seconds: int) -> None:
    with Session(repository.engine) as session:
        session.exec(
            sa_update(McpJob)
            .where(col(McpJob.job_id) == job_id)
            .values(started_at=to_db_datetime(utc_now() - timedelta(seconds=seconds))),
        )
        session.commit()


def test_enqueue_clamps_priority_and_starts_queued(tmp_path: Path) -> None:
    repository = _repository(tmp_path)

    high = _enqueue(repository, priority=200)
    low = _enqueue(repository, priority=-500)

    assert high.priority == 100
    assert low.priority == -100
    assert high.status == JobStatus.QUEUED
    assert high.attempts == 0
    assert high.next_at is None
    repository.close()


def test_enqueue_writes_job_and_event_with_foreign_keys_enforced(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    with repository.engine.connect() as connection:
        assert connection.execute(text("PRAGMA foreign_keys")).scalar_one() == 1

    job = _enqueue(repository, priority=5)

    details = repository.get_job_details(job_id=job.job_id)
    assert details is not None
    assert details.job.status == JobStatus.QUEUED
    assert [event.event_type for event in details.events] == ["enqueued"]
    assert details.events[0].status_to == JobStatus.QUEUED
    assert details.events[0].details["priority"] == 5
    repository.close()


def test_claim_orders_by_priority_then_age_and_skips_future_jobs(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    first_low = _enqueue(repository, priority=1, job_id="low-1")
    _enqueue(repository, priority=1, job_id="low-2")
    high = _enqueue(repository, priority=50, job_id="high")
    deferred = _enqueue(repository, priority=99, job_id="deferred")
    with Session(repository.engine) as session:
        session.exec(
            sa_update(McpJob)
            .where(col(McpJob.job_id) == deferred.job_id)
            .values(next_at=to_db_datetime(utc_now() + timedelta(minutes=5))),
        )
        session.commit()

    claimed = [repository.claim_next_ready_job(worker_id="w") for _ in range(4)]

    assert [job.job_id if job else None for job in claimed] == [
        high.job_id,
        first_low.job_id,
        "low-2",
        None,
    ]
    assert claimed[0] is not None
    assert claimed[0].status == JobStatus.PROCESSING
    assert claimed[0].started_at is not None
    assert claimed[0].claim_id
    repository.close()


def test_concurrent_claims_have_exactly_one_winner(tmp_path: Path) -> None:
    setup = _repository(tmp_path, "race.db")
    job = _enqueue(setup)
    workers = 8
    barrier = threading.Barrier(workers)
    results: list[str | None] = []
    lock = threading.Lock()

    def _claim(index: int) -> None:
        repository = JobQueueRepository(tmp_path / "race.db")
        try:
            barrier.wait(timeout=5)
            claimed = repository.claim_next_ready_job(worker_id=f"worker-{index}")
            with lock:
                results.append(claimed.job_id if claimed is not None else None)
        finally:
            repository.close()

    threads = [threading.Thread(target=_claim, args=(index,)) for index in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert len(results) == workers
    assert results.count(job.job_id) == 1
    assert results.count(None) == workers - 1
    details = setup.get_job_details(job_id=job.job_id)
    assert details is not None
    assert [event.event_type for event in details.events].count("claimed") == 1
    setup.close()


def test_heal_requeues_stale_job_exactly_once(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    claimed = repository.claim_next_ready_job(worker_id="dead-worker")
    assert claimed is not None

    assert repository.heal_stuck_jobs(stale_after=timedelta(seconds=300)) == 0
    _backdate_start(repository, job.job_id, seconds=600)

    assert repository.heal_stuck_jobs(stale_after=timedelta(seconds=300)) == 1
    assert repository.heal_stuck_jobs(stale_after=timedelta(seconds=300)) == 0

    healed = repository.get_job(job_id=job.job_id)
    assert healed is not None
    assert healed.status == JobStatus.QUEUED
    assert healed.started_at is None
    assert healed.claim_id is None
    assert healed.worker_id is None
    repository.close()


def test_straggler_cannot_write_after_job_was_healed_and_reclaimed(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    stale_claim = repository.claim_next_ready_job(worker_id="slow-worker")
    assert stale_claim is not None
    _backdate_start(repository, job.job_id, seconds=600)
    assert repository.heal_stuck_jobs(stale_after=timedelta(seconds=300)) == 1
    fresh_claim = repository.claim_next_ready_job(worker_id="fresh-worker")
    assert fresh_claim is not None
    assert fresh_claim.claim_id != stale_claim.claim_id

    assert (
        repository.complete_job(
            job_id=job.job_id,
            claim_id=stale_claim.claim_id or "",
            attempts=1,
            result={"output": "stale"},
            execution_ms=5,
            provider="openai",
            model="GPT-5",
        )
        is False
    )
    assert (
        repository.complete_job(
            job_id=job.job_id,
            claim_id=fresh_claim.claim_id or "",
            attempts=1,
            result={"output": "fresh"},
            execution_ms=7,
            provider="openai",
            model="GPT-5",
        )
        is True
    )

    final = repository.get_job(job_id=job.job_id)
    assert final is not None
    assert final.status == JobStatus.COMPLETED
    assert final.result == {"output": "fresh"}
    repository.close()


def test_terminal_states_reject_further_mutation(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    claimed = repository.claim_next_ready_job(worker_id="w")
    assert claimed is not None
    claim_id = claimed.claim_id or ""

    assert repository.fail_job(
        job_id=job.job_id,
        claim_id=claim_id,
        attempts=1,
        error="bad input",
        failure_class=FailureClass.INPUT_CONTRACT_ERROR,
        execution_ms=3,
    )
    assert repository.claim_job(job_id=job.job_id, worker_id="w") is None
    assert not repository.schedule_retry(
        job_id=job.job_id,
        claim_id=claim_id,
        attempts=2,
        next_at=utc_now(),
        error="again",
        failure_class=FailureClass.TIMEOUT,
        execution_ms=1,
    )
    assert not repository.complete_job(
        job_id=job.job_id,
        claim_id=claim_id,
        attempts=2,
        result={},
        execution_ms=1,
        provider=None,
        model=None,
    )

    failed = repository.get_job(job_id=job.job_id)
    assert failed is not None
    assert failed.status == JobStatus.FAILED
    assert failed.attempts == 1
    assert failed.failure_class == FailureClass.INPUT_CONTRACT_ERROR
    assert failed.completed_at is not None
    repository.close()


def test_retry_schedule_clears_claim_and_records_events(tmp_path: Path) -> None:
    repository = _repository(tmp_path)
    job = _enqueue(repository)
    claimed = repository.claim_next_ready_job(worker_id="w")
    assert claimed is not None
    next_at = utc_now() + timedelta(seconds=30)

    assert repository.schedule_retry(
        job_id=job.job_id,
        claim_id=claimed.claim_id or "",
        attempts=1,
        next_at=next_at,
        error="OpenAI error: 503 busy",
        failure_class=FailureClass.PROVIDER_TRANSIENT,
        execution_ms=12,
        metadata={"attempt": 1},
    )
    assert repository.claim_next_ready_job(worker_id="w") is None

    details = repository.get_job_details(job_id=job.job_id)
    assert details is not None
    assert details.job.status == JobStatus.QUEUED
    assert details.job.attempts == 1
    assert details.job.started_at is None
    assert details.job.claim_id is None
    assert details.job.next_at is not None
    assert abs((details.job.next_at - next_at).total_seconds()) < 1
    assert details.job.metadata == {"attempt": 1}
    assert [event.event_type for event in details.events] == [
        "enqueued",
        "claimed",
        "retry_scheduled",
    ]
    assert details.events[-1].details["failure_class"] == "provider_transient"
    repository.close()
