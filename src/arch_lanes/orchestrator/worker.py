"""Queue worker that executes provider jobs."""

from __future__ import annotations

import logging
import random
import signal
import time
from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor, wait
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from arch_lanes.config import DEFAULT_TOOL_TIMEOUTS
from arch_lanes.errors import ConflictError, JobTimeoutError
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.gateway.models import provider_for
from arch_lanes.orchestrator.failure_classifier import classify_job_failure
from arch_lanes.orchestrator.models import FailureClass, JobView
from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.orchestrator.retry_policy import RetryPolicy, decide_retry
from arch_lanes.orchestrator.tools import ToolOutcome, execute_tool, resolve_job_model
from arch_lanes.storage.common import utc_now

logger = logging.getLogger(__name__)

REQUEUED = "requeued"
COMPLETED = "completed"
FAILED = "failed"


@dataclass(slots=True)
class WorkerRunSummary:
    """Aggregate worker counters for CLI reporting."""

    processed: int = 0
    completed: int = 0
    failed: int = 0
    retried: int = 0
    timeouts: int = 0
    healed: int = 0
    idle_polls: int = 0


@dataclass(slots=True)
class ExecutionReport:
    """What happened to one claimed job."""

    job_id: str
    status: str
    attempts: int
    execution_ms: int
    result: Any = None
    error: str | None = None
    failure_class: FailureClass | None = None
    next_at: datetime | None = None

    def to_response_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "job_id": self.job_id,
            "status": self.status,
            "attempts": self.attempts,
            "result": self.result,
            "error": self.error,
            "execution_ms": self.execution_ms,
        }
        if self.next_at is not None:
            payload["next_at"] = self.next_at.isoformat()
        return payload


@dataclass(slots=True)
class DispatchOutcome:
    """Result of one heal + claim + execute cycle."""

    message: str
    healed: int
    job_id: str | None = None
    status: str | None = None
    report: ExecutionReport | None = None

    def to_response_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "job_id": self.job_id,
            "status": self.status,
            "healed": self.healed,
        }


class QueueWorker:
    """Heals, claims, and executes queued jobs."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        repository: JobQueueRepository,
        gateway: ProviderGateway,
        worker_id: str,
        retry_policy: RetryPolicy | None = None,
        tool_timeouts: dict[str, float] | None = None,
        heal_after_seconds: int = 300,
        poll_interval_seconds: float = 2.0,
        rng: random.Random | None = None,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.worker_id = worker_id
        self.retry_policy = retry_policy or RetryPolicy()
        self.tool_timeouts = dict(tool_timeouts or DEFAULT_TOOL_TIMEOUTS)
        self.heal_after_seconds = heal_after_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._random = rng or random.Random()  # noqa: S311
        self._stop_requested = False

    def heal(self) -> int:
        return self.repository.heal_stuck_jobs(
            stale_after=timedelta(seconds=self.heal_after_seconds),
        )

    def poll_once(self) -> DispatchOutcome:
        """Heal stuck jobs, then claim and execute at most one job."""

        healed = self.heal()
        job = self.repository.claim_next_ready_job(worker_id=self.worker_id)
        if job is None:
            return DispatchOutcome(message="No jobs to process", healed=healed)

        report = self.execute_claimed(job)
        return DispatchOutcome(
            message="Job processed",
            healed=healed,
            job_id=job.job_id,
            status=report.status,
            report=report,
        )

    def execute_claimed(self, job: JobView) -> ExecutionReport:
        """Execute a job this worker holds the claim for and record the outcome.

        Raises ``ConflictError`` when the claim was lost (for example healed and
        reclaimed) before the outcome could be written.
        """

        if job.claim_id is None:
            raise ConflictError(f"Job {job.job_id} is not claimed", status=job.status.value)

        attempt = job.attempts + 1
        model = resolve_job_model(job.tool, job.model)
        provider = provider_for(model)
        logger.info("Executing job %s: tool=%s, attempt=%d", job.job_id, job.tool.value, attempt)

        started = time.monotonic()
        outcome: ToolOutcome | None = None
        error: Exception | None = None
        try:
            outcome = self._execute_with_timeout(job=job, model=model)
        except Exception as exc:  # noqa: BLE001
            error = exc
        execution_ms = int((time.monotonic() - started) * 1000)

        metadata = {
            **job.metadata,
            "execution_ms": execution_ms,
            "provider": provider.value if provider is not None else None,
            "model": model,
            "attempt": attempt,
            "completed_at": utc_now().isoformat(),
        }

        if error is not None:
            return self._record_failure(
                job=job,
                attempt=attempt,
                error=error,
                execution_ms=execution_ms,
                metadata=metadata,
            )
        return self._record_success(
            job=job,
            attempt=attempt,
            outcome=outcome,
            execution_ms=execution_ms,
            metadata=metadata,
        )

    def run_once(self) -> WorkerRunSummary:
        """Process at most one job from the queue."""

        summary = WorkerRunSummary()
        if self._stop_requested:
            summary.idle_polls = 1
            return summary

        try:
            outcome = self.poll_once()
        except ConflictError as exc:
            logger.warning("Worker %s lost a claim: %s", self.worker_id, exc)
            summary.processed = 1
            return summary

        summary.healed = outcome.healed
        if outcome.report is None:
            summary.idle_polls = 1
            return summary

        summary.processed = 1
        report = outcome.report
        if report.status == COMPLETED:
            summary.completed = 1
        elif report.status == REQUEUED:
            summary.retried = 1
        else:
            summary.failed = 1
        if report.failure_class == FailureClass.TIMEOUT:
            summary.timeouts = 1
        return summary

    def run_loop(
        self,
        *,
        max_jobs: int | None = None,
        max_idle_polls: int = 1,
    ) -> WorkerRunSummary:
        """Run worker loop until queue is idle or max_jobs reached.

        Args:
            max_jobs: Stop after processing this many jobs (None = unlimited).
            max_idle_polls: How many consecutive empty polls before exiting.
                Set to 0 to keep polling until a stop signal arrives.
        """

        aggregate = WorkerRunSummary()
        consecutive_idle = 0
        with self._signal_handlers():
            while True:
                if self._stop_requested:
                    return aggregate
                if max_jobs is not None and aggregate.processed >= max_jobs:
                    return aggregate

                summary = self.run_once()
                aggregate.processed += summary.processed
                aggregate.completed += summary.completed
                aggregate.failed += summary.failed
                aggregate.retried += summary.retried
                aggregate.timeouts += summary.timeouts
                aggregate.healed += summary.healed
                aggregate.idle_polls += summary.idle_polls

                if summary.processed == 0:
                    consecutive_idle += 1
                    if max_idle_polls and consecutive_idle >= max_idle_polls:
                        return aggregate
                    self._sleep_with_stop(self.poll_interval_seconds)
                    continue
                consecutive_idle = 0

    def _execute_with_timeout(self, *, job: JobView, model: str) -> ToolOutcome:
        timeout = self.tool_timeouts.get(job.tool.value, DEFAULT_TOOL_TIMEOUTS[job.tool.value])
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"job-{job.job_id[:8]}")
        try:
            future = pool.submit(
                execute_tool,
                tool=job.tool,
                params=job.params,
                model=model,
                gateway=self.gateway,
            )
            done, _ = wait([future], timeout=timeout)
            if not done:
                # Only the local wait is abandoned; the remote call may still finish.
                raise JobTimeoutError(job.tool.value, timeout)
            return future.result()
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _record_success(  # noqa: PLR0913
        self,
        *,
        job: JobView,
        attempt: int,
        outcome: ToolOutcome,
        execution_ms: int,
        metadata: dict[str, Any],
    ) -> ExecutionReport:
        written = self.repository.complete_job(
            job_id=job.job_id,
            claim_id=job.claim_id or "",
            attempts=attempt,
            result=outcome.result,
            execution_ms=execution_ms,
            provider=outcome.provider,
            model=outcome.model,
            metadata=metadata,
        )
        if not written:
            raise ConflictError(f"Job {job.job_id} claim was lost before completion")
        logger.info("Job %s completed in %dms", job.job_id, execution_ms)
        return ExecutionReport(
            job_id=job.job_id,
            status=COMPLETED,
            attempts=attempt,
            execution_ms=execution_ms,
            result=outcome.result,
        )

    def _record_failure(  # noqa: PLR0913
        self,
        *,
        job: JobView,
        attempt: int,
        error: Exception,
        execution_ms: int,
        metadata: dict[str, Any],
    ) -> ExecutionReport:
        classification = classify_job_failure(error)
        message = str(error) or type(error).__name__
        if classification.failure_class == FailureClass.INTERNAL_ERROR:
            logger.error("Internal error executing job %s", job.job_id, exc_info=error)
        else:
            logger.warning("Job %s attempt %d failed: %s", job.job_id, attempt, message)
        metadata = {**metadata, "failure": classification.to_event_details()}

        decision = decide_retry(
            attempt=attempt,
            max_attempts=job.max_attempts,
            policy=self.retry_policy,
            rng=self._random,
        )
        if classification.retryable and decision.retry:
            next_at = utc_now() + timedelta(seconds=decision.delay_seconds)
            written = self.repository.schedule_retry(
                job_id=job.job_id,
                claim_id=job.claim_id or "",
                attempts=attempt,
                next_at=next_at,
                error=message,
                failure_class=classification.failure_class,
                execution_ms=execution_ms,
                metadata=metadata,
            )
            if not written:
                raise ConflictError(f"Job {job.job_id} claim was lost before retry scheduling")
            logger.info("Job %s retry scheduled at %s", job.job_id, next_at.isoformat())
            return ExecutionReport(
                job_id=job.job_id,
                status=REQUEUED,
                attempts=attempt,
                execution_ms=execution_ms,
                error=message,
                failure_class=classification.failure_class,
                next_at=next_at,
            )

        written = self.repository.fail_job(
            job_id=job.job_id,
            claim_id=job.claim_id or "",
            attempts=attempt,
            error=message,
            failure_class=classification.failure_class,
            execution_ms=execution_ms,
            metadata=metadata,
        )
        if not written:
            raise ConflictError(f"Job {job.job_id} claim was lost before failure was recorded")
        logger.info(
            "Job %s failed permanently after %d attempt(s) (%s)",
            job.job_id,
            attempt,
            classification.failure_class.value,
        )
        return ExecutionReport(
            job_id=job.job_id,
            status=FAILED,
            attempts=attempt,
            execution_ms=execution_ms,
            error=message,
            failure_class=classification.failure_class,
        )

    def _sleep_with_stop(self, seconds: float) -> None:
        deadline = time.monotonic() + seconds
        while not self._stop_requested and time.monotonic() < deadline:
            time.sleep(min(0.1, max(0.0, deadline - time.monotonic())))

    @contextmanager
    def _signal_handlers(self) -> Iterator[None]:
        if not hasattr(signal, "SIGINT"):
            yield
            return

        original_sigint = signal.getsignal(signal.SIGINT)
        original_sigterm = signal.getsignal(signal.SIGTERM)

        def _handler(signum: int, _: object | None) -> None:
            try:
                name = signal.Signals(signum).name
            except ValueError:
                name = str(signum)
            logger.info("Worker %s stopping on %s", self.worker_id, name)
            self._stop_requested = True

        installed = False
        try:
            signal.signal(signal.SIGINT, _handler)
            signal.signal(signal.SIGTERM, _handler)
            installed = True
        except ValueError:
            # Signal handlers can only be installed in main thread.
            pass
        try:
            yield
        finally:
            if installed:
                signal.signal(signal.SIGINT, original_sigint)
                signal.signal(signal.SIGTERM, original_sigterm)
