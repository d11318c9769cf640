"""Builds the service graph from one ``Settings`` instance."""

from __future__ import annotations

from dataclasses import dataclass

from arch_lanes.config import Settings
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.gateway.dispatch import DispatchService
from arch_lanes.gateway.notes import SqlCallObserver
from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.orchestrator.retry_policy import RetryPolicy
from arch_lanes.orchestrator.services import JobQueueService
from arch_lanes.orchestrator.worker import QueueWorker
from arch_lanes.pipeline.repository import RunRepository
from arch_lanes.pipeline.runner import LanePipelineRunner


@dataclass(slots=True)
class Services:
    """Everything the API and CLI need, sharing one gateway and one database."""

    settings: Settings
    gateway: ProviderGateway
    jobs: JobQueueRepository
    runs: RunRepository
    worker: QueueWorker
    job_service: JobQueueService
    runner: LanePipelineRunner
    dispatch: DispatchService
    call_observer: SqlCallObserver

    def close(self) -> None:
        self.gateway.close()
        self.jobs.close()
        self.runs.close()
        self.call_observer.close()


def build_services(
    settings: Settings,
    *,
    gateway: ProviderGateway | None = None,
    init_schema: bool = True,
) -> Services:
    """Wire repositories, worker, runner, and dispatch around one gateway.

    Raises ``ProviderConfigError`` when credentials are required but missing.
    """

    settings.validate_for_queue()
    gateway = gateway or ProviderGateway.from_settings(settings.providers)

    jobs = JobQueueRepository(settings.db_path)
    if init_schema:
        jobs.init_schema()
    runs = RunRepository(settings.db_path)

    worker = QueueWorker(
        repository=jobs,
        gateway=gateway,
        worker_id=settings.queue.worker_id,
        retry_policy=RetryPolicy(
            base_seconds=settings.queue.retry_base_seconds,
            cap_seconds=settings.queue.retry_max_seconds,
            jitter_seconds=settings.queue.retry_jitter_seconds,
        ),
        tool_timeouts=settings.queue.tool_timeouts,
        heal_after_seconds=settings.queue.heal_after_seconds,
        poll_interval_seconds=settings.queue.poll_interval_seconds,
    )
    call_observer = SqlCallObserver(settings.db_path)
    return Services(
        settings=settings,
        gateway=gateway,
        jobs=jobs,
        runs=runs,
        worker=worker,
        job_service=JobQueueService(
            repository=jobs,
            worker=worker,
            max_attempts=settings.queue.max_attempts,
        ),
        runner=LanePipelineRunner(
            repository=runs,
            gateway=gateway,
            default_model=settings.pipeline.default_model,
            lane_max_tokens=settings.pipeline.lane_max_tokens,
            lane_temperature=settings.pipeline.lane_temperature,
        ),
        dispatch=DispatchService(gateway=gateway, observer=call_observer),
        call_observer=call_observer,
    )
