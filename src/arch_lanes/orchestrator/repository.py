"""Persistent queue repository for provider jobs."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import or_
from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from arch_lanes.orchestrator.models import (
    FailureClass,
    JobCreate,
    JobDetails,
    JobEventView,
    JobStatus,
    JobTool,
    JobView,
    clamp_priority,
)
from arch_lanes.storage.alembic_runner import upgrade_head
from arch_lanes.storage.common import (
    build_sqlite_engine,
    dump_json,
    load_json,
    load_json_dict,
    optional_utc,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from arch_lanes.storage.sqlmodel_models import JobEvent, McpJob

logger = logging.getLogger(__name__)


class JobQueueRepository:
    """Queue persistence facade backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        """Close underlying DB resources."""

        self.engine.dispose()

    def init_schema(self) -> None:
        """Run schema migrations."""

        upgrade_head(self.db_path)

    def enqueue(self, payload: JobCreate) -> JobView:
        """Create a queued job."""

        now = utc_now()
        job_id = payload.job_id or str(uuid4())
        priority = clamp_priority(payload.priority)
        with Session(self.engine) as session:
            row = McpJob(
                job_id=job_id,
                owner_id=payload.owner_id,
                tool=payload.tool.value,
                params_json=dump_json(payload.params) or "{}",
                priority=priority,
                model=payload.model,
                provider=payload.provider,
                status=JobStatus.QUEUED.value,
                attempts=0,
                max_attempts=payload.max_attempts,
                next_at=None,
                metadata_json=dump_json(payload.metadata),
                created_at=to_db_datetime(now),
                updated_at=to_db_datetime(now),
            )
            session.add(row)
            # job_events references mcp_jobs; insert the parent first.
            session.flush()
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="enqueued",
                status_from=None,
                status_to=JobStatus.QUEUED,
                details={
                    "tool": payload.tool.value,
                    "priority": priority,
                    "model": payload.model,
                    "max_attempts": payload.max_attempts,
                },
            )
            session.commit()
            session.refresh(row)
            return _to_job_view(row)

    def claim_next_ready_job(self, *, worker_id: str) -> JobView | None:
        """Atomically claim the highest-priority, oldest job that is due."""

        while True:
            now = utc_now()
            with Session(self.engine) as session:
                candidate = session.exec(
                    select(McpJob)
                    .where(
                        McpJob.status == JobStatus.QUEUED.value,
                        or_(
                            col(McpJob.next_at).is_(None),
                            col(McpJob.next_at) <= to_db_datetime(now),
                        ),
                    )
                    .order_by(
                        col(McpJob.priority).desc(),
                        col(McpJob.created_at).asc(),
                    )
                    .limit(1),
                ).one_or_none()
                if candidate is None:
                    return None

                claimed = self._try_claim(
                    session=session,
                    job_id=candidate.job_id,
                    worker_id=worker_id,
                    now=now,
                )
                if claimed is None:
                    continue
                return claimed

    def claim_job(self, *, job_id: str, worker_id: str) -> JobView | None:
        """Claim one specific job; None when it is not queued and due."""

        now = utc_now()
        with Session(self.engine) as session:
            return self._try_claim(session=session, job_id=job_id, worker_id=worker_id, now=now)

    def _try_claim(
        self,
        *,
        session: Session,
        job_id: str,
        worker_id: str,
        now: datetime,
    ) -> JobView | None:
        claim_id = str(uuid4())
        result = session.exec(
            sa_update(McpJob)
            .where(
                col(McpJob.job_id) == job_id,
                col(McpJob.status) == JobStatus.QUEUED.value,
                or_(
                    col(McpJob.next_at).is_(None),
                    col(McpJob.next_at) <= to_db_datetime(now),
                ),
            )
            .values(
                status=JobStatus.PROCESSING.value,
                started_at=to_db_datetime(now),
                worker_id=worker_id,
                claim_id=claim_id,
                updated_at=to_db_datetime(now),
            ),
        )
        if result.rowcount != 1:
            session.rollback()
            return None

        claimed = session.exec(select(McpJob).where(McpJob.job_id == job_id)).one()
        self._add_event(
            session=session,
            job_id=job_id,
            event_type="claimed",
            status_from=JobStatus.QUEUED,
            status_to=JobStatus.PROCESSING,
            details={"worker_id": worker_id, "attempt": claimed.attempts + 1},
        )
        session.commit()
        logger.info("Claimed job %s (worker=%s)", job_id, worker_id)
        return _to_job_view(claimed)

    def heal_stuck_jobs(self, *, stale_after: timedelta) -> int:
        """Return processing jobs older than ``stale_after`` to the queue."""

        now = utc_now()
        cutoff = to_db_datetime(now - stale_after)
        with Session(self.engine) as session:
            stuck = session.exec(
                select(McpJob).where(
                    McpJob.status == JobStatus.PROCESSING.value,
                    col(McpJob.started_at).is_not(None),
                    col(McpJob.started_at) <= cutoff,
                ),
            ).all()
            candidates = [(row.job_id, row.claim_id, row.worker_id) for row in stuck]

        healed = 0
        for job_id, claim_id, worker_id in candidates:
            with Session(self.engine) as session:
                result = session.exec(
                    sa_update(McpJob)
                    .where(
                        col(McpJob.job_id) == job_id,
                        col(McpJob.status) == JobStatus.PROCESSING.value,
                        col(McpJob.claim_id) == claim_id,
                    )
                    .values(
                        status=JobStatus.QUEUED.value,
                        started_at=None,
                        next_at=None,
                        worker_id=None,
                        claim_id=None,
                        updated_at=to_db_datetime(now),
                    ),
                )
                if result.rowcount != 1:
                    session.rollback()
                    continue
                self._add_event(
                    session=session,
                    job_id=job_id,
                    event_type="healed",
                    status_from=JobStatus.PROCESSING,
                    status_to=JobStatus.QUEUED,
                    details={
                        "previous_worker_id": worker_id,
                        "stale_after_seconds": int(stale_after.total_seconds()),
                    },
                )
                session.commit()
                healed += 1

        if healed:
            logger.warning("Healed %d stuck job(s)", healed)
        return healed

    def complete_job(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        claim_id: str,
        attempts: int,
        result: Any,
        execution_ms: int,
        provider: str | None,
        model: str | None,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Mark a processing job as completed; False if the claim was lost."""

        now = utc_now()
        with Session(self.engine) as session:
            update = session.exec(
                sa_update(McpJob)
                .where(*_owned_by(job_id=job_id, claim_id=claim_id))
                .values(
                    status=JobStatus.COMPLETED.value,
                    attempts=attempts,
                    result_json=dump_json(result),
                    execution_ms=execution_ms,
                    **_metadata_values(metadata),
                    provider=provider,
                    model=model,
                    error=None,
                    failure_class=None,
                    next_at=None,
                    completed_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if update.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="completed",
                status_from=JobStatus.PROCESSING,
                status_to=JobStatus.COMPLETED,
                details={"attempts": attempts, "execution_ms": execution_ms},
            )
            session.commit()
            return True

    def schedule_retry(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        claim_id: str,
        attempts: int,
        next_at: datetime,
        error: str,
        failure_class: FailureClass,
        execution_ms: int,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Requeue a processing job for a later attempt."""

        now = utc_now()
        with Session(self.engine) as session:
            update = session.exec(
                sa_update(McpJob)
                .where(*_owned_by(job_id=job_id, claim_id=claim_id))
                .values(
                    status=JobStatus.QUEUED.value,
                    attempts=attempts,
                    next_at=to_db_datetime(next_at),
                    error=error,
                    failure_class=failure_class.value,
                    execution_ms=execution_ms,
                    **_metadata_values(metadata),
                    started_at=None,
                    worker_id=None,
                    claim_id=None,
                    updated_at=to_db_datetime(now),
                ),
            )
            if update.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="retry_scheduled",
                status_from=JobStatus.PROCESSING,
                status_to=JobStatus.QUEUED,
                details={
                    "attempts": attempts,
                    "next_at": to_utc_aware_datetime(next_at).isoformat(),
                    "failure_class": failure_class.value,
                },
            )
            session.commit()
            return True

    def fail_job(  # noqa: PLR0913
        self,
        *,
        job_id: str,
        claim_id: str,
        attempts: int,
        error: str,
        failure_class: FailureClass,
        execution_ms: int,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Mark a processing job as permanently failed."""

        now = utc_now()
        with Session(self.engine) as session:
            update = session.exec(
                sa_update(McpJob)
                .where(*_owned_by(job_id=job_id, claim_id=claim_id))
                .values(
                    status=JobStatus.FAILED.value,
                    attempts=attempts,
                    error=error,
                    failure_class=failure_class.value,
                    execution_ms=execution_ms,
                    **_metadata_values(metadata),
                    next_at=None,
                    completed_at=to_db_datetime(now),
                    updated_at=to_db_datetime(now),
                ),
            )
            if update.rowcount != 1:
                session.rollback()
                return False
            self._add_event(
                session=session,
                job_id=job_id,
                event_type="failed",
                status_from=JobStatus.PROCESSING,
                status_to=JobStatus.FAILED,
                details={
                    "attempts": attempts,
                    "failure_class": failure_class.value,
                    "error": error,
                },
            )
            session.commit()
            return True

    def get_job(self, *, job_id: str) -> JobView | None:
        with Session(self.engine) as session:
            row = session.exec(select(McpJob).where(McpJob.job_id == job_id)).one_or_none()
        return _to_job_view(row) if row is not None else None

    def list_jobs(
        self,
        *,
        status: JobStatus | None = None,
        owner_id: str | None = None,
        limit: int = 50,
    ) -> list[JobView]:
        """List recent jobs, optionally filtered by status and owner."""

        with Session(self.engine) as session:
            statement = select(McpJob).order_by(col(McpJob.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(McpJob.status == status.value)
            if owner_id is not None:
                statement = statement.where(McpJob.owner_id == owner_id)
            rows = session.exec(statement).all()
        return [_to_job_view(row) for row in rows]

    def get_job_details(self, *, job_id: str) -> JobDetails | None:
        """Return job with its event stream."""

        with Session(self.engine) as session:
            job = session.exec(select(McpJob).where(McpJob.job_id == job_id)).one_or_none()
            if job is None:
                return None
            event_rows = session.exec(
                select(JobEvent)
                .where(JobEvent.job_id == job_id)
                .order_by(col(JobEvent.created_at).asc(), col(JobEvent.id).asc()),
            ).all()

        events = [
            JobEventView(
                event_id=row.id or 0,
                job_id=row.job_id,
                event_type=row.event_type,
                status_from=JobStatus(row.status_from) if row.status_from is not None else None,
                status_to=JobStatus(row.status_to) if row.status_to is not None else None,
                created_at=to_utc_aware_datetime(row.created_at),
                details=load_json_dict(row.details_json),
            )
            for row in event_rows
        ]
        return JobDetails(job=_to_job_view(job), events=events)

    def _add_event(  # noqa: PLR0913
        self,
        *,
        session: Session,
        job_id: str,
        event_type: str,
        status_from: JobStatus | None,
        status_to: JobStatus | None,
        details: dict[str, object],
    ) -> None:
        session.add(
            JobEvent(
                job_id=job_id,
                event_type=event_type,
                status_from=status_from.value if status_from is not None else None,
                status_to=status_to.value if status_to is not None else None,
                details_json=dump_json(details) if details else None,
                created_at=to_db_datetime(utc_now()),
            ),
        )


def _owned_by(*, job_id: str, claim_id: str) -> tuple[Any, ...]:
    return (
        col(McpJob.job_id) == job_id,
        col(McpJob.status) == JobStatus.PROCESSING.value,
        col(McpJob.claim_id) == claim_id,
    )


def _to_job_view(row: McpJob) -> JobView:
    return JobView(
        job_id=row.job_id,
        owner_id=row.owner_id,
        tool=JobTool(row.tool),
        params=load_json_dict(row.params_json),
        priority=row.priority,
        model=row.model,
        provider=row.provider,
        status=JobStatus(row.status),
        attempts=row.attempts,
        max_attempts=row.max_attempts,
        next_at=optional_utc(row.next_at),
        started_at=optional_utc(row.started_at),
        completed_at=optional_utc(row.completed_at),
        execution_ms=row.execution_ms,
        result=load_json(row.result_json),
        error=row.error,
        failure_class=FailureClass(row.failure_class) if row.failure_class is not None else None,
        metadata=load_json_dict(row.metadata_json),
        worker_id=row.worker_id,
        claim_id=row.claim_id,
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _metadata_values(metadata: dict[str, Any] | None) -> dict[str, Any]:
    if metadata is None:
        return {}
    return {"metadata_json": dump_json(metadata)}
