"""Run and lane record persistence."""

from __future__ import annotations

from pathlib import Path
from typing import Any
from uuid import uuid4

from sqlalchemy import update as sa_update
from sqlmodel import Session, col, select

from arch_lanes.pipeline.models import (
    LANE_ORDER,
    Lane,
    LaneStatus,
    LaneView,
    RunDetails,
    RunStatus,
    RunView,
)
from arch_lanes.storage.alembic_runner import upgrade_head
from arch_lanes.storage.common import (
    build_sqlite_engine,
    dump_json,
    load_json,
    load_json_dict,
    to_db_datetime,
    to_utc_aware_datetime,
    utc_now,
)
from arch_lanes.storage.sqlmodel_models import ArchRun, LaneEvent


class RunRepository:
    """Run/lane state store; every transition is a single-row conditional update."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = db_path
        self.engine = build_sqlite_engine(db_path=db_path)

    def close(self) -> None:
        self.engine.dispose()

    def init_schema(self) -> None:
        upgrade_head(self.db_path)

    def create_run(
        self,
        *,
        vision: str,
        project_name: str | None = None,
        wizard_data: Any = None,
        meta: dict[str, Any] | None = None,
    ) -> RunDetails:
        """Create a running run and its five queued lane records."""

        now = to_db_datetime(utc_now())
        run_id = str(uuid4())
        with Session(self.engine) as session:
            session.add(
                ArchRun(
                    run_id=run_id,
                    vision=vision,
                    status=RunStatus.RUNNING.value,
                    project_name=project_name,
                    wizard_data_json=dump_json(wizard_data),
                    meta_json=dump_json(meta),
                    created_at=now,
                    updated_at=now,
                ),
            )
            session.flush()
            for order, lane in enumerate(LANE_ORDER):
                session.add(
                    LaneEvent(
                        run_id=run_id,
                        lane=lane.value,
                        lane_order=order,
                        status=LaneStatus.QUEUED.value,
                        created_at=now,
                        updated_at=now,
                    ),
                )
            session.commit()

        details = self.get_run(run_id=run_id)
        if details is None:  # pragma: no cover - just committed
            raise RuntimeError(f"Run vanished after insert: {run_id}")
        return details

    def mark_lane_running(self, *, run_id: str, lane: Lane, meta: dict[str, Any]) -> bool:
        return self._transition_lane(
            run_id=run_id,
            lane=lane,
            from_status=LaneStatus.QUEUED,
            to_status=LaneStatus.RUNNING,
            values={"meta_json": dump_json(meta)},
        )

    def complete_lane(
        self,
        *,
        run_id: str,
        lane: Lane,
        output: Any,
        meta: dict[str, Any],
    ) -> bool:
        return self._transition_lane(
            run_id=run_id,
            lane=lane,
            from_status=LaneStatus.RUNNING,
            to_status=LaneStatus.SUCCEEDED,
            values={"output_json": dump_json(output), "meta_json": dump_json(meta)},
        )

    def fail_lane(self, *, run_id: str, lane: Lane, meta: dict[str, Any]) -> bool:
        return self._transition_lane(
            run_id=run_id,
            lane=lane,
            from_status=LaneStatus.RUNNING,
            to_status=LaneStatus.FAILED,
            values={"output_json": None, "meta_json": dump_json(meta)},
        )

    def finish_run(self, *, run_id: str, status: RunStatus) -> bool:
        """Move a running run to a terminal status."""

        if status == RunStatus.RUNNING:
            raise ValueError("finish_run needs a terminal status")
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(ArchRun)
                .where(
                    col(ArchRun.run_id) == run_id,
                    col(ArchRun.status) == RunStatus.RUNNING.value,
                )
                .values(status=status.value, updated_at=to_db_datetime(utc_now())),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True

    def get_run(self, *, run_id: str) -> RunDetails | None:
        with Session(self.engine) as session:
            run = session.exec(select(ArchRun).where(ArchRun.run_id == run_id)).one_or_none()
            if run is None:
                return None
            lanes = session.exec(
                select(LaneEvent)
                .where(LaneEvent.run_id == run_id)
                .order_by(col(LaneEvent.lane_order).asc()),
            ).all()
        return RunDetails(run=_to_run_view(run), lanes=[_to_lane_view(row) for row in lanes])

    def list_runs(self, *, status: RunStatus | None = None, limit: int = 20) -> list[RunView]:
        with Session(self.engine) as session:
            statement = select(ArchRun).order_by(col(ArchRun.created_at).desc()).limit(limit)
            if status is not None:
                statement = statement.where(ArchRun.status == status.value)
            rows = session.exec(statement).all()
        return [_to_run_view(row) for row in rows]

    def _transition_lane(  # noqa: PLR0913
        self,
        *,
        run_id: str,
        lane: Lane,
        from_status: LaneStatus,
        to_status: LaneStatus,
        values: dict[str, Any],
    ) -> bool:
        with Session(self.engine) as session:
            result = session.exec(
                sa_update(LaneEvent)
                .where(
                    col(LaneEvent.run_id) == run_id,
                    col(LaneEvent.lane) == lane.value,
                    col(LaneEvent.status) == from_status.value,
                )
                .values(
                    status=to_status.value,
                    updated_at=to_db_datetime(utc_now()),
                    **values,
                ),
            )
            if result.rowcount != 1:
                session.rollback()
                return False
            session.commit()
            return True


def _to_run_view(row: ArchRun) -> RunView:
    return RunView(
        run_id=row.run_id,
        vision=row.vision,
        status=RunStatus(row.status),
        project_name=row.project_name,
        wizard_data=load_json(row.wizard_data_json),
        meta=load_json_dict(row.meta_json),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )


def _to_lane_view(row: LaneEvent) -> LaneView:
    return LaneView(
        run_id=row.run_id,
        lane=Lane(row.lane),
        status=LaneStatus(row.status),
        output=load_json(row.output_json),
        meta=load_json_dict(row.meta_json),
        created_at=to_utc_aware_datetime(row.created_at),
        updated_at=to_utc_aware_datetime(row.updated_at),
    )
