from pathlib import Path

import allure
from sqlalchemy import inspect, text

from arch_lanes.orchestrator.repository import JobQueueRepository
from arch_lanes.pipeline.repository import RunRepository

pytestmark = [
    allure.epic("Storage"),
    allure.feature("Schema Migrations"),
]


def test_alembic_schema_is_initialized_to_head(tmp_path: Path) -> None:
    repository = JobQueueRepository(tmp_path / "migrations.db")
    repository.init_schema()

    with repository.engine.connect() as connection:
        version = connection.execute(text("SELECT version_num FROM alembic_version")).scalar_one()
    assert version == "20261018_0001"

    inspector = inspect(repository.engine)
    assert set(inspector.get_table_names()) >= {
        "arch_runs",
        "lane_events",
        "mcp_jobs",
        "job_events",
        "call_notes",
    }
    queue_indexes = {index["name"] for index in inspector.get_indexes("mcp_jobs")}
    assert "idx_mcp_jobs_queue" in queue_indexes
    lane_uniques = inspector.get_unique_constraints("lane_events")
    assert any(
        constraint["column_names"] == ["run_id", "lane"] for constraint in lane_uniques
    )
    repository.close()


def test_init_schema_is_idempotent_across_repositories(tmp_path: Path) -> None:
    db_path = tmp_path / "shared.db"
    jobs = JobQueueRepository(db_path)
    runs = RunRepository(db_path)

    jobs.init_schema()
    runs.init_schema()
    jobs.init_schema()

    details = runs.create_run(vision="shared database")
    assert len(details.lanes) == 5
    jobs.close()
    runs.close()
