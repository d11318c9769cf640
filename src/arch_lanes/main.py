"""CLI entrypoint for arch-lanes."""

import logging
from pathlib import Path

import rich_click as click

from arch_lanes import __version__
from arch_lanes.config import Settings
from arch_lanes.controllers import (
    DispatchCliController,
    DispatchCommand,
    JobCliController,
    JobEnqueueCommand,
    JobHealCommand,
    JobInspectCommand,
    JobListCommand,
    JobWorkerCommand,
    RunCliController,
    RunListCommand,
    RunShowCommand,
    RunSubmitCommand,
)
from arch_lanes.gateway.models import ALLOWED_MODELS
from arch_lanes.orchestrator.models import JobStatus, JobTool
from arch_lanes.pipeline.models import RunStatus

click.rich_click.USE_MARKDOWN = True
RUN_CONTROLLER = RunCliController()
JOB_CONTROLLER = JobCliController()
DISPATCH_CONTROLLER = DispatchCliController()
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.version_option(version=__version__, prog_name="arch-lanes")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging.")
def arch_lanes(verbose: bool) -> None:
    """Lane pipeline and job queue CLI."""

    _configure_logging(logging.DEBUG if verbose else logging.WARNING)


@arch_lanes.group()
def run() -> None:
    """Lane pipeline runs."""


@run.command("submit")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--vision", required=True, help="Free-text product vision.")
@click.option(
    "--default-model",
    type=click.Choice(ALLOWED_MODELS),
    default=None,
    help="Default model recorded on the run.",
)
@click.option("--project-name", default=None, help="Optional project name.")
def run_submit(
    db_path: Path | None,
    vision: str,
    default_model: str | None,
    project_name: str | None,
) -> None:
    """Run all five lanes for one vision, synchronously."""

    _emit_lines(
        RUN_CONTROLLER.submit(
            RunSubmitCommand(
                db_path=db_path,
                vision=vision,
                default_model=default_model,
                project_name=project_name,
            ),
        ),
    )


@run.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--run-id", required=True, help="Run id.")
@click.option("--full", is_flag=True, default=False, help="Print parsed lane outputs.")
def run_show(db_path: Path | None, run_id: str, full: bool) -> None:
    """Show one run with its lane records."""

    _emit_lines(RUN_CONTROLLER.show(RunShowCommand(db_path=db_path, run_id=run_id, full=full)))


@run.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice([status.value for status in RunStatus]),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
    help="Max rows.",
)
def run_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent runs."""

    _emit_lines(
        RUN_CONTROLLER.list_runs(RunListCommand(db_path=db_path, status=status, limit=limit)),
    )


@arch_lanes.group()
def jobs() -> None:
    """Job queue commands."""


@jobs.command("enqueue")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--tool",
    type=click.Choice([tool.value for tool in JobTool]),
    required=True,
    help="Job tool.",
)
@click.option("--input", "input_text", required=True, help="Prompt text passed as params.input.")
@click.option("--model", type=click.Choice(ALLOWED_MODELS), default=None, help="Model override.")
@click.option(
    "--priority",
    type=int,
    default=0,
    show_default=True,
    help="Priority, clamped to [-100, 100].",
)
@click.option("--system", default=None, help="Optional system prompt.")
@click.option(
    "--models",
    "models",
    multiple=True,
    type=click.Choice(ALLOWED_MODELS),
    help="Models for multi-model-query. Can be repeated.",
)
@click.option("--owner", "owner_id", default="cli", show_default=True, help="Owner identity.")
def jobs_enqueue(  # noqa: PLR0913
    db_path: Path | None,
    tool: str,
    input_text: str,
    model: str | None,
    priority: int,
    system: str | None,
    models: tuple[str, ...],
    owner_id: str,
) -> None:
    """Enqueue one job."""

    _emit_lines(
        JOB_CONTROLLER.enqueue(
            JobEnqueueCommand(
                db_path=db_path,
                owner_id=owner_id,
                tool=tool,
                input_text=input_text,
                model=model,
                priority=priority,
                system=system,
                models=models,
            ),
        ),
    )


@jobs.command("worker")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--once/--loop",
    default=True,
    show_default=True,
    help="Heal and process one job, or keep polling.",
)
@click.option(
    "--max-jobs",
    type=click.IntRange(min=1),
    default=None,
    help="Stop the loop after this many processed jobs.",
)
@click.option(
    "--max-idle-polls",
    type=click.IntRange(min=0),
    default=1,
    show_default=True,
    help="Stop the loop after this many empty polls (0 = never).",
)
def jobs_worker(
    db_path: Path | None,
    once: bool,
    max_jobs: int | None,
    max_idle_polls: int,
) -> None:
    """Run the queue worker."""

    _emit_lines(
        JOB_CONTROLLER.run_worker(
            JobWorkerCommand(
                db_path=db_path,
                once=once,
                max_jobs=max_jobs,
                max_idle_polls=max_idle_polls,
            ),
        ),
    )


@jobs.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--status",
    type=click.Choice([status.value for status in JobStatus]),
    default=None,
    help="Optional status filter.",
)
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=50,
    show_default=True,
    help="Max rows.",
)
def jobs_list(db_path: Path | None, status: str | None, limit: int) -> None:
    """List recent jobs."""

    _emit_lines(
        JOB_CONTROLLER.list_jobs(JobListCommand(db_path=db_path, status=status, limit=limit)),
    )


@jobs.command("inspect")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--job-id", required=True, help="Job id.")
def jobs_inspect(db_path: Path | None, job_id: str) -> None:
    """Show job status and its event trail."""

    _emit_lines(JOB_CONTROLLER.inspect(JobInspectCommand(db_path=db_path, job_id=job_id)))


@jobs.command("heal")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--stale-after",
    "stale_after_seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Staleness threshold in seconds (default from ARCH_LANES_HEAL_AFTER_SECONDS).",
)
def jobs_heal(db_path: Path | None, stale_after_seconds: int | None) -> None:
    """Return stuck processing jobs to the queue."""

    _emit_lines(
        JOB_CONTROLLER.heal(
            JobHealCommand(db_path=db_path, stale_after_seconds=stale_after_seconds),
        ),
    )


@arch_lanes.command("dispatch")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--model", type=click.Choice(ALLOWED_MODELS), required=True, help="Model id.")
@click.option("--input", "input_text", required=True, help="Prompt text.")
@click.option("--system", default=None, help="Optional system prompt.")
@click.option("--max-tokens", type=click.IntRange(min=1), default=None, help="Token limit.")
def dispatch(
    db_path: Path | None,
    model: str,
    input_text: str,
    system: str | None,
    max_tokens: int | None,
) -> None:
    """Call one model directly and print the text."""

    _emit_lines(
        DISPATCH_CONTROLLER.dispatch(
            DispatchCommand(
                db_path=db_path,
                model=model,
                input_text=input_text,
                system=system,
                max_tokens=max_tokens,
            ),
        ),
    )


@arch_lanes.command("serve")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--host", default=None, help="Bind host (default from ARCH_LANES_API_HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default from ARCH_LANES_API_PORT).")
def serve(db_path: Path | None, host: str | None, port: int | None) -> None:
    """Serve the HTTP API with uvicorn."""

    import uvicorn

    from arch_lanes.api.app import create_app
    from arch_lanes.wiring import build_services

    _configure_logging(logging.INFO)
    settings = Settings.from_env(db_path=db_path)
    try:
        settings.validate_for_api()
    except ValueError as error:
        raise click.ClickException(str(error)) from error

    services = build_services(settings)
    try:
        uvicorn.run(
            create_app(services),
            host=host or settings.api.host,
            port=port or settings.api.port,
        )
    finally:
        services.close()


def _configure_logging(level: int) -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    elif level < root.level:
        root.setLevel(level)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    arch_lanes()
