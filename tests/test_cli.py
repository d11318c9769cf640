from __future__ import annotations

import re
from pathlib import Path

import allure
import httpx
import pytest
from click.testing import CliRunner

from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.main import arch_lanes
from conftest import FakeProviders

pytestmark = [
    allure.epic("Operator CLI"),
    allure.feature("Runs, Jobs, Dispatch"),
]


@pytest.fixture()
def cli_providers(monkeypatch) -> FakeProviders:
    """Route CLI-built gateways to the fake provider transport."""

    fake = FakeProviders()
    monkeypatch.setenv("OPENAI_API_KEY", "sk-cli")
    monkeypatch.setenv("GOOGLE_API_KEY", "google-cli")
    monkeypatch.setenv("ANTHROPIC_API_KEY", "anthropic-cli")
    original_from_settings = ProviderGateway.from_settings

    def _patched_from_settings(settings, *, client=None):
        return original_from_settings(
            settings,
            client=httpx.Client(transport=httpx.MockTransport(fake)),
        )

    monkeypatch.setattr(ProviderGateway, "from_settings", staticmethod(_patched_from_settings))
    return fake


def test_cli_enqueue_worker_list_and_inspect(tmp_path: Path, cli_providers: FakeProviders) -> None:
    db_path = tmp_path / "cli.db"
    runner = CliRunner()

    enqueue = runner.invoke(
        arch_lanes,
        [
            "jobs",
            "enqueue",
            "--db-path",
            str(db_path),
            "--tool",
            "claude-query",
            "--input",
            "Summarize the roadmap",
            "--priority",
            "250",
        ],
    )
    assert enqueue.exit_code == 0, enqueue.output
    assert "priority=100" in enqueue.output
    match = re.search(r"job_id=([a-f0-9-]+)", enqueue.output)
    assert match is not None
    job_id = match.group(1)

    worker = runner.invoke(arch_lanes, ["jobs", "worker", "--db-path", str(db_path), "--once"])
    assert worker.exit_code == 0, worker.output
    assert "processed=1" in worker.output
    assert "completed=1" in worker.output
    assert len(cli_providers.requests_for("anthropic")) == 1

    listed = runner.invoke(
        arch_lanes,
        ["jobs", "list", "--db-path", str(db_path), "--status", "completed"],
    )
    assert listed.exit_code == 0
    assert job_id in listed.output

    inspect = runner.invoke(
        arch_lanes,
        ["jobs", "inspect", "--db-path", str(db_path), "--job-id", job_id],
    )
    assert inspect.exit_code == 0
    assert "Status: completed" in inspect.output
    assert "Attempts: 1/3" in inspect.output
    assert "claimed queued -> processing" in inspect.output

    heal = runner.invoke(arch_lanes, ["jobs", "heal", "--db-path", str(db_path)])
    assert heal.exit_code == 0
    assert "Healed jobs: 0" in heal.output


def test_cli_run_submit_show_and_list(tmp_path: Path, cli_providers: FakeProviders) -> None:
    db_path = tmp_path / "cli-runs.db"
    cli_providers.fail("google", status=500, body="down")
    runner = CliRunner()

    submit = runner.invoke(
        arch_lanes,
        ["run", "submit", "--db-path", str(db_path), "--vision", "Build a todo app"],
    )
    assert submit.exit_code == 0, submit.output
    assert ": failed" in submit.output
    assert "Error: Gemini error: 500 down" in submit.output
    run_id = re.search(r"Run ([a-f0-9-]+):", submit.output).group(1)  # type: ignore[union-attr]

    show = runner.invoke(
        arch_lanes,
        ["run", "show", "--db-path", str(db_path), "--run-id", run_id, "--full"],
    )
    assert show.exit_code == 0
    assert "Status: failed" in show.output
    assert re.search(r"ui\s+failed", show.output)
    assert re.search(r"cicd\s+queued", show.output)

    listed = runner.invoke(arch_lanes, ["run", "list", "--db-path", str(db_path)])
    assert listed.exit_code == 0
    assert "Runs: 1" in listed.output
    assert run_id in listed.output


def test_cli_dispatch_prints_model_output(tmp_path: Path, cli_providers: FakeProviders) -> None:
    cli_providers.texts["openai"] = "pong"

    result = CliRunner().invoke(
        arch_lanes,
        [
            "dispatch",
            "--db-path",
            str(tmp_path / "cli-dispatch.db"),
            "--model",
            "GPT-5",
            "--input",
            "ping",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "[GPT-5 via openai]" in result.output
    assert "pong" in result.output
