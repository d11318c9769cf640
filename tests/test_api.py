from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import allure
import pytest
from fastapi.testclient import TestClient

from arch_lanes.api.app import create_app
from arch_lanes.api.cors import build_cors_headers
from arch_lanes.gateway.models import GPT_5
from arch_lanes.wiring import Services
from conftest import FakeProviders

pytestmark = [
    allure.epic("HTTP API"),
    allure.feature("Boundary Contracts"),
]

ALICE = {"Authorization": "Bearer token-alice"}
BOB = {"Authorization": "Bearer token-bob"}
INTERNAL = {"x-internal-key": "internal-secret"}


@pytest.fixture()
def client(services: Services) -> Iterator[TestClient]:
    with TestClient(create_app(services), raise_server_exceptions=False) as client:
        yield client


def _enqueue(client: TestClient, **body: Any) -> dict[str, Any]:
    payload = {"tool": "gpt-query", "params": {"input": "hello"}, **body}
    response = client.post("/jobs", json=payload, headers=ALICE)
    assert response.status_code == 201, response.text
    return response.json()


def test_cors_header_contract() -> None:
    allowed = ("https://app.example.com", "https://admin.example.com")

    assert build_cors_headers("https://admin.example.com", allowed)[
        "Access-Control-Allow-Origin"
    ] == "https://admin.example.com"
    assert build_cors_headers("https://evil.example.com", allowed)[
        "Access-Control-Allow-Origin"
    ] == "https://app.example.com"
    wildcard = build_cors_headers("https://anything.example.com", ())
    assert wildcard["Access-Control-Allow-Origin"] == "*"
    assert "Vary" not in wildcard
    assert "x-internal-key" in wildcard["Access-Control-Allow-Headers"]


def test_every_response_carries_cors_headers(client: TestClient) -> None:
    preflight = client.options("/jobs", headers={"Origin": "https://admin.example.com"})
    assert preflight.status_code == 204
    assert preflight.headers["access-control-allow-origin"] == "https://admin.example.com"

    unauthorized = client.get(
        "/jobs/status?job_id=x",
        headers={"Origin": "https://evil.example.com"},
    )
    assert unauthorized.status_code == 401
    assert unauthorized.headers["access-control-allow-origin"] == "https://app.example.com"
    assert unauthorized.headers["vary"] == "Origin"


def test_submit_run_returns_run_id_and_run_is_readable(client: TestClient) -> None:
    response = client.post("/runs", json={"vision": "Build a todo app", "defaultModel": GPT_5})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    run = client.get(f"/runs/{body['run_id']}").json()
    assert run["status"] == "succeeded"
    assert [lane["lane"] for lane in run["lanes"]] == ["spec", "sql", "ui", "test", "cicd"]

    assert client.post("/runs", json={"vision": ""}).json() == {"error": "vision required"}
    assert client.get("/runs/missing").status_code == 404


def test_failed_run_reports_failing_lane(client: TestClient, fake_providers: FakeProviders) -> None:
    fake_providers.fail("openai", status=500)

    body = client.post("/runs", json={"vision": "Build a todo app"}).json()

    assert body["success"] is False
    assert body["error"] == "lane sql failed"


def test_enqueue_requires_identity_and_validates_input(client: TestClient) -> None:
    assert client.post("/jobs", json={"tool": "gpt-query", "params": {}}).status_code == 401
    assert (
        client.post(
            "/jobs",
            json={"tool": "gpt-query", "params": {}},
            headers={"Authorization": "Bearer nope"},
        ).status_code
        == 401
    )

    bad_tool = client.post("/jobs", json={"tool": "rm-rf", "params": {}}, headers=ALICE)
    assert bad_tool.status_code == 400
    assert bad_tool.json()["error"].startswith("Invalid tool: rm-rf")

    created = _enqueue(client, priority=200)
    assert created["status"] == "queued"
    assert created["priority"] == 100
    assert created["tool"] == "gpt-query"
    assert set(created) == {"job_id", "tool", "status", "priority", "created_at"}


def test_execute_and_status_enforce_ownership(client: TestClient) -> None:
    job_id = _enqueue(client)["job_id"]

    assert client.post("/jobs/execute", json={"job_id": job_id}, headers=BOB).status_code == 404
    executed = client.post("/jobs/execute", json={"job_id": job_id}, headers=ALICE)
    assert executed.status_code == 200
    assert executed.json()["status"] == "completed"
    assert executed.json()["attempts"] == 1

    again = client.post("/jobs/execute", json={"job_id": job_id}, headers=ALICE)
    assert again.status_code == 409
    assert again.json() == {"error": "Job is already completed"}

    status = client.get(f"/jobs/status?job_id={job_id}", headers=ALICE).json()
    assert status["status"] == "completed"
    assert status["result"]["output"] == '{"artifact": "openai"}'
    assert "claim_id" not in status
    assert client.get("/jobs/status", headers=ALICE).status_code == 400


def test_process_next_requires_internal_key(client: TestClient) -> None:
    assert client.post("/jobs/process-next").status_code == 401
    assert client.post("/jobs/process-next", headers={"x-internal-key": "wrong"}).status_code == 401

    idle = client.post("/jobs/process-next", headers=INTERNAL)
    assert idle.json() == {
        "message": "No jobs to process",
        "job_id": None,
        "status": None,
        "healed": 0,
    }

    job_id = _enqueue(client)["job_id"]
    processed = client.post("/jobs/process-next", headers=INTERNAL).json()
    assert processed["message"] == "Job processed"
    assert processed["job_id"] == job_id
    assert processed["status"] == "completed"


def test_dispatch_and_route(client: TestClient, fake_providers: FakeProviders) -> None:
    fake_providers.texts["openai"] = "direct answer"

    dispatched = client.post("/dispatch", json={"model": GPT_5, "input": "hi"})
    assert dispatched.status_code == 200
    assert dispatched.json()["output_text"] == "direct answer"
    assert dispatched.json()["provider"] == "openai"

    invalid = client.post("/dispatch", json={"model": "gpt-5", "input": "hi"})
    assert invalid.status_code == 400

    routed = client.post(
        "/route",
        json={"messages": [{"role": "user", "content": "Explain this diagram"}]},
    )
    assert routed.json()["model"] == "Gemini-2.5-Pro"

    fake_providers.fail("openai", status=503, body="busy")
    upstream = client.post("/dispatch", json={"model": GPT_5, "input": "hi"})
    assert upstream.status_code == 502
    assert upstream.json()["provider"] == "openai"
    assert upstream.json()["status"] == 503


def test_unexpected_errors_are_generic_500(
    client: TestClient,
    services: Services,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _explode(**_: object) -> None:
        raise RuntimeError("database is on fire")

    monkeypatch.setattr(services.runs, "get_run", _explode)

    response = client.get("/runs/abc", headers={"Origin": "https://admin.example.com"})

    assert response.status_code == 500
    assert response.json() == {"error": "Internal server error"}
    assert "fire" not in response.text
    assert response.headers["access-control-allow-origin"] == "https://admin.example.com"
