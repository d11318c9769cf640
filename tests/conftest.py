"""Shared test fixtures."""

from __future__ import annotations

import json
import time
from collections.abc import Iterator
from pathlib import Path

import httpx
import pytest

from arch_lanes.config import ApiSettings, ProviderSettings, QueueSettings, Settings
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.wiring import Services, build_services

TEST_PROVIDER_SETTINGS = ProviderSettings(
    openai_api_key="sk-openai-test",
    google_api_key="google-test",
    anthropic_api_key="anthropic-test",
)

_HOST_PROVIDERS = {
    "api.openai.com": "openai",
    "generativelanguage.googleapis.com": "google",
    "api.anthropic.com": "anthropic",
}


def provider_success_body(provider: str, text: str) -> dict[str, object]:
    if provider == "openai":
        return {"choices": [{"message": {"role": "assistant", "content": text}}]}
    if provider == "google":
        return {"candidates": [{"content": {"parts": [{"text": text}]}}]}
    return {"content": [{"type": "text", "text": text}]}


class FakeProviders:
    """httpx.MockTransport handler that answers like the three provider APIs.

    Responses are served from per-provider one-shot scripts first, then from a
    sticky failure if one is set, else a success carrying ``default_text``.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.scripts: dict[str, list[httpx.Response]] = {}
        self.failures: dict[str, tuple[int, str]] = {}
        self.delays: dict[str, float] = {}
        self.texts: dict[str, str] = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        provider = _HOST_PROVIDERS[request.url.host]
        delay = self.delays.get(provider)
        if delay:
            time.sleep(delay)
        script = self.scripts.get(provider)
        if script:
            return script.pop(0)
        if provider in self.failures:
            status, body = self.failures[provider]
            return httpx.Response(status, text=body)
        text = self.texts.get(provider, json.dumps({"artifact": provider}))
        return httpx.Response(200, json=provider_success_body(provider, text))

    def fail(self, provider: str, *, status: int = 500, body: str = "upstream exploded") -> None:
        self.failures[provider] = (status, body)

    def respond_once(self, provider: str, response: httpx.Response) -> None:
        self.scripts.setdefault(provider, []).append(response)

    def requests_for(self, provider: str) -> list[httpx.Request]:
        return [
            request
            for request in self.requests
            if _HOST_PROVIDERS[request.url.host] == provider
        ]

    def payloads_for(self, provider: str) -> list[dict[str, object]]:
        return [json.loads(request.content) for request in self.requests_for(provider)]


@pytest.fixture()
def fake_providers() -> FakeProviders:
    return FakeProviders()


@pytest.fixture()
def gateway(fake_providers: FakeProviders) -> Iterator[ProviderGateway]:
    gateway = ProviderGateway.from_settings(
        TEST_PROVIDER_SETTINGS,
        client=httpx.Client(transport=httpx.MockTransport(fake_providers)),
    )
    yield gateway
    gateway.close()


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        db_path=tmp_path / "arch-lanes.db",
        providers=TEST_PROVIDER_SETTINGS,
        queue=QueueSettings(worker_id="worker-test", poll_interval_seconds=0.01),
        api=ApiSettings(
            cors_origins=("https://app.example.com", "https://admin.example.com"),
            internal_key="internal-secret",
            api_tokens={"token-alice": "alice", "token-bob": "bob"},
        ),
    )


@pytest.fixture()
def services(settings: Settings, gateway: ProviderGateway) -> Iterator[Services]:
    services = build_services(settings, gateway=gateway)
    yield services
    services.close()
