"""Runtime configuration for the provider gateway, job queue, pipeline, and API."""

from __future__ import annotations

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_TOOL_TIMEOUTS: dict[str, float] = {
    "gemini-query": 30.0,
    "gpt-query": 30.0,
    "claude-query": 30.0,
    "multi-model-query": 45.0,
}


@dataclass(slots=True)
class ProviderSettings:
    """Credentials and endpoints for the three provider bindings."""

    openai_api_key: str = ""
    google_api_key: str = ""
    anthropic_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    anthropic_base_url: str = "https://api.anthropic.com/v1"
    anthropic_version: str = "2023-06-01"
    openai_model: str = "gpt-5"
    gemini_model: str = "gemini-2.5-pro"
    anthropic_model: str = "claude-sonnet-4-5"
    request_timeout_seconds: float = 120.0
    require_all_credentials: bool = True


@dataclass(slots=True)
class QueueSettings:
    """Job queue retry, healing, and worker settings."""

    max_attempts: int = 3
    retry_base_seconds: float = 10.0
    retry_max_seconds: float = 300.0
    retry_jitter_seconds: float = 5.0
    heal_after_seconds: int = 300
    tool_timeouts: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_TOOL_TIMEOUTS))
    worker_id: str = field(default_factory=lambda: f"worker-{socket.gethostname()}-{os.getpid()}")
    poll_interval_seconds: float = 2.0


@dataclass(slots=True)
class PipelineSettings:
    """Lane pipeline sampling defaults."""

    default_model: str = "GPT-5"
    lane_max_tokens: int = 2000
    lane_temperature: float = 0.0


@dataclass(slots=True)
class ApiSettings:
    """HTTP boundary settings."""

    cors_origins: tuple[str, ...] = ()
    internal_key: str = ""
    api_tokens: dict[str, str] = field(default_factory=dict)
    host: str = "127.0.0.1"
    port: int = 8000


@dataclass(slots=True)
class Settings:
    """Application settings grouped by domain concerns."""

    db_path: Path = Path(".arch_lanes.db")
    providers: ProviderSettings = field(default_factory=ProviderSettings)
    queue: QueueSettings = field(default_factory=QueueSettings)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    api: ApiSettings = field(default_factory=ApiSettings)

    @classmethod
    def from_env(cls, db_path: Path | None = None) -> Settings:
        """Load settings from environment with sane defaults for local development."""

        queue_defaults = QueueSettings()
        return cls(
            db_path=db_path or Path(os.getenv("ARCH_LANES_DB_PATH", ".arch_lanes.db")),
            providers=ProviderSettings(
                openai_api_key=os.getenv("OPENAI_API_KEY", "").strip(),
                google_api_key=os.getenv("GOOGLE_API_KEY", "").strip(),
                anthropic_api_key=os.getenv("ANTHROPIC_API_KEY", "").strip(),
                openai_base_url=os.getenv(
                    "ARCH_LANES_OPENAI_BASE_URL",
                    "https://api.openai.com/v1",
                ),
                gemini_base_url=os.getenv(
                    "ARCH_LANES_GEMINI_BASE_URL",
                    "https://generativelanguage.googleapis.com/v1beta",
                ),
                anthropic_base_url=os.getenv(
                    "ARCH_LANES_ANTHROPIC_BASE_URL",
                    "https://api.anthropic.com/v1",
                ),
                anthropic_version=os.getenv("ARCH_LANES_ANTHROPIC_VERSION", "2023-06-01"),
                openai_model=os.getenv("ARCH_LANES_OPENAI_MODEL", "gpt-5"),
                gemini_model=os.getenv("ARCH_LANES_GEMINI_MODEL", "gemini-2.5-pro"),
                anthropic_model=os.getenv("ARCH_LANES_ANTHROPIC_MODEL", "claude-sonnet-4-5"),
                request_timeout_seconds=float(
                    os.getenv("ARCH_LANES_PROVIDER_TIMEOUT_SECONDS", "120"),
                ),
                require_all_credentials=_env_bool(
                    "ARCH_LANES_REQUIRE_ALL_CREDENTIALS",
                    default=True,
                ),
            ),
            queue=QueueSettings(
                max_attempts=int(os.getenv("ARCH_LANES_MAX_ATTEMPTS", "3")),
                retry_base_seconds=float(os.getenv("ARCH_LANES_RETRY_BASE_SECONDS", "10")),
                retry_max_seconds=float(os.getenv("ARCH_LANES_RETRY_MAX_SECONDS", "300")),
                retry_jitter_seconds=float(os.getenv("ARCH_LANES_RETRY_JITTER_SECONDS", "5")),
                heal_after_seconds=int(os.getenv("ARCH_LANES_HEAL_AFTER_SECONDS", "300")),
                tool_timeouts=_collect_tool_timeouts(),
                worker_id=os.getenv("ARCH_LANES_WORKER_ID", queue_defaults.worker_id),
                poll_interval_seconds=float(
                    os.getenv("ARCH_LANES_POLL_INTERVAL_SECONDS", "2.0"),
                ),
            ),
            pipeline=PipelineSettings(
                default_model=os.getenv("ARCH_LANES_DEFAULT_MODEL", "GPT-5"),
                lane_max_tokens=int(os.getenv("ARCH_LANES_LANE_MAX_TOKENS", "2000")),
                lane_temperature=float(os.getenv("ARCH_LANES_LANE_TEMPERATURE", "0")),
            ),
            api=ApiSettings(
                cors_origins=_collect_cors_origins(),
                internal_key=os.getenv(
                    "ARCH_LANES_INTERNAL_KEY",
                    os.getenv("INTERNAL_KEY", ""),
                ).strip(),
                api_tokens=_collect_api_tokens(),
                host=os.getenv("ARCH_LANES_API_HOST", "127.0.0.1"),
                port=int(os.getenv("ARCH_LANES_API_PORT", "8000")),
            ),
        )

    def validate_for_queue(self) -> None:
        """Raise configuration error if queue tunables are out of range."""

        if self.queue.max_attempts <= 0:
            raise ValueError("ARCH_LANES_MAX_ATTEMPTS must be > 0.")
        if self.queue.retry_base_seconds < 0:
            raise ValueError("ARCH_LANES_RETRY_BASE_SECONDS must be >= 0.")
        if self.queue.retry_max_seconds < self.queue.retry_base_seconds:
            raise ValueError(
                "ARCH_LANES_RETRY_MAX_SECONDS must be >= ARCH_LANES_RETRY_BASE_SECONDS.",
            )
        if self.queue.retry_jitter_seconds < 0:
            raise ValueError("ARCH_LANES_RETRY_JITTER_SECONDS must be >= 0.")
        if self.queue.heal_after_seconds <= 0:
            raise ValueError("ARCH_LANES_HEAL_AFTER_SECONDS must be > 0.")
        for tool, timeout in self.queue.tool_timeouts.items():
            if timeout <= 0:
                raise ValueError(f"Tool timeout must be positive: {tool!r} -> {timeout!r}")

    def validate_for_api(self) -> None:
        """Raise configuration error if the HTTP boundary cannot authorize callers."""

        if not self.api.internal_key:
            raise ValueError(
                "ARCH_LANES_INTERNAL_KEY is required to expose the poll-and-dispatch endpoint.",
            )
        for origin in self.api.cors_origins:
            if not origin.startswith(("http://", "https://")):
                raise ValueError(
                    f"Invalid CORS origin: {origin!r}. Expected http:// or https:// origin.",
                )


def _collect_cors_origins() -> tuple[str, ...]:
    raw = os.getenv("ARCH_LANES_CORS_ORIGINS", os.getenv("CORS_ORIGINS", ""))
    values: list[str] = []
    seen: set[str] = set()
    for part in raw.split(","):
        origin = part.strip()
        if not origin or origin in seen:
            continue
        seen.add(origin)
        values.append(origin)
    return tuple(values)


def _collect_tool_timeouts() -> dict[str, float]:
    timeouts = dict(DEFAULT_TOOL_TIMEOUTS)
    raw = os.getenv("ARCH_LANES_TOOL_TIMEOUTS", "").strip()
    if not raw:
        return timeouts

    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        if "=" not in token:
            raise ValueError(
                "Invalid ARCH_LANES_TOOL_TIMEOUTS entry: "
                f"{token!r}. Expected format '<tool>=<seconds>'.",
            )
        tool, seconds_raw = token.split("=", 1)
        tool = tool.strip()
        if tool not in DEFAULT_TOOL_TIMEOUTS:
            raise ValueError(f"Unknown tool in ARCH_LANES_TOOL_TIMEOUTS: {tool!r}")
        try:
            seconds = float(seconds_raw.strip())
        except ValueError as error:
            raise ValueError(
                f"Invalid ARCH_LANES_TOOL_TIMEOUTS value for {tool!r}: {seconds_raw!r}",
            ) from error
        if seconds <= 0:
            raise ValueError(
                f"Invalid ARCH_LANES_TOOL_TIMEOUTS value for {tool!r}: {seconds!r} (must be > 0)",
            )
        timeouts[tool] = seconds
    return timeouts


def _collect_api_tokens() -> dict[str, str]:
    raw = os.getenv("ARCH_LANES_API_TOKENS", "").strip()
    if not raw:
        return {}

    tokens: dict[str, str] = {}
    for part in raw.split(","):
        token = part.strip()
        if not token:
            continue
        if ":" not in token:
            raise ValueError(
                "Invalid ARCH_LANES_API_TOKENS entry. Expected format '<token>:<identity>'.",
            )
        secret, identity = token.rsplit(":", 1)
        secret = secret.strip()
        identity = identity.strip()
        if not secret or not identity:
            raise ValueError("ARCH_LANES_API_TOKENS entries need both token and identity.")
        tokens[secret] = identity
    return tokens


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
