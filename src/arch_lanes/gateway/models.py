"""Allow-listed models, provider bindings, and gateway call types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class ProviderName(str, Enum):
    """Closed set of provider families the gateway can call."""

    OPENAI = "openai"
    GOOGLE = "google"
    ANTHROPIC = "anthropic"


GPT_5 = "GPT-5"
GEMINI_25_PRO = "Gemini-2.5-Pro"
CLAUDE_45_SONNET = "Claude-4.5-Sonnet"

MODEL_PROVIDERS: dict[str, ProviderName] = {
    GPT_5: ProviderName.OPENAI,
    GEMINI_25_PRO: ProviderName.GOOGLE,
    CLAUDE_45_SONNET: ProviderName.ANTHROPIC,
}
ALLOWED_MODELS: tuple[str, ...] = tuple(MODEL_PROVIDERS)

PROVIDER_CREDENTIAL_ENV: dict[ProviderName, str] = {
    ProviderName.OPENAI: "OPENAI_API_KEY",
    ProviderName.GOOGLE: "GOOGLE_API_KEY",
    ProviderName.ANTHROPIC: "ANTHROPIC_API_KEY",
}


def is_allowed_model(model: str) -> bool:
    return model in MODEL_PROVIDERS


def provider_for(model: str) -> ProviderName | None:
    """Return the single provider bound to an allow-listed model, or None."""

    return MODEL_PROVIDERS.get(model)


class ProviderErrorReason(str, Enum):
    """Why a gateway call did not produce a provider response."""

    HTTP_STATUS = "http_status"
    TRANSPORT = "transport"
    CREDENTIALS_MISSING = "credentials_missing"
    MODEL_NOT_ALLOWED = "model_not_allowed"


class ProviderError(RuntimeError):
    """Upstream call failure with provider name, HTTP status, and raw body."""

    def __init__(
        self,
        *,
        provider: str,
        status: int | None,
        body: str,
        reason: ProviderErrorReason = ProviderErrorReason.HTTP_STATUS,
        message: str | None = None,
    ) -> None:
        super().__init__(message or f"{provider} error: {status} {body}")
        self.provider = provider
        self.status = status
        self.body = body
        self.reason = reason


class ProviderConfigError(ValueError):
    """Gateway constructed without credentials it was told to require."""


@dataclass(slots=True)
class SamplingParams:
    """Caller sampling hints; each binding decides which ones it honors."""

    temperature: float | None = None
    max_tokens: int | None = None
    generation_config: dict[str, Any] | None = None


@dataclass(slots=True)
class ProviderResult:
    """Normalized provider response."""

    text: str
    raw: Any
    provider: ProviderName
    model: str
