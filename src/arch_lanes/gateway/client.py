"""Uniform invoke() over the three allow-listed provider models."""

from __future__ import annotations

import logging

import httpx

from arch_lanes.config import ProviderSettings
from arch_lanes.gateway.models import (
    ALLOWED_MODELS,
    MODEL_PROVIDERS,
    PROVIDER_CREDENTIAL_ENV,
    ProviderConfigError,
    ProviderError,
    ProviderErrorReason,
    ProviderName,
    ProviderResult,
    SamplingParams,
)
from arch_lanes.gateway.providers import (
    AnthropicBinding,
    GeminiBinding,
    OpenAIBinding,
    ProviderBinding,
)

logger = logging.getLogger(__name__)


class ProviderGateway:
    """Dispatches model calls to the binding that owns the model."""

    def __init__(
        self,
        *,
        bindings: dict[ProviderName, ProviderBinding],
        client: httpx.Client,
        missing_credentials: dict[ProviderName, str] | None = None,
    ) -> None:
        self._bindings = bindings
        self._client = client
        self._missing_credentials = dict(missing_credentials or {})

    @classmethod
    def from_settings(
        cls,
        settings: ProviderSettings,
        *,
        client: httpx.Client | None = None,
    ) -> ProviderGateway:
        """Build bindings for every configured credential.

        With ``require_all_credentials`` set, a missing key fails here instead
        of on the first call that needs it.
        """

        bindings: dict[ProviderName, ProviderBinding] = {}
        missing: dict[ProviderName, str] = {}

        if settings.openai_api_key:
            bindings[ProviderName.OPENAI] = OpenAIBinding(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
                upstream_model=settings.openai_model,
            )
        else:
            missing[ProviderName.OPENAI] = PROVIDER_CREDENTIAL_ENV[ProviderName.OPENAI]

        if settings.google_api_key:
            bindings[ProviderName.GOOGLE] = GeminiBinding(
                api_key=settings.google_api_key,
                base_url=settings.gemini_base_url,
                upstream_model=settings.gemini_model,
            )
        else:
            missing[ProviderName.GOOGLE] = PROVIDER_CREDENTIAL_ENV[ProviderName.GOOGLE]

        if settings.anthropic_api_key:
            bindings[ProviderName.ANTHROPIC] = AnthropicBinding(
                api_key=settings.anthropic_api_key,
                base_url=settings.anthropic_base_url,
                upstream_model=settings.anthropic_model,
                api_version=settings.anthropic_version,
            )
        else:
            missing[ProviderName.ANTHROPIC] = PROVIDER_CREDENTIAL_ENV[ProviderName.ANTHROPIC]

        if missing and settings.require_all_credentials:
            raise ProviderConfigError(
                "Missing provider credentials: "
                f"{', '.join(sorted(missing.values()))}. "
                "Set them or disable ARCH_LANES_REQUIRE_ALL_CREDENTIALS.",
            )
        if missing:
            logger.warning(
                "Provider gateway started without credentials: %s",
                ", ".join(sorted(missing.values())),
            )

        return cls(
            bindings=bindings,
            client=client
            or httpx.Client(timeout=httpx.Timeout(settings.request_timeout_seconds, connect=10.0)),
            missing_credentials=missing,
        )

    @property
    def available_models(self) -> tuple[str, ...]:
        return tuple(
            model for model in ALLOWED_MODELS if MODEL_PROVIDERS[model] in self._bindings
        )

    def invoke(
        self,
        model: str,
        prompt: str,
        *,
        system: str | None = None,
        sampling: SamplingParams | None = None,
    ) -> ProviderResult:
        """Call the provider bound to ``model`` and normalize the response."""

        provider = MODEL_PROVIDERS.get(model)
        if provider is None:
            raise ProviderError(
                provider="gateway",
                status=None,
                body=f"Model {model!r} is not allowed. Allowed: {', '.join(ALLOWED_MODELS)}",
                reason=ProviderErrorReason.MODEL_NOT_ALLOWED,
                message=f"Invalid model: {model}",
            )

        binding = self._bindings.get(provider)
        if binding is None:
            env_name = self._missing_credentials.get(provider, PROVIDER_CREDENTIAL_ENV[provider])
            raise ProviderError(
                provider=provider.value,
                status=None,
                body=f"Missing {env_name}",
                reason=ProviderErrorReason.CREDENTIALS_MISSING,
                message=f"Missing {env_name}",
            )

        logger.debug("Invoking %s via %s", model, provider.value)
        text, raw = binding.call(
            self._client,
            prompt=prompt,
            system=system,
            sampling=sampling or SamplingParams(),
        )
        return ProviderResult(text=text, raw=raw, provider=provider, model=model)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> ProviderGateway:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
