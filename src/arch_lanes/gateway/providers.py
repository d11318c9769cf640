"""Per-provider request builders and response readers.

Every binding owns its parameter contract:

- OpenAI pins ``temperature`` to 1 and sends ``max_completion_tokens``.
- Anthropic always sends ``max_tokens`` and a top-level ``system`` field.
- Gemini takes a free-form ``generationConfig`` object and prepends the system
  prompt as the first content part.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from arch_lanes.gateway.models import (
    ProviderError,
    ProviderErrorReason,
    ProviderName,
    SamplingParams,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_TOKENS = 4096
OPENAI_FIXED_TEMPERATURE = 1
ANTHROPIC_DEFAULT_TEMPERATURE = 0.0


@dataclass(slots=True)
class ProviderRequest:
    """Fully built HTTP request for one provider call."""

    url: str
    headers: dict[str, str]
    payload: dict[str, Any]
    params: dict[str, str] | None = None


class ProviderBinding(ABC):
    """One provider family bound to one upstream model id."""

    provider: ProviderName
    label: str

    def __init__(self, *, api_key: str, base_url: str, upstream_model: str) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.upstream_model = upstream_model

    @abstractmethod
    def build_request(
        self,
        *,
        prompt: str,
        system: str | None,
        sampling: SamplingParams,
    ) -> ProviderRequest:
        """Map prompt and sampling hints onto this provider's wire contract."""

    @abstractmethod
    def extract_text(self, body: Any) -> str:
        """Pull generated text from a decoded response body."""

    def call(
        self,
        client: httpx.Client,
        *,
        prompt: str,
        system: str | None,
        sampling: SamplingParams,
    ) -> tuple[str, Any]:
        """Send the request; return extracted text and the raw body."""

        request = self.build_request(prompt=prompt, system=system, sampling=sampling)
        try:
            response = client.post(
                request.url,
                headers=request.headers,
                params=request.params,
                json=request.payload,
            )
        except httpx.HTTPError as exc:
            logger.warning("%s transport error: %s", self.label, exc)
            raise ProviderError(
                provider=self.provider.value,
                status=None,
                body=str(exc),
                reason=ProviderErrorReason.TRANSPORT,
                message=f"{self.label} error: {exc}",
            ) from exc

        if not response.is_success:
            raise ProviderError(
                provider=self.provider.value,
                status=response.status_code,
                body=response.text,
                message=f"{self.label} error: {response.status_code} {response.text}",
            )

        try:
            body: Any = response.json()
        except ValueError:
            logger.warning("%s returned a non-JSON body", self.label)
            return "", response.text
        return _safe_text(self.extract_text, body), body


class OpenAIBinding(ProviderBinding):
    provider = ProviderName.OPENAI
    label = "OpenAI"

    def build_request(
        self,
        *,
        prompt: str,
        system: str | None,
        sampling: SamplingParams,
    ) -> ProviderRequest:
        messages: list[dict[str, str]] = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})
        return ProviderRequest(
            url=f"{self.base_url}/chat/completions",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            payload={
                "model": self.upstream_model,
                "messages": messages,
                # Caller temperature is ignored: this model only accepts 1.
                "temperature": OPENAI_FIXED_TEMPERATURE,
                "max_completion_tokens": sampling.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            },
        )

    def extract_text(self, body: Any) -> str:
        content = body["choices"][0]["message"]["content"]
        return content if isinstance(content, str) else ""


class GeminiBinding(ProviderBinding):
    provider = ProviderName.GOOGLE
    label = "Gemini"

    def build_request(
        self,
        *,
        prompt: str,
        system: str | None,
        sampling: SamplingParams,
    ) -> ProviderRequest:
        parts: list[dict[str, str]] = []
        if system:
            parts.append({"text": system})
        parts.append({"text": prompt})

        generation_config: dict[str, Any] = dict(sampling.generation_config or {})
        if sampling.temperature is not None:
            generation_config.setdefault("temperature", sampling.temperature)
        if sampling.max_tokens is not None:
            generation_config.setdefault("maxOutputTokens", sampling.max_tokens)

        payload: dict[str, Any] = {"contents": [{"role": "user", "parts": parts}]}
        if generation_config:
            payload["generationConfig"] = generation_config
        return ProviderRequest(
            url=f"{self.base_url}/models/{self.upstream_model}:generateContent",
            headers={"Content-Type": "application/json"},
            params={"key": self.api_key},
            payload=payload,
        )

    def extract_text(self, body: Any) -> str:
        parts = body["candidates"][0]["content"]["parts"]
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


class AnthropicBinding(ProviderBinding):
    provider = ProviderName.ANTHROPIC
    label = "Anthropic"

    def __init__(
        self,
        *,
        api_key: str,
        base_url: str,
        upstream_model: str,
        api_version: str,
    ) -> None:
        super().__init__(api_key=api_key, base_url=base_url, upstream_model=upstream_model)
        self.api_version = api_version

    def build_request(
        self,
        *,
        prompt: str,
        system: str | None,
        sampling: SamplingParams,
    ) -> ProviderRequest:
        payload: dict[str, Any] = {
            "model": self.upstream_model,
            "max_tokens": sampling.max_tokens or DEFAULT_MAX_OUTPUT_TOKENS,
            "temperature": (
                sampling.temperature
                if sampling.temperature is not None
                else ANTHROPIC_DEFAULT_TEMPERATURE
            ),
            "messages": [{"role": "user", "content": prompt}],
        }
        if system:
            payload["system"] = system
        return ProviderRequest(
            url=f"{self.base_url}/messages",
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": self.api_version,
                "Content-Type": "application/json",
            },
            payload=payload,
        )

    def extract_text(self, body: Any) -> str:
        blocks = body["content"]
        return "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type", "text") == "text"
        )


def _safe_text(extract, body: Any) -> str:
    try:
        return extract(body)
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
