"""Tool implementations behind the job allow-list."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any

from arch_lanes.errors import JobInputError
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.gateway.models import (
    ALLOWED_MODELS,
    ProviderError,
    SamplingParams,
    is_allowed_model,
    provider_for,
)
from arch_lanes.orchestrator.models import TOOL_DEFAULT_MODELS, JobTool

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolOutcome:
    """Successful tool result plus the provider/model it ran on."""

    result: dict[str, Any]
    provider: str | None
    model: str


def resolve_job_model(tool: JobTool, model: str | None) -> str:
    return model or TOOL_DEFAULT_MODELS[tool]


def execute_tool(
    *,
    tool: JobTool,
    params: dict[str, Any],
    model: str | None,
    gateway: ProviderGateway,
) -> ToolOutcome:
    """Run one job tool to completion; raises on failure."""

    resolved = resolve_job_model(tool, model)
    if tool == JobTool.MULTI_MODEL_QUERY:
        return execute_multi_model_query(params=params, primary_model=resolved, gateway=gateway)
    return execute_model_query(params=params, model=resolved, gateway=gateway)


def execute_model_query(
    *,
    params: dict[str, Any],
    model: str,
    gateway: ProviderGateway,
) -> ToolOutcome:
    prompt = _require_input(params)
    result = gateway.invoke(
        model,
        prompt,
        system=_optional_str(params, "system"),
        sampling=_sampling_from_params(params),
    )
    return ToolOutcome(
        result={"output": result.text, "provider": result.provider.value, "model": model},
        provider=result.provider.value,
        model=model,
    )


def execute_multi_model_query(
    *,
    params: dict[str, Any],
    primary_model: str,
    gateway: ProviderGateway,
) -> ToolOutcome:
    """Query several models concurrently; one model's failure does not fail the others."""

    prompt = _require_input(params)
    system = _optional_str(params, "system")
    models = _models_from_params(params, primary_model)

    def _call(model: str) -> dict[str, Any]:
        try:
            result = gateway.invoke(model, prompt, system=system)
        except ProviderError as exc:
            logger.info("multi-model-query: %s failed: %s", model, exc)
            return {"model": model, "error": str(exc), "success": False}
        return {
            "model": model,
            "provider": result.provider.value,
            "output": result.text,
            "success": True,
        }

    with ThreadPoolExecutor(max_workers=len(models), thread_name_prefix="multi-model") as pool:
        results = list(pool.map(_call, models))

    provider = provider_for(primary_model)
    return ToolOutcome(
        result={"results": results},
        provider=provider.value if provider is not None else None,
        model=primary_model,
    )


def _require_input(params: dict[str, Any]) -> str:
    value = params.get("input")
    if not isinstance(value, str) or not value:
        raise JobInputError("Missing or invalid 'input' parameter")
    return value


def _optional_str(params: dict[str, Any], key: str) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise JobInputError(f"Invalid {key!r} parameter: expected string")
    return value


def _sampling_from_params(params: dict[str, Any]) -> SamplingParams:
    temperature = params.get("temperature")
    if temperature is not None and (
        isinstance(temperature, bool) or not isinstance(temperature, int | float)
    ):
        raise JobInputError("Invalid 'temperature' parameter: expected number")
    max_tokens = params.get("max_tokens")
    if max_tokens is not None and (
        isinstance(max_tokens, bool) or not isinstance(max_tokens, int) or max_tokens <= 0
    ):
        raise JobInputError("Invalid 'max_tokens' parameter: expected positive integer")
    generation_config = params.get("generation_config")
    if generation_config is not None and not isinstance(generation_config, dict):
        raise JobInputError("Invalid 'generation_config' parameter: expected object")
    return SamplingParams(
        temperature=float(temperature) if temperature is not None else None,
        max_tokens=max_tokens,
        generation_config=generation_config,
    )


def _models_from_params(params: dict[str, Any], primary_model: str) -> list[str]:
    raw = params.get("models")
    if raw is None:
        return [primary_model]
    if not isinstance(raw, list) or not raw:
        raise JobInputError("Invalid 'models' parameter: expected non-empty list")
    models: list[str] = []
    for item in raw:
        if not isinstance(item, str) or not is_allowed_model(item):
            raise JobInputError(
                f"Invalid model in 'models': {item!r}. Allowed: {', '.join(ALLOWED_MODELS)}",
            )
        models.append(item)
    return models
