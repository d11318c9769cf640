"""Synchronous single-call dispatch and routed chat calls."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from arch_lanes.errors import ValidationError
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.gateway.models import ALLOWED_MODELS, SamplingParams, is_allowed_model
from arch_lanes.gateway.notes import (
    CallObserver,
    NullCallObserver,
    build_call_note,
    notify_call,
)
from arch_lanes.gateway.routing import ChatMessage, choose_model, fold_messages

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DispatchResult:
    """Outcome of one direct call."""

    model: str
    provider: str
    output_text: str
    raw: Any


class DispatchService:
    """Validates direct-call input, calls the gateway, then emits a call note."""

    def __init__(
        self,
        *,
        gateway: ProviderGateway,
        observer: CallObserver | None = None,
    ) -> None:
        self.gateway = gateway
        self.observer = observer or NullCallObserver()

    def dispatch(  # noqa: PLR0913
        self,
        *,
        model: str,
        input_text: str,
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> DispatchResult:
        if not model or not input_text:
            raise ValidationError("model and input are required")
        if not is_allowed_model(model):
            raise ValidationError(
                f"Invalid model: {model}. Allowed: {', '.join(ALLOWED_MODELS)}",
            )

        result = self.gateway.invoke(
            model,
            input_text,
            system=system,
            sampling=SamplingParams(temperature=temperature, max_tokens=max_tokens),
        )
        notify_call(
            self.observer,
            build_call_note(model=model, provider=result.provider.value, input_text=input_text),
        )
        return DispatchResult(
            model=model,
            provider=result.provider.value,
            output_text=result.text,
            raw=result.raw,
        )

    def route(
        self,
        *,
        messages: list[ChatMessage],
        hint_model: str | None = None,
        max_tokens: int | None = None,
    ) -> DispatchResult:
        if not messages:
            raise ValidationError("messages must be a non-empty list")

        model = choose_model(messages, hint_model)
        chosen_by = "hint" if hint_model == model else "heuristic"
        logger.info("Routed %d message(s) to %s (%s)", len(messages), model, chosen_by)

        system, body = fold_messages(messages)
        result = self.gateway.invoke(
            model,
            body,
            system=system,
            sampling=SamplingParams(max_tokens=max_tokens),
        )
        notify_call(
            self.observer,
            build_call_note(
                model=model,
                provider=result.provider.value,
                input_text=body,
                chosen_by=chosen_by,
            ),
        )
        return DispatchResult(
            model=model,
            provider=result.provider.value,
            output_text=result.text,
            raw=result.raw,
        )
