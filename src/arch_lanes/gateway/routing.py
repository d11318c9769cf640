"""Heuristic model choice for chat-style requests."""

from __future__ import annotations

import re
from dataclasses import dataclass

from arch_lanes.gateway.models import (
    CLAUDE_45_SONNET,
    GEMINI_25_PRO,
    GPT_5,
    is_allowed_model,
)

LONG_INPUT_THRESHOLD_CHARS = 6000

_VISUAL_HINT = re.compile(r"image|vision|diagram", re.IGNORECASE)


@dataclass(slots=True)
class ChatMessage:
    """One chat turn."""

    role: str
    content: str


def choose_model(messages: list[ChatMessage], hint: str | None = None) -> str:
    """Pick a model: a valid hint wins, then visual content, then input length."""

    if hint and is_allowed_model(hint):
        return hint
    text = "\n".join(message.content for message in messages)
    if _VISUAL_HINT.search(text):
        return GEMINI_25_PRO
    if len(text) > LONG_INPUT_THRESHOLD_CHARS:
        return CLAUDE_45_SONNET
    return GPT_5


def fold_messages(messages: list[ChatMessage]) -> tuple[str | None, str]:
    """Split out the system prompt and fold the rest into ``ROLE: content`` blocks."""

    system_parts = [message.content for message in messages if message.role == "system"]
    body = "\n\n".join(
        f"{message.role.upper()}: {message.content}"
        for message in messages
        if message.role != "system"
    )
    system = "\n\n".join(system_parts) if system_parts else None
    return system, body
