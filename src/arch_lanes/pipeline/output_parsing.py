"""Best-effort structured output recovery from lane model text."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCED_JSON = re.compile(r"```(?:json)?\s*(\{.*?\}|\[.*?\])\s*```", re.DOTALL | re.IGNORECASE)
_MISSING = object()


def parse_lane_output(text: str) -> Any:
    """Parse model text as JSON; fall back to ``{"text": text}``.

    Tried in order: the whole text, a fenced ```json block, then the outermost
    ``{...}`` slice. A parse failure never fails the lane.
    """

    stripped = text.strip()
    direct = _try_load(stripped)
    if direct is not _MISSING:
        return direct

    fenced = _FENCED_JSON.search(stripped)
    if fenced is not None:
        payload = _try_load(fenced.group(1))
        if payload is not _MISSING:
            return payload

    start = stripped.find("{")
    end = stripped.rfind("}")
    if start != -1 and end > start:
        payload = _try_load(stripped[start : end + 1])
        if isinstance(payload, dict):
            return payload

    return {"text": text}


def _try_load(raw: str) -> Any:
    if not raw:
        return _MISSING
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        return _MISSING
    # A bare `null` is not a usable artifact.
    return _MISSING if parsed is None else parsed
