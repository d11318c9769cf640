"""Cross-origin headers attached to every HTTP response."""

from __future__ import annotations

from collections.abc import Sequence

ALLOWED_HEADERS = "authorization, x-client-info, apikey, content-type, x-internal-key"
ALLOWED_METHODS = "GET, POST, OPTIONS"


def build_cors_headers(origin: str | None, allowed: Sequence[str] | None) -> dict[str, str]:
    """Echo an allow-listed origin, else fall back to the first one, else ``*``."""

    if not allowed:
        allow_origin = "*"
    elif origin and origin in allowed:
        allow_origin = origin
    else:
        allow_origin = allowed[0]
    headers = {
        "Access-Control-Allow-Origin": allow_origin,
        "Access-Control-Allow-Headers": ALLOWED_HEADERS,
        "Access-Control-Allow-Methods": ALLOWED_METHODS,
    }
    if allow_origin != "*":
        headers["Vary"] = "Origin"
    return headers
