"""Error taxonomy shared by the queue, pipeline, and API boundary."""

from __future__ import annotations


class ValidationError(ValueError):
    """Malformed or disallowed caller input. Never retried."""


class JobInputError(ValidationError):
    """Job params rejected at execution time by the tool contract."""


class NotFoundError(LookupError):
    """Requested record does not exist in the caller's scope."""


class ConflictError(RuntimeError):
    """Record is not in a state that allows the requested transition."""

    def __init__(self, message: str, *, status: str | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthorizationError(PermissionError):
    """Missing/invalid caller identity or ownership mismatch."""


class JobTimeoutError(TimeoutError):
    """Local wait for a tool execution exceeded its per-tool deadline."""

    def __init__(self, tool: str, timeout_seconds: float) -> None:
        super().__init__(f"Job execution timeout after {timeout_seconds:g}s (tool={tool})")
        self.tool = tool
        self.timeout_seconds = timeout_seconds
