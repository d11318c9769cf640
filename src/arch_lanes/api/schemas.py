"""Pydantic request schemas for the HTTP boundary.

Field types are kept loose where the service layer owns validation, so that
a bad ``tool`` or ``params`` gets the same error message from the API and
the CLI.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SubmitRunRequest(BaseModel):
    """Start a lane pipeline run."""

    model_config = ConfigDict(populate_by_name=True)

    vision: str = ""
    default_model: str | None = Field(default=None, alias="defaultModel")
    project_name: str | None = None
    wizard_data: dict[str, Any] | None = None


class EnqueueJobRequest(BaseModel):
    tool: str = ""
    params: Any = None
    model: str | None = None
    priority: Any = 0
    metadata: dict[str, Any] | None = None


class ExecuteJobRequest(BaseModel):
    job_id: str = ""


class DispatchRequest(BaseModel):
    """Direct synchronous model call."""

    model: str = ""
    input: str = ""
    system: str | None = None
    temperature: float | None = None
    max_tokens: int | None = Field(default=None, gt=0)


class RouteMessage(BaseModel):
    role: str
    content: str


class RouteRequest(BaseModel):
    """Chat messages routed to a heuristically chosen model."""

    model_config = ConfigDict(populate_by_name=True)

    messages: list[RouteMessage] = Field(default_factory=list)
    hint_model: str | None = Field(default=None, alias="hintModel")
    max_tokens: int | None = Field(default=None, gt=0)
