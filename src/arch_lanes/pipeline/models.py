"""Domain models for runs and lane records."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Lane(str, Enum):
    """The five fixed pipeline stages."""

    SPEC = "spec"
    SQL = "sql"
    UI = "ui"
    TEST = "test"
    CICD = "cicd"


LANE_ORDER: tuple[Lane, ...] = (Lane.SPEC, Lane.SQL, Lane.UI, Lane.TEST, Lane.CICD)


class RunStatus(str, Enum):
    """Run lifecycle; a run is born running."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class LaneStatus(str, Enum):
    """Lane lifecycle; transitions only move forward."""

    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class LaneView:
    """One lane record of a run."""

    run_id: str
    lane: Lane
    status: LaneStatus
    output: Any
    meta: dict[str, Any]
    created_at: datetime
    updated_at: datetime

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "lane": self.lane.value,
            "status": self.status.value,
            "output": self.output,
            "meta": self.meta,
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class RunView:
    """Run header without lanes."""

    run_id: str
    vision: str
    status: RunStatus
    project_name: str | None
    wizard_data: Any
    meta: dict[str, Any]
    created_at: datetime
    updated_at: datetime


@dataclass(slots=True)
class RunDetails:
    """Run with its lane records in lane order."""

    run: RunView
    lanes: list[LaneView] = field(default_factory=list)

    def lane(self, lane: Lane) -> LaneView:
        for item in self.lanes:
            if item.lane == lane:
                return item
        raise KeyError(lane)

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run.run_id,
            "vision": self.run.vision,
            "status": self.run.status.value,
            "project_name": self.run.project_name,
            "wizard_data": self.run.wizard_data,
            "meta": self.run.meta,
            "created_at": self.run.created_at.isoformat(),
            "updated_at": self.run.updated_at.isoformat(),
            "lanes": [lane.to_public_dict() for lane in self.lanes],
        }
