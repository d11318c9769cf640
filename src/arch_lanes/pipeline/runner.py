"""Sequential lane pipeline: one provider call per lane, fail-fast on the first error."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from arch_lanes.errors import ConflictError, ValidationError
from arch_lanes.gateway.client import ProviderGateway
from arch_lanes.gateway.models import ALLOWED_MODELS, GPT_5, ProviderError, SamplingParams
from arch_lanes.pipeline.lanes import LANE_SYSTEM_PROMPTS, lane_user_prompt, resolve_lane_model
from arch_lanes.pipeline.models import LANE_ORDER, Lane, RunStatus
from arch_lanes.pipeline.output_parsing import parse_lane_output
from arch_lanes.pipeline.repository import RunRepository

logger = logging.getLogger(__name__)

RUN_META_VERSION = "1.0.0"


@dataclass(slots=True)
class RunOutcome:
    """Terminal result of one pipeline run."""

    run_id: str
    status: RunStatus
    failed_lane: Lane | None = None
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def to_response_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "run_id": self.run_id}
        if self.failed_lane is not None:
            payload["error"] = f"lane {self.failed_lane.value} failed"
        return payload


class LanePipelineRunner:
    """Drives spec, sql, ui, test, cicd in order for one vision."""

    def __init__(
        self,
        *,
        repository: RunRepository,
        gateway: ProviderGateway,
        default_model: str = GPT_5,
        lane_max_tokens: int = 2000,
        lane_temperature: float = 0.0,
    ) -> None:
        self.repository = repository
        self.gateway = gateway
        self.default_model = default_model
        self.lane_max_tokens = lane_max_tokens
        self.lane_temperature = lane_temperature

    def start_run(
        self,
        vision: str,
        *,
        default_model: str | None = None,
        project_name: str | None = None,
        wizard_data: Any = None,
    ) -> RunOutcome:
        """Create the run and execute all lanes synchronously."""

        vision = (vision or "").strip()
        if not vision:
            raise ValidationError("vision required")
        fallback_model = default_model or self.default_model
        if fallback_model not in ALLOWED_MODELS:
            raise ValidationError(
                f"Invalid model: {fallback_model}. Allowed: {', '.join(ALLOWED_MODELS)}",
            )

        details = self.repository.create_run(
            vision=vision,
            project_name=project_name or None,
            wizard_data=wizard_data or None,
            meta={"version": RUN_META_VERSION, "default_model": fallback_model},
        )
        run_id = details.run.run_id
        logger.info("Run %s started", run_id)

        for lane in LANE_ORDER:
            model = resolve_lane_model(lane, fallback_model)
            error = self._run_lane(run_id=run_id, lane=lane, model=model, vision=vision)
            if error is not None:
                self._finish(run_id=run_id, status=RunStatus.FAILED)
                return RunOutcome(
                    run_id=run_id,
                    status=RunStatus.FAILED,
                    failed_lane=lane,
                    error=error,
                )

        self._finish(run_id=run_id, status=RunStatus.SUCCEEDED)
        return RunOutcome(run_id=run_id, status=RunStatus.SUCCEEDED)

    def _run_lane(self, *, run_id: str, lane: Lane, model: str, vision: str) -> str | None:
        """Execute one lane; return the error text when it failed."""

        if not self.repository.mark_lane_running(run_id=run_id, lane=lane, meta={"model": model}):
            raise ConflictError(f"Lane {lane.value} of run {run_id} is not queued")
        logger.info("Run %s lane %s running on %s", run_id, lane.value, model)

        try:
            result = self.gateway.invoke(
                model,
                lane_user_prompt(lane, vision),
                system=LANE_SYSTEM_PROMPTS[lane],
                sampling=SamplingParams(
                    temperature=self.lane_temperature,
                    max_tokens=self.lane_max_tokens,
                ),
            )
            self._write_lane(
                self.repository.complete_lane(
                    run_id=run_id,
                    lane=lane,
                    output=parse_lane_output(result.text),
                    meta={"model": model, "provider": result.provider.value},
                ),
                run_id=run_id,
                lane=lane,
            )
        except ProviderError as exc:
            logger.warning("Run %s lane %s failed: %s", run_id, lane.value, exc)
            return self._fail_lane(run_id=run_id, lane=lane, model=model, error=str(exc))
        except ConflictError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Run %s lane %s crashed", run_id, lane.value)
            return self._fail_lane(
                run_id=run_id,
                lane=lane,
                model=model,
                error=f"{type(exc).__name__}: {exc}",
            )

        logger.info("Run %s lane %s succeeded", run_id, lane.value)
        return None

    def _fail_lane(self, *, run_id: str, lane: Lane, model: str, error: str) -> str:
        self._write_lane(
            self.repository.fail_lane(
                run_id=run_id,
                lane=lane,
                meta={"model": model, "error": error},
            ),
            run_id=run_id,
            lane=lane,
        )
        return error

    def _write_lane(self, written: bool, *, run_id: str, lane: Lane) -> None:
        if not written:
            raise ConflictError(f"Lane {lane.value} of run {run_id} is not running")

    def _finish(self, *, run_id: str, status: RunStatus) -> None:
        if not self.repository.finish_run(run_id=run_id, status=status):
            raise ConflictError(f"Run {run_id} is no longer running")
        logger.info("Run %s %s", run_id, status.value)
