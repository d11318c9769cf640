"""FastAPI boundary over runs, jobs, and direct dispatch."""

from __future__ import annotations

import hmac
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from arch_lanes import __version__
from arch_lanes.api.cors import build_cors_headers
from arch_lanes.api.schemas import (
    DispatchRequest,
    EnqueueJobRequest,
    ExecuteJobRequest,
    RouteRequest,
    SubmitRunRequest,
)
from arch_lanes.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from arch_lanes.gateway.models import ProviderError
from arch_lanes.gateway.routing import ChatMessage
from arch_lanes.orchestrator.services import EnqueueJob
from arch_lanes.wiring import Services

logger = logging.getLogger(__name__)


def create_app(services: Services) -> FastAPI:
    """Build the app around an already wired service graph."""

    settings = services.settings
    app = FastAPI(title="arch-lanes", version=__version__)
    app.state.services = services

    def cors_for(request: Request) -> dict[str, str]:
        return build_cors_headers(request.headers.get("origin"), settings.api.cors_origins)

    @app.middleware("http")
    async def cors_middleware(
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=cors_for(request))
        response = await call_next(request)
        response.headers.update(cors_for(request))
        return response

    def _error(status_code: int, message: str, **extra: Any) -> JSONResponse:
        return JSONResponse(status_code=status_code, content={"error": message, **extra})

    @app.exception_handler(ValidationError)
    async def _validation(_: Request, exc: ValidationError) -> JSONResponse:
        return _error(400, str(exc))

    @app.exception_handler(RequestValidationError)
    async def _request_validation(_: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(400, "Invalid request body", details=jsonable_encoder(exc.errors()))

    @app.exception_handler(AuthorizationError)
    async def _unauthorized(_: Request, exc: AuthorizationError) -> JSONResponse:
        return _error(401, str(exc) or "Unauthorized")

    @app.exception_handler(NotFoundError)
    async def _not_found(_: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(ConflictError)
    async def _conflict(_: Request, exc: ConflictError) -> JSONResponse:
        return _error(409, str(exc))

    @app.exception_handler(ProviderError)
    async def _provider(_: Request, exc: ProviderError) -> JSONResponse:
        return _error(502, str(exc), provider=exc.provider, status=exc.status)

    @app.exception_handler(Exception)
    async def _internal(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        response = _error(500, "Internal server error")
        # Runs outside the middleware stack, so CORS headers are added here.
        response.headers.update(cors_for(request))
        return response

    def caller_identity(authorization: str | None = Header(default=None)) -> str:
        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            raise AuthorizationError("Missing bearer token")
        identity = settings.api.api_tokens.get(token.strip())
        if identity is None:
            raise AuthorizationError("Invalid bearer token")
        return identity

    def internal_caller(x_internal_key: str | None = Header(default=None)) -> None:
        expected = settings.api.internal_key
        if not expected or not x_internal_key:
            raise AuthorizationError("Unauthorized")
        if not hmac.compare_digest(x_internal_key.encode(), expected.encode()):
            raise AuthorizationError("Unauthorized")

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.post("/runs")
    def submit_run(body: SubmitRunRequest) -> dict[str, Any]:
        outcome = services.runner.start_run(
            body.vision,
            default_model=body.default_model,
            project_name=body.project_name,
            wizard_data=body.wizard_data,
        )
        return outcome.to_response_dict()

    @app.get("/runs/{run_id}")
    def get_run(run_id: str) -> dict[str, Any]:
        details = services.runs.get_run(run_id=run_id)
        if details is None:
            raise NotFoundError(f"Run not found: {run_id}")
        return details.to_public_dict()

    @app.post("/jobs", status_code=201)
    def enqueue_job(
        body: EnqueueJobRequest,
        identity: str = Depends(caller_identity),
    ) -> dict[str, Any]:
        job = services.job_service.enqueue(
            EnqueueJob(
                owner_id=identity,
                tool=body.tool,
                params=body.params,
                model=body.model,
                priority=body.priority,
                metadata=body.metadata,
            ),
        )
        return {
            "job_id": job.job_id,
            "tool": job.tool.value,
            "status": job.status.value,
            "priority": job.priority,
            "created_at": job.created_at.isoformat(),
        }

    @app.post("/jobs/execute")
    def execute_job(
        body: ExecuteJobRequest,
        identity: str = Depends(caller_identity),
    ) -> dict[str, Any]:
        report = services.job_service.execute_job(owner_id=identity, job_id=body.job_id)
        return report.to_response_dict()

    @app.post("/jobs/process-next", dependencies=[Depends(internal_caller)])
    def process_next() -> dict[str, Any]:
        return services.worker.poll_once().to_response_dict()

    @app.get("/jobs/status")
    def job_status(
        job_id: str = "",
        identity: str = Depends(caller_identity),
    ) -> dict[str, Any]:
        job = services.job_service.get_status(owner_id=identity, job_id=job_id)
        return job.to_public_dict()

    @app.post("/dispatch")
    def dispatch(body: DispatchRequest) -> dict[str, Any]:
        result = services.dispatch.dispatch(
            model=body.model,
            input_text=body.input,
            system=body.system,
            temperature=body.temperature,
            max_tokens=body.max_tokens,
        )
        return {
            "success": True,
            "model": result.model,
            "provider": result.provider,
            "output_text": result.output_text,
            "raw": result.raw,
        }

    @app.post("/route")
    def route(body: RouteRequest) -> dict[str, Any]:
        result = services.dispatch.route(
            messages=[ChatMessage(role=item.role, content=item.content) for item in body.messages],
            hint_model=body.hint_model,
            max_tokens=body.max_tokens,
        )
        return {
            "success": True,
            "model": result.model,
            "provider": result.provider,
            "output_text": result.output_text,
            "raw": result.raw,
        }

    return app
