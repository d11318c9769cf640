"""Deterministic execution failure classification for worker retry policy."""

from __future__ import annotations

from dataclasses import dataclass

from arch_lanes.errors import JobInputError, JobTimeoutError
from arch_lanes.gateway.models import ProviderError, ProviderErrorReason
from arch_lanes.orchestrator.models import FailureClass

JOB_FAILURE_CLASSIFIER_VERSION = 1

_TRANSIENT_HTTP_STATUSES = frozenset({408, 409, 425, 429})

NON_RETRYABLE_FAILURE_CLASSES = frozenset({FailureClass.INPUT_CONTRACT_ERROR})


@dataclass(slots=True)
class JobFailureClassification:
    """Normalized failure classification result."""

    failure_class: FailureClass
    reason_code: str
    provider: str | None = None
    status: int | None = None

    @property
    def retryable(self) -> bool:
        return self.failure_class not in NON_RETRYABLE_FAILURE_CLASSES

    def to_event_details(self) -> dict[str, object]:
        return {
            "classifier_version": JOB_FAILURE_CLASSIFIER_VERSION,
            "failure_class": self.failure_class.value,
            "reason_code": self.reason_code,
            "provider": self.provider,
            "status": self.status,
        }


def classify_job_failure(error: BaseException) -> JobFailureClassification:
    """Map an execution exception to a failure class and reason code."""

    if isinstance(error, JobTimeoutError):
        return JobFailureClassification(
            failure_class=FailureClass.TIMEOUT,
            reason_code=f"{error.tool}_timeout",
        )
    if isinstance(error, JobInputError):
        return JobFailureClassification(
            failure_class=FailureClass.INPUT_CONTRACT_ERROR,
            reason_code="job_params_invalid",
        )
    if isinstance(error, ProviderError):
        return _classify_provider_error(error)
    return JobFailureClassification(
        failure_class=FailureClass.INTERNAL_ERROR,
        reason_code=type(error).__name__,
    )


def _classify_provider_error(error: ProviderError) -> JobFailureClassification:
    if error.reason == ProviderErrorReason.CREDENTIALS_MISSING:
        return JobFailureClassification(
            failure_class=FailureClass.CREDENTIALS_MISSING,
            reason_code=f"{error.provider}_credentials_missing",
            provider=error.provider,
        )
    if error.reason == ProviderErrorReason.TRANSPORT:
        return JobFailureClassification(
            failure_class=FailureClass.PROVIDER_TRANSIENT,
            reason_code=f"{error.provider}_transport",
            provider=error.provider,
        )
    if error.reason == ProviderErrorReason.MODEL_NOT_ALLOWED:
        return JobFailureClassification(
            failure_class=FailureClass.PROVIDER_REJECTED,
            reason_code="model_not_allowed",
            provider=error.provider,
        )

    status = error.status
    if status is not None and (status >= 500 or status in _TRANSIENT_HTTP_STATUSES):
        return JobFailureClassification(
            failure_class=FailureClass.PROVIDER_TRANSIENT,
            reason_code=f"{error.provider}_http_{status}",
            provider=error.provider,
            status=status,
        )
    return JobFailureClassification(
        failure_class=FailureClass.PROVIDER_REJECTED,
        reason_code=f"{error.provider}_http_{status}",
        provider=error.provider,
        status=status,
    )
