"""Retry/backoff policy for failed job attempts."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Exponential backoff with a ceiling and a bounded random addend."""

    base_seconds: float = 10.0
    cap_seconds: float = 300.0
    jitter_seconds: float = 5.0

    def base_delay(self, attempt: int) -> float:
        """Delay before jitter; non-decreasing in ``attempt``."""

        return min(self.cap_seconds, self.base_seconds * (2 ** max(attempt - 1, 0)))


@dataclass(slots=True)
class RetryDecision:
    """Decision returned by retry policy."""

    retry: bool
    delay_seconds: float
    reason: str


def decide_retry(
    *,
    attempt: int,
    max_attempts: int,
    policy: RetryPolicy,
    rng: random.Random | None = None,
) -> RetryDecision:
    """Retry while ``attempt < max_attempts``; ``attempt`` counts finished attempts."""

    if attempt >= max_attempts:
        return RetryDecision(
            retry=False,
            delay_seconds=0.0,
            reason=f"Attempts exhausted ({attempt}/{max_attempts}).",
        )
    jitter = (rng or random).random() * policy.jitter_seconds  # noqa: S311
    delay = min(
        policy.cap_seconds,
        policy.base_seconds * (2 ** max(attempt - 1, 0)) + jitter,
    )
    return RetryDecision(
        retry=True,
        delay_seconds=delay,
        reason=f"Retry {attempt + 1}/{max_attempts} after {delay:.1f}s.",
    )
