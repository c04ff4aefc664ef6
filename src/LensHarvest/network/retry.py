"""Tenacity retry policy for the polite transport.

Provides:
- :class:`RetryOptions`: per-failure-class retry switches a caller can override
- :class:`AttemptFailed`: carrier exception that lets tenacity see a failure value
- :func:`create_retry_policy`: fixed-delay, attempt-bounded ``Retrying`` controller

Retry decisions are made on failure *classes* rather than raw HTTP codes:
404 is not retried unless ``retry_not_found`` is set, every other status,
timeout and transport error is retried by default.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from LensHarvest.failures import (
    Failure,
    HttpStatusFailure,
    NotFoundFailure,
    RequestErrorFailure,
    RequestTimeoutFailure,
)

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryOptions:
    """Which failure classes are worth another attempt."""

    retry_not_found: bool = False
    retry_failed: bool = True
    retry_timeout: bool = True
    retry_error: bool = True

    def should_retry(self, failure: Failure) -> bool:
        if isinstance(failure, NotFoundFailure):
            return self.retry_not_found
        if isinstance(failure, HttpStatusFailure):
            return self.retry_failed
        if isinstance(failure, RequestTimeoutFailure):
            return self.retry_timeout
        if isinstance(failure, RequestErrorFailure):
            return self.retry_error
        return False


DEFAULT_RETRY_OPTIONS = RetryOptions()


class AttemptFailed(Exception):
    """Raised inside a retry loop to hand a failure value to tenacity."""

    def __init__(self, failure: Failure) -> None:
        super().__init__(str(failure))
        self.failure = failure


def _log_before_sleep(max_attempts: int) -> Callable[[RetryCallState], None]:
    def _before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        exc = outcome.exception() if outcome is not None else None
        failure = getattr(exc, "failure", None)
        next_action = retry_state.next_action
        delay = next_action.sleep if next_action is not None else None
        LOGGER.warning(
            "Retrying request (%d/%d): %s",
            retry_state.attempt_number,
            max_attempts,
            failure if failure is not None else exc,
            extra={
                "attempt": retry_state.attempt_number,
                "max_attempts": max_attempts,
                "failure_kind": getattr(failure, "kind", None),
                "sleep_s": delay,
            },
        )

    return _before_sleep


def create_retry_policy(
    *,
    max_attempts: int,
    delay_seconds: float,
    options: RetryOptions = DEFAULT_RETRY_OPTIONS,
    sleep: Callable[[float], None] = time.sleep,
) -> Retrying:
    """Create the Tenacity controller used by :class:`PoliteClient`.

    Args:
        max_attempts: Total attempts (first try plus retries), at least 1.
        delay_seconds: Fixed sleep between attempts.
        options: Per-class retry switches.
        sleep: Sleep function (injectable for tests).

    Returns:
        Retrying object that re-raises the last :class:`AttemptFailed`.

    Example:
        >>> policy = create_retry_policy(max_attempts=3, delay_seconds=4.5)
        >>> for attempt in policy:
        ...     with attempt:
        ...         response = send_once(url)
    """

    def _retryable(exc: BaseException) -> bool:
        return isinstance(exc, AttemptFailed) and options.should_retry(exc.failure)

    max_attempts = max(1, int(max_attempts))
    return Retrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_fixed(max(0.0, delay_seconds)),
        retry=retry_if_exception(_retryable),
        sleep=sleep,
        before_sleep=_log_before_sleep(max_attempts),
        reraise=True,
    )
