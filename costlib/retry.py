"""
Retry policy and the attempt-with-retry primitive.

A RetryPolicy decides whether a failure is retryable and how long to wait;
attempt_with_retry runs a callable under a policy using tenacity.

Policy for cost queries:
- Throttled (HTTP 429): fixed 10s wait
- Server error (5xx): min(60, 2 ** attempt) seconds
- Anything else: raised immediately
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar

from tenacity import (
    RetryCallState,
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
)

from .constants import (
    QUERY_MAX_ATTEMPTS,
    SERVER_ERROR_MAX_DELAY_SECONDS,
    THROTTLE_DELAY_SECONDS,
    THROTTLE_MESSAGE_MARKERS,
    THROTTLE_STATUS_CODE,
)

logger = logging.getLogger(__name__)

T = TypeVar('T')

THROTTLED = "throttled"
SERVER_ERROR = "server_error"


def _status_code(exc: BaseException) -> Optional[int]:
    status = getattr(exc, 'status_code', None)
    if status is None:
        status = getattr(exc, 'status', None)
    return status if isinstance(status, int) else None


def classify_failure(exc: BaseException) -> Optional[str]:
    """
    Classify a failed attempt.

    The structured status code wins when the exception carries one; the
    message text is only inspected for throttling markers when it does not.

    Returns:
        THROTTLED, SERVER_ERROR, or None when the failure is not transient
    """
    status = _status_code(exc)
    if status is not None:
        if status == THROTTLE_STATUS_CODE:
            return THROTTLED
        if 500 <= status <= 599:
            return SERVER_ERROR
        return None

    message = str(exc).lower()
    if any(marker in message for marker in THROTTLE_MESSAGE_MARKERS):
        return THROTTLED
    return None


def query_delay(kind: str, attempt: int) -> float:
    """Seconds to wait after failed attempt number `attempt` (1-based)."""
    if kind == THROTTLED:
        return THROTTLE_DELAY_SECONDS
    return min(SERVER_ERROR_MAX_DELAY_SECONDS, 2 ** attempt)


@dataclass
class RetryPolicy:
    """
    Retry policy.

    Attributes:
        max_attempts: Total attempts including the first one
        classify: Maps an exception to a failure kind, or None if not retryable
        delay: Maps (kind, attempt number) to seconds to wait
    """
    max_attempts: int = QUERY_MAX_ATTEMPTS
    classify: Callable[[BaseException], Optional[str]] = classify_failure
    delay: Callable[[str, int], float] = query_delay

    def is_retryable(self, exc: BaseException) -> bool:
        return self.classify(exc) is not None

    def wait_for(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        kind = self.classify(exc) if exc is not None else None
        if kind is None:
            return 0
        return self.delay(kind, retry_state.attempt_number)


def attempt_with_retry(
    func: Callable[..., T],
    policy: RetryPolicy,
    *args: Any,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any
) -> T:
    """
    Call func under policy, re-raising the last error once attempts run out.

    Example:
        attempt_with_retry(client.query.usage, RetryPolicy(), scope=s, parameters=q)
    """
    retryer = Retrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=policy.wait_for,
        retry=retry_if_exception(policy.is_retryable),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retryer(func, *args, **kwargs)
