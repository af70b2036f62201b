"""Retry with exponential backoff for Kubernetes API calls.

Only transient failures are retried: HTTP 5xx, 429 and connection-level
errors. 404 and 403 are terminal and surface on the first attempt.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from kubernetes.client import ApiException
from urllib3.exceptions import HTTPError as Urllib3HTTPError

if TYPE_CHECKING:
    from kubefoundry.config import KubeFoundryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_MESSAGES = ("socket hang up", "connection reset", "timed out", "network error")


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error raised by the Kubernetes client as transient or not."""
    if isinstance(error, ApiException):
        status = error.status or 0
        return status >= 500 or status == 429
    if isinstance(error, (ConnectionError, TimeoutError, Urllib3HTTPError)):
        return True
    message = str(error).lower()
    return any(fragment in message for fragment in RETRYABLE_MESSAGES)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded exponential backoff settings."""

    max_retries: int = 3
    initial_delay: float = 0.5
    max_delay: float = 5.0
    backoff_factor: float = 2.0

    @classmethod
    def from_config(cls, config: KubeFoundryConfig) -> RetryPolicy:
        return cls(
            max_retries=config.retry_max_attempts,
            initial_delay=config.retry_initial_delay,
            max_delay=config.retry_max_delay,
            backoff_factor=config.retry_backoff_factor,
        )


def with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy | None = None,
    *,
    operation_name: str = "operation",
    is_retryable: Callable[[BaseException], bool] = is_retryable_error,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call fn, retrying transient failures with exponential backoff and jitter.

    Args:
        fn: Zero-argument callable performing a single attempt.
        policy: Backoff settings; defaults to RetryPolicy().
        operation_name: Label used in log messages.
        is_retryable: Predicate deciding whether an error is worth retrying.
        sleep: Sleep function, replaceable in tests.

    Returns:
        Whatever fn returns on the first successful attempt.

    Raises:
        The last error raised by fn once attempts are exhausted, or the first
        non-retryable error.
    """
    policy = policy or RetryPolicy()
    delay = policy.initial_delay

    for attempt in range(policy.max_retries + 1):
        try:
            return fn()
        except Exception as e:
            if attempt == policy.max_retries or not is_retryable(e):
                raise
            logger.warning(
                f"Retrying {operation_name} after transient error "
                f"(attempt {attempt + 1}/{policy.max_retries}, delay {delay:.2f}s): {e}"
            )
            sleep(delay)
            jitter = random.uniform(0.85, 1.15)
            delay = min(delay * policy.backoff_factor * jitter, policy.max_delay)

    raise AssertionError("unreachable")
