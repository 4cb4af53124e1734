"""
Utilities
=========

Retry helpers used across the application.

A `RetryPolicy` describes how many attempts an operation gets, how long to
wait between attempts and which exceptions are worth another attempt.
`call_with_retry` applies a policy to a single call; the `retry` decorator
builds the policy from ``self.settings`` for client methods, the same way
every network-facing class in this project is configured.

Anything that is not retryable propagates immediately. Exhausting the
attempts raises `RetryExhausted`, chained to the last underlying error.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from functools import wraps
from typing import Callable, Type, TypeVar

import structlog

from .errors import RetryExhausted, TransportError

log = structlog.get_logger(__name__)
T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt a call and which failures to retry."""

    max_attempts: int = 3
    delay: float = 1.5
    retryable: tuple[Type[BaseException], ...] = (TransportError,)

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.delay < 0:
            raise ValueError("delay must be >= 0")

    def is_retryable(self, exc: BaseException) -> bool:
        return isinstance(exc, self.retryable)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    operation: str | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Call ``func`` until it succeeds or the policy gives up.

    Args:
        func: Zero-argument callable performing one attempt.
        policy: Attempt count, inter-attempt delay and retryable exceptions.
        operation: Name used in log messages and in `RetryExhausted`.
        sleep: Injectable sleep function (primarily for tests).
    """
    name = operation or getattr(func, "__name__", "operation")
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return func()
        except Exception as e:
            if not policy.is_retryable(e):
                raise
            if attempt == policy.max_attempts:
                log.error(
                    "Retries exhausted",
                    operation=name,
                    attempts=attempt,
                    error=str(e),
                )
                raise RetryExhausted(name, attempt, e) from e
            log.warning(
                "Attempt failed; retrying",
                operation=name,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                error=str(e),
                delay_seconds=policy.delay,
            )
            sleep(policy.delay)
    # Unreachable: max_attempts >= 1 is enforced by RetryPolicy.
    raise RuntimeError("Retry loop exited unexpectedly.")


def retry(
    retryable_exceptions: tuple[Type[Exception], ...],
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    A decorator that retries a method call on specific exceptions.

    The policy is read from ``self.settings`` (``MAX_RETRIES`` and
    ``RETRY_DELAY_SECONDS``) at call time.

    Args:
        retryable_exceptions: A tuple of exception types that should trigger a retry.
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(self, *args, **kwargs) -> T:
            policy = RetryPolicy(
                max_attempts=self.settings.MAX_RETRIES,
                delay=self.settings.RETRY_DELAY_SECONDS,
                retryable=retryable_exceptions,
            )
            return call_with_retry(
                lambda: func(self, *args, **kwargs),
                policy,
                operation=func.__name__,
                sleep=_sleep,
            )

        return wrapper

    return decorator


def _sleep(seconds: float) -> None:
    """Module-level sleep hook so tests can patch out retry delays."""
    time.sleep(seconds)
