# services/fmp/retry.py
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import wraps
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _retry_everything(_exc: BaseException) -> bool:
    return True


class RetryExhaustedError(Exception):
    """All attempts failed with retryable errors; `last_error` is the final one."""

    def __init__(self, describe: str, attempts: int, last_error: Optional[BaseException]):
        super().__init__(f"{describe} failed after {attempts} attempts: {last_error}")
        self.attempts = attempts
        self.last_error = last_error


@dataclass(frozen=True)
class RetryPolicy:
    """
    Bounded exponential backoff with jitter.

    Delay before retry n (n = 0 for the first retry):
        base_delay_s * 2**n + uniform(0, max_jitter_s)

    `sleep` is injectable so tests can drive the schedule with a fake clock.
    """

    max_attempts: int = 3
    base_delay_s: float = 0.1
    max_jitter_s: float = 0.1
    retry_on: Callable[[BaseException], bool] = _retry_everything
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def wait_strategy(self):
        return wait_exponential(multiplier=self.base_delay_s, exp_base=2) + wait_random(
            0, self.max_jitter_s
        )


def _log_before_sleep(describe: str, max_attempts: int) -> Callable[[RetryCallState], None]:
    def _log(state: RetryCallState) -> None:
        exc = state.outcome.exception() if state.outcome else None
        delay = state.next_action.sleep if state.next_action else 0.0
        logger.warning(
            "%s attempt %d/%d failed (%s), retrying in %.0fms",
            describe,
            state.attempt_number,
            max_attempts,
            exc,
            delay * 1000,
        )

    return _log


async def run_with_retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    describe: str = "operation",
) -> T:
    """
    Await `fn()` under `policy`.

    - Exceptions rejected by `policy.retry_on` propagate immediately.
    - When every attempt fails with a retryable error, RetryExhaustedError is
      raised, chained to the last underlying error.
    """
    max_attempts = max(1, int(policy.max_attempts))
    retryer = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=policy.wait_strategy(),
        retry=retry_if_exception(policy.retry_on),
        sleep=policy.sleep,
        before_sleep=_log_before_sleep(describe, max_attempts),
        reraise=False,
    )
    try:
        return await retryer(fn)
    except RetryError as exc:
        last = exc.last_attempt.exception()
        raise RetryExhaustedError(describe, exc.last_attempt.attempt_number, last) from last


def retrying(policy: RetryPolicy, *, describe: Optional[str] = None):
    """Decorator form of run_with_retry for async functions."""

    def deco(fn: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
        label = describe or fn.__name__

        @wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            async def call() -> T:
                return await fn(*args, **kwargs)

            return await run_with_retry(call, policy, describe=label)

        return wrapper

    return deco
