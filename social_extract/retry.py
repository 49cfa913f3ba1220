from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """
    Backoff policy for one remote dependency.

    max_attempts includes the first call. Delays double from base_delay_seconds up to
    max_delay_seconds, a server Retry-After hint can only lengthen a delay (capped by
    retry_after_cap_seconds, 0 = uncapped), and jitter_ratio spreads the result.
    """

    max_attempts: int = 3
    base_delay_seconds: float = 0.5
    max_delay_seconds: float = 10.0
    jitter_ratio: float = 0.25
    retry_after_cap_seconds: float = 30.0

    def __post_init__(self) -> None:
        problems: list[str] = []
        if self.max_attempts < 1:
            problems.append("max_attempts must be >= 1")
        if self.base_delay_seconds < 0:
            problems.append("base_delay_seconds must be >= 0")
        if self.max_delay_seconds < self.base_delay_seconds:
            problems.append("max_delay_seconds must be >= base_delay_seconds")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            problems.append("jitter_ratio must be between 0 and 1")
        if self.retry_after_cap_seconds < 0:
            problems.append("retry_after_cap_seconds must be >= 0")
        if problems:
            raise ValueError("; ".join(problems))

    def capped_retry_after(self, hint: float | None) -> float | None:
        if hint is None or hint < 0:
            return None
        if self.retry_after_cap_seconds > 0:
            return min(float(hint), self.retry_after_cap_seconds)
        return float(hint)

    def delay_for(self, failure_attempt: int, retry_after: float | None = None) -> float:
        delay = compute_backoff_seconds(failure_attempt, self)
        hint = self.capped_retry_after(retry_after)
        if hint is not None:
            delay = max(delay, hint)
        if delay > 0 and self.jitter_ratio > 0:
            delay *= random.uniform(1.0 - self.jitter_ratio, 1.0 + self.jitter_ratio)
        return max(0.0, delay)


@dataclass(frozen=True)
class RetryEvent:
    """Emitted before each sleep so callers can log the retry."""

    operation: str
    failure_attempt: int
    next_attempt: int
    max_attempts: int
    delay_seconds: float
    retry_after_seconds: float | None
    reason: str | None
    error_type: str
    error_message: str


IsRetryableFn = Callable[[BaseException], tuple[bool, float | None, str | None]]
OnRetryFn = Callable[[RetryEvent], None]
SleepFn = Callable[[float], Awaitable[None]]


def compute_backoff_seconds(failure_attempt: int, cfg: RetryConfig) -> float:
    """Un-jittered delay after the given failure (1 => base delay)."""
    steps = max(0, int(failure_attempt) - 1)
    return min(cfg.max_delay_seconds, cfg.base_delay_seconds * (2**steps))


async def call_with_retries(
    fn: Callable[[], Awaitable[T]],
    *,
    cfg: RetryConfig,
    is_retryable: IsRetryableFn,
    operation: str,
    on_retry: OnRetryFn | None = None,
    sleep_fn: SleepFn | None = None,
) -> T:
    """
    Await fn() and retry on failures that is_retryable() accepts.

    Non-retryable failures and the failure of the last attempt propagate unchanged.
    Cancellation is never retried.
    """
    label = (operation or "").strip() or "operation"
    sleep = sleep_fn or asyncio.sleep

    failures = 0
    while True:
        try:
            return await fn()
        except Exception as exc:
            failures += 1
            retryable, retry_after, reason = is_retryable(exc)
            if not retryable or failures >= cfg.max_attempts:
                raise

            delay = cfg.delay_for(failures, retry_after)
            if on_retry is not None:
                on_retry(
                    RetryEvent(
                        operation=label,
                        failure_attempt=failures,
                        next_attempt=failures + 1,
                        max_attempts=cfg.max_attempts,
                        delay_seconds=delay,
                        retry_after_seconds=cfg.capped_retry_after(retry_after),
                        reason=reason,
                        error_type=type(exc).__name__,
                        error_message=str(exc).strip(),
                    )
                )
            if delay > 0:
                await sleep(delay)
