"""Resilience helpers for the keeper's RPC traffic.

Provides:
- Bounded exponential backoff for the startup RPC probe (never unbounded)
- Per-venue circuit breakers for quote fetching
- A timeout wrapper applied to every RPC suspension point
"""

import asyncio
import random
import time
from collections.abc import Awaitable, Callable
from enum import StrEnum
from functools import wraps
from typing import ParamSpec, TypeVar

import structlog

log = structlog.get_logger()

P = ParamSpec("P")
T = TypeVar("T")


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number ``attempt`` (0-based), capped at ``max_delay``."""
    delay = base_delay * exponential_base**attempt
    if jitter:
        delay *= random.uniform(0.75, 1.25)
    return min(delay, max_delay)


def with_exponential_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    exponential_base: float = 2.0,
    jitter: bool = True,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[P, Awaitable[T]]], Callable[P, Awaitable[T]]]:
    """Call an async function up to ``max_retries`` times in total.

    Exceptions outside ``retry_on`` propagate immediately. The last
    retryable exception is re-raised once attempts run out.

    Example:
        >>> @with_exponential_backoff(max_retries=3, retry_on=(ConnectionError,))
        ... async def fetch_block_number():
        ...     return await w3.eth.block_number
    """
    if max_retries < 1:
        raise ValueError(f"max_retries must be at least 1, got {max_retries}")

    def decorator(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            attempt = 0
            while True:
                try:
                    return await func(*args, **kwargs)
                except retry_on as e:
                    attempt += 1
                    if attempt >= max_retries:
                        log.error(
                            "retry.exhausted",
                            function=func.__name__,
                            attempts=attempt,
                            error=str(e),
                        )
                        raise

                    delay = backoff_delay(
                        attempt - 1, base_delay, max_delay, exponential_base, jitter
                    )
                    log.warning(
                        "retry.scheduled",
                        function=func.__name__,
                        attempt=attempt,
                        delay=round(delay, 3),
                        error=str(e),
                    )
                    await asyncio.sleep(delay)

        return wrapper

    return decorator


class CircuitBreakerError(Exception):
    """The breaker is open; the guarded call was not made."""


class BreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Stop calling a dependency that keeps failing.

    ``failure_threshold`` consecutive failures open the breaker. Once
    ``cooldown`` seconds have passed one call at a time is let through as a
    trial (half open); other callers are refused until it settles.
    ``success_threshold`` trial successes close it again, a trial failure
    re-opens it. Cancellation is not counted as a failure.

    Example:
        >>> breaker = CircuitBreaker(failure_threshold=3, name="aerodrome")
        >>> async with breaker:
        ...     await provider.get_quote(token_in, token_out, amount_in)
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown: float = 30.0,
        success_threshold: int = 1,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self.success_threshold = success_threshold
        self.name = name
        self._clock = clock

        self.state = BreakerState.CLOSED
        self.consecutive_failures = 0
        self._trial_successes = 0
        self._opened_at: float | None = None
        self._trial_task: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self.state is BreakerState.OPEN

    @property
    def remaining_cooldown(self) -> float:
        if self._opened_at is None or self.state is not BreakerState.OPEN:
            return 0.0
        return max(0.0, self.cooldown - (self._clock() - self._opened_at))

    def reset(self) -> None:
        self.state = BreakerState.CLOSED
        self.consecutive_failures = 0
        self._trial_successes = 0
        self._opened_at = None
        self._trial_task = None

    async def __aenter__(self) -> "CircuitBreaker":
        if self.state is BreakerState.OPEN:
            if self.remaining_cooldown > 0:
                raise CircuitBreakerError(f"Circuit {self.name} is open")
            log.info("circuit_breaker.half_open", name=self.name)
            self.state = BreakerState.HALF_OPEN
            self._trial_successes = 0
        if self.state is BreakerState.HALF_OPEN:
            if self._trial_task is not None:
                raise CircuitBreakerError(f"Circuit {self.name} is half open, trial in flight")
            self._trial_task = asyncio.current_task()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._trial_task is not None and self._trial_task is asyncio.current_task():
            self._trial_task = None
        elif self.state is BreakerState.HALF_OPEN:
            # Started before the breaker opened; only the trial decides
            return
        if exc_type is None:
            self._record_success()
        elif not issubclass(exc_type, asyncio.CancelledError):
            self._record_failure()

    def _record_success(self) -> None:
        if self.state is BreakerState.HALF_OPEN:
            self._trial_successes += 1
            if self._trial_successes < self.success_threshold:
                return
            log.info("circuit_breaker.closed", name=self.name)
            self.reset()
        else:
            self.consecutive_failures = 0

    def _record_failure(self) -> None:
        self.consecutive_failures += 1
        probing = self.state is BreakerState.HALF_OPEN
        if probing or self.consecutive_failures >= self.failure_threshold:
            self.state = BreakerState.OPEN
            self._opened_at = self._clock()
            log.warning(
                "circuit_breaker.opened",
                name=self.name,
                failures=self.consecutive_failures,
                cooldown=self.cooldown,
            )


async def with_timeout(
    coro: Awaitable[T],
    timeout: float,
    error_message: str = "Operation timed out",
) -> T:
    """Await ``coro`` for at most ``timeout`` seconds.

    Raises:
        TimeoutError: With ``error_message`` when the deadline passes
    """
    try:
        return await asyncio.wait_for(coro, timeout=timeout)
    except TimeoutError as e:
        raise TimeoutError(error_message) from e
