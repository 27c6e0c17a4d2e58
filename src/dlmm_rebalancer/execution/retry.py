"""
Retry Executor - bounded-attempt, fixed-delay retry for fallible actions.

The executor is the single place where failures of on-chain actions are
interpreted and bounded. Callers never see intermediate failures, only an
ActionResult describing the final outcome.

Delays go through an injected Clock so tests can run retry sequences and
whole polling loops without real sleeps.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, List, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Clock(Protocol):
    """Suspension points of the control loop."""

    async def sleep(self, seconds: float) -> None:
        ...


class AsyncioClock:
    """Real clock backed by asyncio.sleep."""

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


@dataclass
class ManualClock:
    """
    Clock that records requested sleeps and returns immediately.

    Used by tests and tooling to advance ticks deterministically.
    """

    sleeps: List[float] = field(default_factory=list)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        # Yield control so other tasks still get scheduled
        await asyncio.sleep(0)

    @property
    def elapsed(self) -> float:
        return sum(self.sleeps)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounds for one fallible operation."""

    max_attempts: int = 3
    delay_seconds: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.delay_seconds < 0:
            raise ValueError(f"delay_seconds must be >= 0, got {self.delay_seconds}")


class RetryExhaustedError(Exception):
    """All attempts of an operation failed."""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException]):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"{operation} failed after {attempts} attempt(s): "
            f"{type(last_error).__name__ if last_error else 'unknown'}: {last_error}"
        )


@dataclass
class ActionResult(Generic[T]):
    """Final outcome of a retried action."""

    success: bool
    operation: str
    attempts: int
    value: Optional[T] = None
    error: Optional[RetryExhaustedError] = None


class RetryExecutor:
    """
    Runs async actions under a RetryPolicy.

    Usage:
        executor = RetryExecutor(clock)

        result = await executor.execute(
            "remove_position",
            lambda: submit_remove(position_id),
            RetryPolicy(max_attempts=5, delay_seconds=2.0),
        )
        if result.success:
            signature = result.value
        else:
            logger.error(str(result.error))
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        on_failure: Optional[Callable[[str, int, Exception], None]] = None,
    ) -> None:
        """
        Initialize the executor.

        Args:
            clock: Clock for inter-attempt delays (asyncio by default)
            on_failure: Optional observer called with (operation, attempt, error)
                        after every failed attempt
        """
        self._clock = clock or AsyncioClock()
        self._on_failure = on_failure

    async def execute(
        self,
        operation: str,
        action: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
    ) -> ActionResult[T]:
        """
        Invoke action until it succeeds or policy.max_attempts is reached.

        The action is called fresh on every attempt, so it should rebuild
        anything that can go stale (quotes, blockhashes, position keypairs).
        asyncio.CancelledError is not treated as a failure and propagates.
        """
        last_error: Optional[Exception] = None

        for attempt in range(1, policy.max_attempts + 1):
            try:
                value = await action()
            except Exception as e:
                last_error = e
                logger.warning(
                    f"{operation}: attempt {attempt}/{policy.max_attempts} failed: "
                    f"{type(e).__name__}: {e}"
                )
                if self._on_failure is not None:
                    self._on_failure(operation, attempt, e)

                if attempt < policy.max_attempts:
                    await self._clock.sleep(policy.delay_seconds)
                continue

            if attempt > 1:
                logger.info(f"{operation}: succeeded on attempt {attempt}")
            return ActionResult(
                success=True,
                operation=operation,
                attempts=attempt,
                value=value,
            )

        error = RetryExhaustedError(operation, policy.max_attempts, last_error)
        logger.error(str(error))
        return ActionResult(
            success=False,
            operation=operation,
            attempts=policy.max_attempts,
            error=error,
        )
