"""
Timeout + retry policy for store operations.

A `RetryPolicy` is two layers executed as one unit:

    timeout (per call, default 60s)
      └── retry (tenacity AsyncRetrying, built once and cached per repository class)
            └── action()  # zero-arg coroutine factory, called once per attempt

Retry rules:
  - Only store-originated errors are candidates (sqlalchemy DBAPIError / StoreFaultError).
  - A candidate is retried when its error code is one of the concurrency codes, or its
    message contains the deadlock indicator. Everything else propagates on first failure.
  - Backoff is linear: retry N waits N*3 seconds for a concurrency code, N seconds otherwise.
  - When the retry callback sees attempt == max_retry_count it raises RetriesExhaustedError.

`execute()` never raises for an ordinary failure; it captures the outcome in a
`PolicyResult`, which `verifier.verify_policy_result()` turns into a value or an error.
Task cancellation (asyncio.CancelledError) is never captured.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from resilient_repo.exceptions.base import OperationCancelledError, RetriesExhaustedError
from resilient_repo.exceptions.classifier import (
    DEADLOCK_INDICATOR,
    DEFAULT_CONCURRENCY_CODES,
    FaultCategory,
    StoreFault,
    classify_store_error,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRY_COUNT = 11
DEFAULT_TIMEOUT_SECONDS = 60
CONCURRENCY_BACKOFF_FACTOR = 3


class Outcome(str, Enum):
    SUCCESSFUL = "successful"
    FAILURE = "failure"


@dataclass(frozen=True)
class PolicyResult(Generic[T]):
    """Captured outcome of one policy execution."""

    outcome: Outcome
    result: T | None = None
    final_exception: Exception | None = None
    attempts: int = 0
    timed_out: bool = False

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.SUCCESSFUL


class RetryPolicy:
    """
    Composite timeout + retry policy.

    Instances are read-only after construction and safe to share between concurrent
    executions: every execution works on its own copy of the tenacity controller, so
    attempt counters and wait schedules never leak between callers.

    Args:
        name: Name used in log entries and error messages (the repository class name).
        max_retry_count: Retry ceiling, >= 1.
        concurrency_codes: Store error codes that denote concurrency conflicts. Non-empty.
        deadlock_indicator: Substring that marks a store error message as a deadlock.
        timeout_seconds: Default outer timeout when a call does not pass its own.
        logger: Default logger for retry entries.
        sleep: Coroutine function used for backoff waits (injectable for tests).
    """

    def __init__(
        self,
        name: str,
        *,
        max_retry_count: int = DEFAULT_MAX_RETRY_COUNT,
        concurrency_codes: Iterable[int | str] = DEFAULT_CONCURRENCY_CODES,
        deadlock_indicator: str = DEADLOCK_INDICATOR,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        logger: logging.Logger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_retry_count < 1:
            raise ValueError(f"max_retry_count must be >= 1, got {max_retry_count}")
        codes = frozenset(concurrency_codes)
        if not codes:
            raise ValueError("concurrency_codes must not be empty")

        self.name = name
        self.max_retry_count = max_retry_count
        self.concurrency_codes = codes
        self.deadlock_indicator = deadlock_indicator
        self.timeout_seconds = timeout_seconds
        self.logger = logger if logger is not None else logging.getLogger(__name__)

        # Stop one attempt past the ceiling; the retry callback raises at the ceiling itself.
        self._retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retry_count + 1),
            wait=self.backoff,
            retry=retry_if_exception(self.is_retryable),
            before_sleep=partial(self._on_retry, self.logger),
            sleep=sleep,
            reraise=True,
        )

    # =================================================================================================================
    # Classification / backoff
    # =================================================================================================================

    def classify(self, exc: BaseException | None) -> StoreFault | None:
        if exc is None:
            return None
        return classify_store_error(exc, self.concurrency_codes, self.deadlock_indicator)

    def is_retryable(self, exc: BaseException) -> bool:
        match self.classify(exc):
            case StoreFault(category=FaultCategory.CONCURRENCY | FaultCategory.DEADLOCK):
                return True
            case _:
                return False

    def wait_seconds(self, attempt: int, exc: BaseException | None) -> float:
        """Linear backoff: attempt * 3 for concurrency codes, attempt otherwise."""
        match self.classify(exc):
            case StoreFault(category=FaultCategory.CONCURRENCY):
                return float(attempt * CONCURRENCY_BACKOFF_FACTOR)
            case _:
                return float(attempt)

    def backoff(self, retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        return self.wait_seconds(retry_state.attempt_number, exc)

    def _on_retry(self, log: logging.Logger, retry_state: RetryCallState) -> None:
        attempt = retry_state.attempt_number
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0

        log.info(
            "%s - Retry attempt: %d, next retry in %d ms",
            self.name,
            attempt,
            int(wait * 1000),
            exc_info=exc,
            extra={
                "repository": self.name,
                "attempt": attempt,
                "wait_seconds": wait,
            },
        )

        # Hard stop at the ceiling.
        if attempt == self.max_retry_count:
            raise RetriesExhaustedError(
                f"Retries exceeded for {self.name} after {attempt} attempts",
                repository=self.name,
                attempts=attempt,
            ) from exc

    # =================================================================================================================
    # Execution
    # =================================================================================================================

    async def execute(
        self,
        action: Callable[[], Awaitable[T]],
        timeout_seconds: float | None = None,
        cancel_event: asyncio.Event | None = None,
        log: logging.Logger | None = None,
    ) -> PolicyResult[T]:
        """
        Run `action` under timeout(retry(action)) and capture the outcome.

        Args:
            action: Zero-argument coroutine factory; invoked once per attempt.
            timeout_seconds: Outer timeout for the whole unit (all attempts and waits).
            cancel_event: When set, the execution stops promptly with OperationCancelledError.
            log: Logger for retry entries of this execution (defaults to the policy logger).

        Returns:
            PolicyResult with either the result or the final exception.
        """
        timeout = self.timeout_seconds if timeout_seconds is None else timeout_seconds
        retrying = self._retrying.copy(before_sleep=partial(self._on_retry, log or self.logger))
        attempts = 0

        async def attempt() -> T:
            nonlocal attempts
            attempts += 1
            return await action()

        deadline = asyncio.timeout(timeout)
        try:
            async with deadline:
                result = await self._run_cancellable(retrying(attempt), cancel_event)
        except Exception as exc:
            # A TimeoutError raised by the action itself leaves the deadline unexpired
            return PolicyResult(
                Outcome.FAILURE, final_exception=exc, attempts=attempts, timed_out=deadline.expired()
            )

        return PolicyResult(Outcome.SUCCESSFUL, result=result, attempts=attempts)

    async def _run_cancellable(self, coro: Awaitable[T], cancel_event: asyncio.Event | None) -> T:
        if cancel_event is None:
            return await coro

        task = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
                await asyncio.gather(task, return_exceptions=True)

        if task.cancelled():
            raise OperationCancelledError(f"Operation cancelled for {self.name}", repository=self.name)
        return task.result()


def build_retry_policy(
    name: str,
    *,
    max_retry_count: int = DEFAULT_MAX_RETRY_COUNT,
    concurrency_codes: Iterable[int | str] = DEFAULT_CONCURRENCY_CODES,
    deadlock_indicator: str = DEADLOCK_INDICATOR,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    logger: logging.Logger | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> RetryPolicy:
    """Build a timeout + retry policy. See RetryPolicy for the arguments."""
    return RetryPolicy(
        name,
        max_retry_count=max_retry_count,
        concurrency_codes=concurrency_codes,
        deadlock_indicator=deadlock_indicator,
        timeout_seconds=timeout_seconds,
        logger=logger,
        sleep=sleep,
    )


# =================================================================================================================
# Process-wide cache: one policy per repository class
# =================================================================================================================

_POLICIES: dict[type, RetryPolicy] = {}
_POLICIES_LOCK = threading.Lock()


def get_or_build_policy(owner: type, factory: Callable[[], RetryPolicy]) -> RetryPolicy:
    """
    Return the cached policy for `owner`, building it with `factory` on first use.

    Double-checked under a lock so concurrent first use builds exactly one policy.
    """
    policy = _POLICIES.get(owner)
    if policy is not None:
        return policy

    with _POLICIES_LOCK:
        policy = _POLICIES.get(owner)
        if policy is None:
            policy = factory()
            _POLICIES[owner] = policy
            logger.debug(
                "policy.cache.built",
                extra={"repository": owner.__name__, "max_retry_count": policy.max_retry_count},
            )
        return policy


def reset_policy_cache() -> None:
    """Drop every cached policy (tests, process teardown)."""
    with _POLICIES_LOCK:
        _POLICIES.clear()
