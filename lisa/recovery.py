"""
Error recovery and retry with exponential backoff.

Wraps interview operations so that state is checkpointed around them and any
failure comes out as a classified InterviewError.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Generic, TypeVar

import structlog

from lisa.errors import ErrorCategory, InterviewError, classify_error
from lisa.state import InterviewState, StateStore

T = TypeVar("T")

logger = structlog.get_logger(__name__)


@dataclass
class StateSaveResult:
    """Outcome of a best-effort state save."""

    success: bool
    path: Path | None = None
    error: Exception | None = None


@dataclass
class RecoveryResult(Generic[T]):
    """Outcome of with_error_recovery().

    Attributes:
        success: Whether the operation completed
        result: Operation result when successful
        error: Classified (or transformed) error when it failed
        saved_before: Outcome of the save before the operation, if attempted
        saved_on_error: Outcome of the save after a failure, if attempted
    """

    success: bool
    result: T | None = None
    error: InterviewError | None = None
    saved_before: StateSaveResult | None = None
    saved_on_error: StateSaveResult | None = None

    @property
    def state_saved(self) -> bool:
        """True if any save attempt succeeded."""
        return any(
            attempt is not None and attempt.success
            for attempt in (self.saved_before, self.saved_on_error)
        )


async def try_save_state(store: StateStore, state: InterviewState) -> StateSaveResult:
    """Save state, logging instead of raising on failure."""
    try:
        path = await store.save(state)
        return StateSaveResult(success=True, path=path)
    except Exception as e:
        logger.warning("Failed to save recovery state", error=str(e), path=str(store.path))
        return StateSaveResult(success=False, error=e)


async def with_error_recovery(
    operation: Callable[[], Awaitable[T]],
    *,
    store: StateStore | None = None,
    state: InterviewState | None = None,
    save_before: bool = True,
    save_on_error: bool = True,
    transform_error: Callable[[Exception], InterviewError] | None = None,
) -> RecoveryResult[T]:
    """Run an operation with checkpoints around it. Never raises.

    Args:
        operation: Coroutine factory to run
        store: Where to persist ``state``
        state: State to persist before and/or after a failure
        save_before: Persist before running the operation
        save_on_error: Persist again if the operation fails
        transform_error: Custom error mapping used instead of classify_error

    Returns:
        RecoveryResult with the outcome and each save attempt
    """
    can_save = store is not None and state is not None
    saved_before = None
    if can_save and save_before:
        saved_before = await try_save_state(store, state)

    try:
        result = await operation()
        return RecoveryResult(success=True, result=result, saved_before=saved_before)
    except Exception as e:
        error = transform_error(e) if transform_error else classify_error(e)
        saved_on_error = None
        if can_save and save_on_error:
            saved_on_error = await try_save_state(store, state)
        return RecoveryResult(
            success=False,
            error=error,
            saved_before=saved_before,
            saved_on_error=saved_on_error,
        )


@dataclass
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        max_attempts: Total attempts including the first
        initial_delay: Delay before the first retry in seconds
        max_delay: Upper bound for any delay in seconds
        backoff_factor: Multiplier applied to the delay after each retry
        retryable_categories: Categories worth retrying
    """

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    retryable_categories: frozenset[ErrorCategory] = field(
        default_factory=lambda: frozenset(
            {ErrorCategory.NETWORK, ErrorCategory.TIMEOUT, ErrorCategory.PROVIDER}
        )
    )


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    config: RetryConfig | None = None,
    on_retry: Callable[[int, InterviewError, float], None] | None = None,
) -> T:
    """Run an operation, retrying recoverable failures with backoff.

    Args:
        operation: Coroutine factory to run
        config: Retry parameters (defaults to RetryConfig())
        on_retry: Called before each retry with (attempt, error, delay)

    Returns:
        The operation's result

    Raises:
        InterviewError: The classified error once retries are exhausted or the
            error is not retryable
    """
    config = config or RetryConfig()
    delay = config.initial_delay

    for attempt in range(1, config.max_attempts + 1):
        try:
            return await operation()
        except Exception as e:
            error = classify_error(e)
            should_retry = (
                attempt < config.max_attempts
                and error.recoverable
                and error.category in config.retryable_categories
            )
            if not should_retry:
                if error is e:
                    raise
                raise error from e

            logger.warning(
                "Retrying after error",
                attempt=attempt,
                max_attempts=config.max_attempts,
                category=error.category.value,
                delay=delay,
                error=error.message,
            )
            if on_retry is not None:
                on_retry(attempt, error, delay)

            await asyncio.sleep(delay)
            delay = min(delay * config.backoff_factor, config.max_delay)

    # max_attempts < 1 never runs the loop
    raise ValueError("RetryConfig.max_attempts must be at least 1")


@dataclass
class SafeExecuteResult(Generic[T]):
    """Result of safe_execute(): the operation result and checkpoint path."""

    result: T
    state_path: Path


async def safe_execute(
    operation: Callable[[], Awaitable[T]],
    store: StateStore,
    state: InterviewState,
) -> SafeExecuteResult[T]:
    """Checkpoint, then run an operation.

    The first save must succeed. If the operation fails, a second save is
    attempted and its failure is only logged.

    Raises:
        InterviewError: The classified error from the save or the operation
    """
    try:
        state_path = await store.save(state)
    except Exception as e:
        raise classify_error(e) from e

    try:
        result = await operation()
    except Exception as e:
        await try_save_state(store, state)
        error = classify_error(e)
        if error is e:
            raise
        raise error from e

    return SafeExecuteResult(result=result, state_path=state_path)
