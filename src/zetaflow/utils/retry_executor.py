"""
Retry utility for fallible async source calls.

Provides exponential backoff with a per-attempt timeout, short-circuiting on
failures that retrying cannot fix. The same executor serves chain-native,
cross-chain registry and token metadata calls; only the policy and the
non-retryable predicate differ between call sites.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from ..errors import SearchErrorType, SourceError, classify_exception, is_non_retryable, status_of

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Retry settings for one call site.

    Attributes:
        max_retries: Retries after the first attempt (0 disables retrying)
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay, in seconds
        backoff_factor: Multiplier applied per attempt
        timeout: Per-attempt timeout in seconds (None disables it)
    """
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    timeout: float | None = 10.0

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError(f"max_retries must not be negative, got {self.max_retries}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must not be negative")
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be at least 1, got {self.backoff_factor}")
        if self.timeout is not None and self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given 0-based attempt."""
        return min(self.base_delay * (self.backoff_factor ** attempt), self.max_delay)


class RetryExecutor:
    """Runs async operations under a retry policy."""

    def __init__(
        self,
        default_policy: RetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Initialize the executor.

        Args:
            default_policy: Policy used when a call does not pass its own
            sleep: Coroutine used for backoff delays (injectable for tests)
        """
        self.default_policy = default_policy or RetryPolicy()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy | None = None,
        operation_name: str = "operation",
        non_retryable: Callable[[BaseException], bool] = is_non_retryable,
    ) -> T:
        """
        Execute an operation, retrying retryable failures with backoff.

        Args:
            operation: Zero-argument callable returning a fresh awaitable per attempt
            policy: Retry policy for this call site
            operation_name: Name used in logs and in the wrapped error
            non_retryable: Predicate deciding which failures are final

        Returns:
            The operation's result

        Raises:
            SourceError: The last failure, wrapped with the operation name
        """
        policy = policy or self.default_policy
        attempts = policy.max_retries + 1
        last_error: BaseException | None = None

        for attempt in range(attempts):
            try:
                if policy.timeout is None:
                    return await operation()
                return await asyncio.wait_for(operation(), timeout=policy.timeout)
            except asyncio.TimeoutError as e:
                # Timeouts are retryable up to the policy limit
                last_error = SourceError(
                    SearchErrorType.TIMEOUT,
                    f"timed out after {policy.timeout}s",
                )
                last_error.__cause__ = e
            except Exception as e:
                last_error = e
                if non_retryable(e):
                    raise self._wrap(e, operation_name) from e

            if attempt + 1 >= attempts:
                break

            delay = policy.delay_for(attempt)
            logger.warning(
                f"{operation_name} failed (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay:.2f}s: {last_error}"
            )
            await self._sleep(delay)

        logger.error(f"{operation_name} failed after {attempts} attempt(s): {last_error}")
        raise self._wrap(last_error, operation_name) from last_error

    @staticmethod
    def _wrap(error: BaseException | None, operation_name: str) -> SourceError:
        """Wrap a failure with the operation it came from."""
        if error is None:
            return SourceError(SearchErrorType.UNKNOWN, "no attempt was made", operation=operation_name)

        match error:
            case SourceError():
                message = error.args[0] if error.args else ""
                return SourceError(
                    error.error_type,
                    message,
                    status_code=error.status_code,
                    operation=operation_name,
                )
            case _:
                return SourceError(
                    classify_exception(error),
                    str(error) or type(error).__name__,
                    status_code=status_of(error),
                    operation=operation_name,
                )
