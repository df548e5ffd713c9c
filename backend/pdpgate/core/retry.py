"""
Bounded retry executor with failure classification and backoff
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from pdpgate.core.errors import (FailureKind, RetryExhaustedError,
                                 ToolInvocationError, classify_failure)
from pdpgate.core.logging_config import LoggingConfig
from pdpgate.core.metrics import pdp_retry_attempts_total

logger = LoggingConfig.get_logger(__name__)

T = TypeVar("T")

DelayFn = Callable[[int], float]
Classifier = Callable[[str], FailureKind]
SleepFn = Callable[[float], Awaitable[None]]


def linear_backoff(step: float) -> DelayFn:
    """Delay after attempt N is N * step seconds"""
    return lambda attempt: attempt * step


def fixed_delay(seconds: float) -> DelayFn:
    """Same delay after every attempt"""
    return lambda attempt: seconds


def always_transient(output: str) -> FailureKind:
    """Classifier for long-running operations where every failure is retried"""
    return FailureKind.TRANSIENT


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try and how long to wait in between"""
    max_attempts: int
    delay: DelayFn

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def linear(cls, max_attempts: int, step: float) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, delay=linear_backoff(step))

    @classmethod
    def fixed(cls, max_attempts: int, seconds: float) -> "RetryPolicy":
        return cls(max_attempts=max_attempts, delay=fixed_delay(seconds))


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    classify: Classifier = classify_failure,
    *,
    name: str = "operation",
    sleep: Optional[SleepFn] = None,
    retry_on: Tuple[Type[Exception], ...] = (ToolInvocationError,),
) -> T:
    """
    Run ``operation`` until it succeeds, fails terminally, or attempts run out.

    Args:
        operation: Zero-argument coroutine factory; called once per attempt
        policy: Attempt cap and delay schedule
        classify: Maps the failure's captured output to transient/terminal
        name: Operation name for logs and metrics
        sleep: Awaitable delay function (asyncio.sleep by default)
        retry_on: Exception types subject to classification; others propagate

    Returns:
        The operation's result

    Raises:
        The original exception on a terminal failure, or RetryExhaustedError
        carrying the last attempt's output when every attempt was transient.
    """
    sleep = sleep or asyncio.sleep
    last_error: Optional[Exception] = None

    for attempt in range(1, policy.max_attempts + 1):
        logger.debug(
            f"{name} attempt {attempt}/{policy.max_attempts}",
            extra={"operation": name, "attempt": attempt, "max_attempts": policy.max_attempts},
        )
        try:
            result = await operation()
        except retry_on as e:
            last_error = e
            output = getattr(e, "output", None) or str(e)
            kind = classify(output)

            if kind is not FailureKind.TRANSIENT:
                pdp_retry_attempts_total.labels(operation=name, outcome="terminal").inc()
                logger.warning(
                    f"{name} failed terminally on attempt {attempt}",
                    extra={"operation": name, "attempt": attempt, "output": output},
                )
                raise

            if attempt >= policy.max_attempts:
                pdp_retry_attempts_total.labels(operation=name, outcome="exhausted").inc()
                break

            pdp_retry_attempts_total.labels(operation=name, outcome="transient").inc()
            delay = policy.delay(attempt)
            logger.info(
                f"{name} failed transiently, retrying in {delay:g}s ({attempt}/{policy.max_attempts})",
                extra={"operation": name, "attempt": attempt, "delay_seconds": delay},
            )
            await sleep(delay)
            continue

        pdp_retry_attempts_total.labels(operation=name, outcome="success").inc()
        if attempt > 1:
            logger.info(f"{name} succeeded on attempt {attempt}")
        return result

    logger.error(
        f"{name} failed after {policy.max_attempts} attempts",
        extra={"operation": name, "attempts": policy.max_attempts},
    )
    if isinstance(last_error, ToolInvocationError):
        raise RetryExhaustedError(name, policy.max_attempts, last_error) from last_error
    raise last_error
