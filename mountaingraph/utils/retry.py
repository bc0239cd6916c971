"""Retry policy value object and a generic retry executor.

The policy is host-agnostic: the same executor drives LLM transport retries and
the extraction workflow step.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

from loguru import logger

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to attempt an operation and how long to wait in between.

    ``max_attempts`` counts the first call, so a policy allowing three retries has
    ``max_attempts=4``.
    """

    max_attempts: int = 1
    initial_delay: float = 0.0
    backoff_multiplier: float = 2.0
    max_delay: float | None = None
    linear: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be >= 1")

    @classmethod
    def from_step_config(
        cls, *, limit: int, delay: float, backoff: str = "exponential"
    ) -> "RetryPolicy":
        """Build a policy from a workflow-style ``{limit, delay, backoff}`` declaration.

        ``limit`` is the number of retries after the first attempt.
        """
        multiplier = {"constant": 1.0, "linear": 1.0, "exponential": 2.0}.get(backoff)
        if multiplier is None:
            raise ValueError(f"Unsupported backoff strategy: {backoff}")
        return cls(
            max_attempts=limit + 1,
            initial_delay=delay,
            backoff_multiplier=multiplier,
            linear=backoff == "linear",
        )

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed ``attempt`` (1-based) before the next one."""
        if self.linear:
            delay = self.initial_delay * attempt
        else:
            delay = self.initial_delay * (self.backoff_multiplier ** (attempt - 1))
        if self.max_delay is not None:
            delay = min(delay, self.max_delay)
        return delay


def run_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy,
    *,
    description: str = "operation",
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep_fn: Callable[[float], None] | None = None,
) -> T:
    """Call ``operation`` until it succeeds or the policy is exhausted.

    The last exception is re-raised once every attempt has failed.
    """
    sleep = sleep_fn or time.sleep
    last_error: BaseException | None = None

    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except retry_on as exc:
            last_error = exc
            logger.warning(
                "{} failed (attempt {}/{}): {}",
                description,
                attempt,
                policy.max_attempts,
                exc,
            )
            if attempt >= policy.max_attempts:
                break
            sleep(policy.delay_for(attempt))

    if last_error is not None:
        raise last_error
    raise RuntimeError(f"{description} failed for unknown reasons")
