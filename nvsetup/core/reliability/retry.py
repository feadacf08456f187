"""
Bounded retry with a fixed backoff.

Used for flaky network fetches. The caller decides what exhaustion
means; for the container toolkit signing key it is fatal.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Up to ``max_attempts`` tries, sleeping ``delay`` seconds between them."""

    max_attempts: int = 5
    delay: float = 5.0


@dataclass
class RetryOutcome(Generic[T]):
    """What happened across all attempts."""

    name: str
    max_attempts: int
    attempt: int = 0
    result: T | None = None
    succeeded: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def exhausted(self) -> bool:
        """Whether all attempts were used without success."""
        return not self.succeeded and self.attempt >= self.max_attempts


def retry_fixed(
    name: str,
    operation: Callable[[int], T],
    is_success: Callable[[T], bool],
    policy: RetryPolicy,
    *,
    sleep: Callable[[float], None] = time.sleep,
    describe: Callable[[T], str] = str,
) -> RetryOutcome[T]:
    """Call ``operation(attempt)`` until it succeeds or attempts run out.

    ``attempt`` is 1-based. No sleep follows the final attempt.
    """
    outcome: RetryOutcome[T] = RetryOutcome(name=name, max_attempts=policy.max_attempts)

    while outcome.attempt < policy.max_attempts:
        outcome.attempt += 1
        result = operation(outcome.attempt)
        outcome.result = result
        if is_success(result):
            outcome.succeeded = True
            return outcome

        outcome.errors.append(describe(result))
        if outcome.attempt < policy.max_attempts:
            logger.warning(
                "%s failed (Attempt %d/%d). Retrying in %.0f seconds...",
                name,
                outcome.attempt,
                policy.max_attempts,
                policy.delay,
            )
            sleep(policy.delay)

    logger.error("%s failed after %d attempts", name, outcome.attempt)
    return outcome
