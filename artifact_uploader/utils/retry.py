"""
Retry budget and backoff for the upload state machine.

An upload run shares one attempt budget across every state and every file:
each recoverable provider error consumes one unit, and the run gives up once
the budget is spent. Backoff between attempts is a fixed delay, applied only
for the statuses that ask for it (408, 503).

Usage:
    from artifact_uploader.utils.retry import RetryBudget, BackoffPolicy

    budget = RetryBudget(max_attempts=3)
    backoff = BackoffPolicy(delay_seconds=1.0)

    budget.consume("503 in LIST_EXISTING")
    backoff.sleep()
"""

import random
import time
from dataclasses import dataclass, field
from typing import Callable, List

from artifact_uploader.utils.logging import get_logger

# Module-level logger
logger = get_logger(__name__)


def calculate_backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    multiplier: float,
    jitter: bool,
) -> float:
    """
    Calculate delay for exponential backoff with optional jitter.

    Formula:
        delay = min(base_delay * (multiplier ** attempt), max_delay)
        if jitter:
            delay = delay * random.uniform(0.5, 1.5)

    A multiplier of 1.0 gives the fixed delay the upload state machine uses.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap
        multiplier: Exponential multiplier
        jitter: Whether to add random jitter

    Returns:
        Calculated delay in seconds

    Example:
        >>> calculate_backoff_delay(2, base_delay=1.0, max_delay=60.0,
        ...                         multiplier=2.0, jitter=False)
        4.0
    """
    delay = min(base_delay * (multiplier ** attempt), max_delay)

    if jitter:
        delay = delay * random.uniform(0.5, 1.5)

    return delay


@dataclass
class RetryBudget:
    """
    Global attempt counter for one upload run.

    Attributes:
        max_attempts: Number of recoverable errors tolerated before giving up
        attempts: Recoverable errors seen so far
        history: Reason recorded with each consumed attempt
    """

    max_attempts: int = 3
    attempts: int = 0
    history: List[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1 (got {self.max_attempts})")

    @property
    def remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def consume(self, reason: str) -> int:
        """
        Record one attempt.

        Args:
            reason: Short description logged with the attempt

        Returns:
            Number of attempts consumed so far
        """
        self.attempts += 1
        self.history.append(reason)
        logger.warning(f"Attempt {self.attempts}/{self.max_attempts} consumed: {reason}")
        return self.attempts


@dataclass
class BackoffPolicy:
    """
    Delay applied before retrying after a 408 or 503.

    Attributes:
        delay_seconds: Base delay
        jitter: Whether to randomize the delay (off by default)
        sleeper: Function used to wait, replaceable in tests
    """

    delay_seconds: float = 1.0
    jitter: bool = False
    sleeper: Callable[[float], None] = time.sleep

    def next_delay(self) -> float:
        return calculate_backoff_delay(
            attempt=0,
            base_delay=self.delay_seconds,
            max_delay=self.delay_seconds * 2,
            multiplier=1.0,
            jitter=self.jitter,
        )

    def sleep(self) -> float:
        """Wait one backoff period and return the delay used."""
        delay = self.next_delay()
        if delay > 0:
            logger.info(f"Backing off for {delay:.2f}s")
            self.sleeper(delay)
        return delay
