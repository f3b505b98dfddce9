"""
Bounded polling and request deadlines.

Both take their sleep and clock functions as arguments so tests can drive
them with a fake clock instead of waiting.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .exceptions import DeadlineExceededError

logger = logging.getLogger(__name__)


class PollOutcome(Enum):
    """Terminal states of a poll."""
    READY = "ready"
    FAILED = "failed"
    EXHAUSTED = "exhausted"


@dataclass
class PollPolicy:
    """How often and how long to poll."""
    max_attempts: int = 10
    interval: float = 1.0
    backoff: float = 1.0
    max_interval: Optional[float] = None

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based attempt."""
        delay = self.interval * (self.backoff ** attempt)
        if self.max_interval is not None:
            delay = min(delay, self.max_interval)
        return max(0.0, delay)


@dataclass
class PollResult:
    outcome: PollOutcome
    attempts: int

    @property
    def ready(self) -> bool:
        return self.outcome is PollOutcome.READY


def poll_with_backoff(check: Callable[[], Optional[PollOutcome]],
                      policy: PollPolicy,
                      sleep: Callable[[float], None] = time.sleep,
                      should_continue: Optional[Callable[[], bool]] = None) -> PollResult:
    """
    Call ``check`` until it returns a terminal outcome or attempts run out.

    Args:
        check: Returns PollOutcome.READY / PollOutcome.FAILED when done,
            or None to keep polling
        policy: Attempt limit and delay schedule
        sleep: Sleep function
        should_continue: Optional guard evaluated before each sleep; polling
            stops as EXHAUSTED once it returns False

    Returns:
        PollResult with the outcome and the number of checks made
    """
    total = max(1, policy.max_attempts)
    attempts = 0
    for attempt in range(total):
        attempts += 1
        outcome = check()
        if outcome in (PollOutcome.READY, PollOutcome.FAILED):
            return PollResult(outcome, attempts)

        if attempt == total - 1:
            break
        if should_continue is not None and not should_continue():
            break

        delay = policy.delay_for(attempt)
        logger.debug(f"Poll attempt {attempts} not terminal, sleeping {delay:.2f}s")
        sleep(delay)

    return PollResult(PollOutcome.EXHAUSTED, attempts)


class Deadline:
    """Overall time budget for one request."""

    def __init__(self, seconds: Optional[float], clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self.seconds = seconds
        self.expires_at = None if seconds is None else clock() + seconds

    def remaining(self) -> Optional[float]:
        """Seconds left, or None when there is no deadline."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - self.clock())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, stage: str) -> None:
        if self.expired():
            raise DeadlineExceededError(
                f"Request deadline of {self.seconds}s exceeded before {stage}"
            )

    def timeout_for(self, default: float) -> float:
        """HTTP timeout for the next call, capped to the time left."""
        remaining = self.remaining()
        if remaining is None:
            return default
        return min(default, remaining)
