"""
Poll results and the fixed-interval poll loop.

Every wait in the pipeline (receipt mined, balance above threshold,
destination transaction executed, withdrawal claimable) is a check function
returning one of `Pending`, `Found` or `Rejected`, driven by `poll_until`.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .exceptions import PollTimeoutError
from .logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class Pending:
    """Nothing yet; try again after the interval."""
    note: str = ""


@dataclass(frozen=True)
class Found:
    """Terminal success carrying the awaited value."""
    value: Any = None


@dataclass(frozen=True)
class Rejected:
    """Terminal failure; waiting longer will not help."""
    reason: str = ""


PollResult = Union[Pending, Found, Rejected]


def poll_until(
    check: Callable[[], PollResult],
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    max_attempts: Optional[int] = None,
    description: str = "condition",
) -> Union[Found, Rejected]:
    """
    Call `check` until it returns a terminal result.

    Args:
        check: Returns Pending, Found or Rejected.
        interval: Seconds slept between attempts. No backoff.
        sleep: Injected for tests.
        max_attempts: None for unbounded.
        description: Used in progress logs and the timeout message.

    Returns:
        The Found or Rejected result. Callers decide what Rejected means.

    Raises:
        PollTimeoutError: `max_attempts` checks all returned Pending.
    """
    attempt = 0
    while True:
        attempt += 1
        result = check()
        if isinstance(result, (Found, Rejected)):
            return result
        if max_attempts is not None and attempt >= max_attempts:
            raise PollTimeoutError(f"Gave up waiting for {description} after {attempt} attempts")
        if result.note:
            logger.info("Waiting for %s: %s (retry in %ss)", description, result.note, interval)
        else:
            logger.debug("Waiting for %s (attempt %d, retry in %ss)", description, attempt, interval)
        sleep(interval)
