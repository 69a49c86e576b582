"""Retry policy for the generation collaborators (narration, visuals, speech)."""

import logging
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_MARKERS = ("429", "RESOURCE_EXHAUSTED", "quota")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with a longer floor for rate-limit failures."""

    max_attempts: int = 6
    base_delay: float = 4.0
    rate_limit_floor: float = 20.0
    backoff_multiplier: float = 2.0
    rate_limit_multiplier: float = 1.5

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must not be negative")


def is_rate_limit_error(exc: BaseException) -> bool:
    """Whether an error looks like a quota or rate-limit rejection."""
    message = str(exc)
    status = getattr(exc, "status_code", None) or getattr(exc, "code", None)
    return status == 429 or any(marker in message for marker in RATE_LIMIT_MARKERS)


def call_with_retry(
    operation: Callable[[], T],
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call an operation, retrying failures according to the policy.

    Args:
        operation: Zero-argument callable to run.
        policy: Attempt count and backoff settings.
        sleep: Function used to wait between attempts.

    Returns:
        The operation's result.

    Raises:
        Exception: The last failure once all attempts are used.
    """
    delay = policy.base_delay
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except Exception as e:
            if attempt == policy.max_attempts:
                logger.error(f"Giving up after {attempt} attempts: {e}")
                raise

            if is_rate_limit_error(e):
                wait = max(delay, policy.rate_limit_floor)
                logger.warning(f"Rate limited. Retrying in {wait:.1f}s...")
                delay = wait * policy.rate_limit_multiplier
            else:
                wait = delay
                logger.warning(f"Request failed: {e}. Retrying in {wait:.1f}s...")
                delay = wait * policy.backoff_multiplier

            sleep(wait)

    raise RuntimeError("unreachable")
