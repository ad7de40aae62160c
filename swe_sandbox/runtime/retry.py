"""Retry-with-backoff combinator shared by drivers and the command executor."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import random
import time
from typing import TYPE_CHECKING, Callable, TypeVar

from swe_sandbox.errors import (
    CancelledError,
    RetryExhaustedError,
    SandboxError,
    TransientTransportError,
)

if TYPE_CHECKING:
    from swe_sandbox.runtime.cancellation import CancellationToken

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_MARKERS = (
    "timeout",
    "timed out",
    "network",
    "econnreset",
    "econnrefused",
    "socket",
    "fetch failed",
    "502",
    "503",
    "504",
    "gateway",
    "cloudfront",
    "429",
    "rate limit",
    "connection reset",
    "server disconnected",
)


def is_transient_error(error: BaseException) -> bool:
    if isinstance(error, TransientTransportError):
        return True
    if isinstance(error, SandboxError):
        return False
    if isinstance(error, (TimeoutError, ConnectionError)):
        return True
    message = str(error).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 5
    base_delay: float = 1.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.25
    retryable: Callable[[BaseException], bool] = field(default=is_transient_error)

    def delay_for(self, attempt: int, rng: Callable[[], float] = random.random) -> float:
        """Delay after the given zero-based failed attempt."""
        delay = min(self.base_delay * (self.multiplier ** attempt), self.max_delay)
        if self.jitter:
            delay += delay * self.jitter * (rng() * 2 - 1)
        return max(0.0, min(delay, self.max_delay))


def with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    cancellation: "CancellationToken | None" = None,
    sleep: Callable[[float], None] = time.sleep,
    description: str = "operation",
) -> T:
    """Call ``fn`` until it succeeds, a non-retryable error occurs or attempts run out."""
    last_error: BaseException | None = None
    for attempt in range(policy.max_attempts):
        if cancellation is not None:
            cancellation.raise_if_cancelled(description)
        try:
            return fn()
        except CancelledError:
            raise
        except Exception as exc:
            if not policy.retryable(exc):
                raise
            last_error = exc
            if attempt + 1 >= policy.max_attempts:
                break
            delay = policy.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.1fs: %s",
                description,
                attempt + 1,
                policy.max_attempts,
                delay,
                exc,
            )
            sleep(delay)
    logger.error("%s failed after %d attempts: %s", description, policy.max_attempts, last_error)
    raise RetryExhaustedError(description, policy.max_attempts, last_error) from last_error
