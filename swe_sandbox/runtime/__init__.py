"""Execution runtime: retries, cancellation and the agent-facing services."""

from swe_sandbox.runtime.cancellation import (
    CancellationToken,
    RunStatusCancellationToken,
    RunStatusSource,
)
from swe_sandbox.runtime.retry import RetryPolicy, is_transient_error, with_retry

__all__ = [
    "CancellationToken",
    "RetryPolicy",
    "RunStatusCancellationToken",
    "RunStatusSource",
    "is_transient_error",
    "with_retry",
]
