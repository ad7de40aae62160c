"""Cooperative cancellation checked at suspension points."""

from __future__ import annotations

import logging
import threading
from typing import Protocol

from swe_sandbox.errors import CancelledError

logger = logging.getLogger(__name__)

CANCELLED_RUN_STATUSES = frozenset({"cancelled", "interrupted", "error"})


class CancellationToken:
    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, action: str = "operation") -> None:
        if self.is_cancelled():
            raise CancelledError(f"Run was cancelled before {action}")


class RunStatusSource(Protocol):
    def __call__(self, thread_id: str, run_id: str) -> str | None:
        ...


class RunStatusCancellationToken(CancellationToken):
    """Token that polls an external run-status oracle.

    Oracle failures are logged and read as "not cancelled". Once a cancelled
    status has been observed the token stays cancelled without polling again.
    """

    def __init__(self, source: RunStatusSource, thread_id: str | None, run_id: str | None) -> None:
        super().__init__()
        self._source = source
        self._thread_id = thread_id
        self._run_id = run_id

    def is_cancelled(self) -> bool:
        if super().is_cancelled():
            return True
        if not self._thread_id or not self._run_id:
            return False
        try:
            status = self._source(self._thread_id, self._run_id)
        except Exception as exc:
            logger.warning("Failed to check run status for %s: %s", self._run_id, exc)
            return False
        if status in CANCELLED_RUN_STATUSES:
            logger.info("Run %s has status %s, treating as cancelled", self._run_id, status)
            self.cancel()
            return True
        return False
