"""Command execution routed to the local host or the active sandbox."""

from __future__ import annotations

from dataclasses import replace
import logging
import time
from typing import Callable

from swe_sandbox.errors import SandboxNotFoundError
from swe_sandbox.models.sandbox import ExecResult, ExecuteOptions
from swe_sandbox.providers.sandbox.base import CommandRunner, SandboxHandle
from swe_sandbox.runtime.cancellation import CancellationToken
from swe_sandbox.runtime.retry import RetryPolicy, with_retry

logger = logging.getLogger(__name__)

DEFAULT_ENV = {"COREPACK_ENABLE_DOWNLOAD_PROMPT": "0"}
DEFAULT_TIMEOUT_S = 60
DEFAULT_RETRY = RetryPolicy(max_attempts=5, base_delay=5.0, max_delay=60.0)
LOG_COMMAND_LIMIT = 200


def clip(command: str, limit: int = LOG_COMMAND_LIMIT) -> str:
    return command if len(command) <= limit else f"{command[:limit]}..."


class CommandExecutor:
    def __init__(
        self,
        *,
        handle: SandboxHandle | None = None,
        local_runner: CommandRunner | None = None,
        resolve_handle: Callable[[str], SandboxHandle] | None = None,
        default_timeout: int = DEFAULT_TIMEOUT_S,
        retry_policy: RetryPolicy = DEFAULT_RETRY,
        cancellation: CancellationToken | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._handle = handle
        self._local_runner = local_runner
        self._resolve_handle = resolve_handle
        self._default_timeout = default_timeout
        self._retry_policy = retry_policy
        self._cancellation = cancellation
        self._sleep = sleep

    @property
    def is_local(self) -> bool:
        return self._local_runner is not None

    def execute_command(
        self,
        options: ExecuteOptions,
        *,
        handle: SandboxHandle | None = None,
        sandbox_id: str | None = None,
    ) -> ExecResult:
        """Run a command; non-zero exits come back as data, transport failures raise."""
        effective = replace(
            options,
            env={**DEFAULT_ENV, **options.env},
            timeout_sec=options.timeout_sec or self._default_timeout,
        )
        target = self._target(handle, sandbox_id)
        logger.info(
            "Executing command (timeout %ss) in %s: %s",
            effective.timeout_sec,
            effective.workdir or "default workdir",
            clip(effective.command),
        )
        start = time.monotonic()
        result = with_retry(
            lambda: target.execute_command(effective, cancellation=self._cancellation),
            self._retry_policy,
            cancellation=self._cancellation,
            sleep=self._sleep,
            description="command execution",
        )
        logger.debug(
            "Command finished with exit code %d in %dms",
            result.exit_code,
            int((time.monotonic() - start) * 1000),
        )
        return result

    def _target(self, handle: SandboxHandle | None, sandbox_id: str | None) -> CommandRunner:
        if self._local_runner is not None:
            return self._local_runner
        if handle is not None:
            return handle
        if sandbox_id is not None:
            if self._resolve_handle is None:
                raise SandboxNotFoundError(f"Cannot resolve sandbox {sandbox_id}: no resolver configured")
            return self._resolve_handle(sandbox_id)
        if self._handle is not None:
            return self._handle
        raise SandboxNotFoundError("No sandbox handle available for command execution")
