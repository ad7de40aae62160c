"""Daytona sandbox backend."""

from __future__ import annotations

import base64
import logging
import posixpath
import shlex
import time
from typing import TYPE_CHECKING, Any, Callable, Sequence

from daytona import CreateSandboxFromSnapshotParams, Daytona, DaytonaConfig

from swe_sandbox.errors import SandboxOperationError
from swe_sandbox.models.sandbox import (
    BackendType,
    CreateOptions,
    ExecResult,
    ExecuteOptions,
    SandboxInfo,
    SandboxState,
)
from swe_sandbox.providers.sandbox.base import SANDBOX_ROOT_DIRS
from swe_sandbox.providers.sandbox.git import ShellGit
from swe_sandbox.providers.sandbox.options import DaytonaOptions, resolve_options_for
from swe_sandbox.runtime.cancellation import CancellationToken
from swe_sandbox.runtime.retry import RetryPolicy, with_retry

if TYPE_CHECKING:
    from swe_sandbox.config import Settings

logger = logging.getLogger(__name__)

ROOT_DIR = SANDBOX_ROOT_DIRS[BackendType.DAYTONA]
CREATE_TIMEOUT_S = 100
EXEC_RETRY = RetryPolicy(max_attempts=5, base_delay=10.0, max_delay=60.0)
CREATE_RETRY = RetryPolicy(max_attempts=3, base_delay=10.0, max_delay=60.0)


class DaytonaSandboxHandle:
    backend = BackendType.DAYTONA

    def __init__(
        self,
        sandbox: Any,
        retry_policy: RetryPolicy = EXEC_RETRY,
        sleep: Callable[[float], None] = time.sleep,
        default_timeout: int | None = None,
    ) -> None:
        self._sandbox = sandbox
        self._retry_policy = retry_policy
        self._sleep = sleep
        self._default_timeout = default_timeout
        self.git = ShellGit(self)

    @property
    def id(self) -> str:
        return self._sandbox.id

    @property
    def state(self) -> SandboxState:
        return SandboxState.parse(getattr(self._sandbox, "state", None))

    def execute_command(
        self,
        options: ExecuteOptions,
        cancellation: CancellationToken | None = None,
    ) -> ExecResult:
        workdir = options.workdir or ROOT_DIR
        env = dict(options.env) or None
        timeout = options.timeout_sec or self._default_timeout

        def call() -> Any:
            return self._sandbox.process.exec(
                options.command, cwd=workdir, env=env, timeout=timeout
            )

        start = time.monotonic()
        response = with_retry(
            call,
            self._retry_policy,
            cancellation=cancellation,
            sleep=self._sleep,
            description=f"Daytona exec on {self.id}",
        )
        duration_ms = int((time.monotonic() - start) * 1000)
        combined = getattr(response, "result", "") or ""
        artifacts = getattr(response, "artifacts", None)
        stdout = getattr(artifacts, "stdout", None) or combined
        exit_code = getattr(response, "exit_code", None)
        return ExecResult(
            exit_code=-1 if exit_code is None else int(exit_code),
            stdout=stdout,
            stderr="",
            combined_output=combined,
            duration_ms=duration_ms,
        )

    def read_file(self, path: str) -> str:
        result = self._shell(f"cat {shlex.quote(path)}")
        if result.exit_code != 0:
            raise SandboxOperationError(f"Failed to read file {path}: {result.combined_output}")
        return result.stdout

    def write_file(self, path: str, content: str) -> None:
        encoded = base64.b64encode(content.encode("utf-8")).decode("ascii")
        parent = posixpath.dirname(path) or "."
        result = self._shell(
            f"mkdir -p {shlex.quote(parent)} && "
            f"printf '%s' {shlex.quote(encoded)} | base64 -d > {shlex.quote(path)}"
        )
        if result.exit_code != 0:
            raise SandboxOperationError(f"Failed to write file {path}: {result.combined_output}")

    def exists(self, path: str) -> bool:
        result = self._shell(f"test -e {shlex.quote(path)} && echo exists || echo missing")
        return result.stdout.strip() == "exists"

    def mkdir(self, path: str) -> None:
        result = self._shell(f"mkdir -p {shlex.quote(path)}")
        if result.exit_code != 0:
            raise SandboxOperationError(f"Failed to create directory {path}: {result.combined_output}")

    def remove(self, path: str) -> None:
        result = self._shell(f"rm -rf {shlex.quote(path)}")
        if result.exit_code != 0:
            raise SandboxOperationError(f"Failed to remove {path}: {result.combined_output}")

    def start(self) -> None:
        logger.info("Starting Daytona sandbox %s", self.id)
        with_retry(
            self._sandbox.start,
            self._retry_policy,
            sleep=self._sleep,
            description=f"Daytona start of {self.id}",
        )

    def stop(self) -> None:
        if self.state in {SandboxState.STOPPED, SandboxState.ARCHIVED}:
            return
        logger.info("Stopping Daytona sandbox %s", self.id)
        self._sandbox.stop()

    def extend_timeout(self, lifetime_seconds: int) -> None:
        minutes = max(1, lifetime_seconds // 60)
        try:
            self._sandbox.set_autostop_interval(minutes)
        except Exception as exc:
            logger.warning("Failed to extend Daytona sandbox %s lifetime: %s", self.id, exc)

    def _shell(self, command: str) -> ExecResult:
        return self.execute_command(ExecuteOptions(command=command))


class DaytonaDriver:
    backend = BackendType.DAYTONA

    def __init__(
        self,
        api_key: str | None = None,
        api_url: str | None = None,
        defaults: DaytonaOptions | None = None,
        client: Any | None = None,
        exec_retry: RetryPolicy = EXEC_RETRY,
        create_retry: RetryPolicy = CREATE_RETRY,
        sleep: Callable[[float], None] = time.sleep,
        default_timeout: int | None = None,
    ) -> None:
        if client is None:
            config_kwargs = {"api_key": api_key}
            if api_url:
                config_kwargs["api_url"] = api_url
            client = Daytona(DaytonaConfig(**config_kwargs))
        self._client = client
        self._defaults = defaults or DaytonaOptions()
        self._exec_retry = exec_retry
        self._create_retry = create_retry
        self._sleep = sleep
        self._default_timeout = default_timeout

    @classmethod
    def from_settings(cls, api_key: str | None, settings: "Settings") -> "DaytonaDriver":
        defaults = DaytonaOptions(
            snapshot=settings.daytona_snapshot,
            user=settings.daytona_user,
            auto_delete_minutes=settings.auto_delete_minutes,
        )
        return cls(
            api_key=api_key,
            api_url=settings.daytona_api_url,
            defaults=defaults,
            default_timeout=settings.command_timeout_seconds,
        )

    def create(
        self,
        options: CreateOptions | None = None,
        cancellation: CancellationToken | None = None,
    ) -> DaytonaSandboxHandle:
        resolved = resolve_options_for(BackendType.DAYTONA, options or CreateOptions(), self._defaults)
        params = CreateSandboxFromSnapshotParams(
            snapshot=resolved.snapshot,
            os_user=resolved.user,
            env_vars=dict(resolved.env_vars),
            labels=dict(resolved.labels),
            auto_delete_interval=resolved.auto_delete_minutes,
        )
        sandbox = with_retry(
            lambda: self._client.create(params, timeout=CREATE_TIMEOUT_S),
            self._create_retry,
            cancellation=cancellation,
            sleep=self._sleep,
            description="Daytona sandbox creation",
        )
        logger.info("Created Daytona sandbox %s from snapshot %s", sandbox.id, resolved.snapshot)
        return self._wrap(sandbox)

    def get(self, sandbox_id: str) -> DaytonaSandboxHandle:
        sandbox = with_retry(
            lambda: self._client.get(sandbox_id),
            self._create_retry,
            sleep=self._sleep,
            description=f"Daytona lookup of {sandbox_id}",
        )
        return self._wrap(sandbox)

    def stop(self, sandbox_id: str) -> None:
        self.get(sandbox_id).stop()

    def delete(self, sandbox_id: str) -> bool:
        try:
            sandbox = self._client.get(sandbox_id)
            self._client.delete(sandbox)
        except Exception as exc:
            logger.error("Failed to delete Daytona sandbox %s: %s", sandbox_id, exc)
            return False
        logger.info("Deleted Daytona sandbox %s", sandbox_id)
        return True

    def list(self) -> Sequence[SandboxInfo]:
        listing = self._client.list()
        sandboxes = getattr(listing, "items", listing)
        return [
            SandboxInfo(
                id=sandbox.id,
                backend=BackendType.DAYTONA,
                state=SandboxState.parse(getattr(sandbox, "state", None)),
                template=getattr(sandbox, "snapshot", None),
                created_at=_as_text(getattr(sandbox, "created_at", None)),
                metadata=dict(getattr(sandbox, "labels", None) or {}),
            )
            for sandbox in sandboxes
        ]

    def _wrap(self, sandbox: Any) -> DaytonaSandboxHandle:
        return DaytonaSandboxHandle(
            sandbox,
            retry_policy=self._exec_retry,
            sleep=self._sleep,
            default_timeout=self._default_timeout,
        )


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
